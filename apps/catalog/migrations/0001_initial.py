from decimal import Decimal

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Category",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=120, unique=True)),
                ("image", models.TextField(blank=True, default="")),
                ("price_per_unit", models.DecimalField(decimal_places=2, default=Decimal("1.00"), max_digits=10)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["name"],
                "verbose_name_plural": "categories",
                "constraints": [
                    models.CheckConstraint(check=models.Q(("price_per_unit__gte", 0)), name="category_price_gte_zero"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Variety",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=120)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "category",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="varieties",
                        to="catalog.category",
                    ),
                ),
            ],
            options={
                "ordering": ["name"],
                "verbose_name_plural": "varieties",
                "constraints": [
                    models.UniqueConstraint(fields=("category", "name"), name="unique_variety_name_per_category"),
                ],
            },
        ),
    ]
