import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="SeedInwardBatch",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("lot_number", models.CharField(max_length=64)),
                ("expiry_date", models.DateField()),
                ("number_of_packets", models.PositiveIntegerField()),
                ("total_quantity", models.PositiveIntegerField()),
                ("available_quantity", models.IntegerField()),
                ("package_type", models.CharField(max_length=60)),
                ("received_from", models.CharField(max_length=120)),
                ("received_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "category",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="seed_inward_batches",
                        to="catalog.category",
                    ),
                ),
                (
                    "variety",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="seed_inward_batches",
                        to="catalog.variety",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="seed_inward_batches",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-received_at"],
                "indexes": [
                    models.Index(fields=["category", "variety"], name="seedinward_cat_variety_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("category", "variety", "lot_number"),
                        name="unique_seed_inward_lot_per_variety",
                    ),
                    models.CheckConstraint(
                        check=models.Q(("number_of_packets__gt", 0)),
                        name="seedinward_packets_gt_zero",
                    ),
                    models.CheckConstraint(check=models.Q(("total_quantity__gt", 0)), name="seedinward_total_gt_zero"),
                ],
            },
        ),
    ]
