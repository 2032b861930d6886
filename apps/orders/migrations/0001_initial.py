from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
        ("lots", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("invoice_number", models.CharField(blank=True, max_length=32, null=True, unique=True)),
                ("customer_name", models.CharField(max_length=255)),
                ("phone", models.CharField(max_length=20)),
                ("phone_normalized", models.CharField(db_index=True, editable=False, max_length=20)),
                ("village", models.CharField(blank=True, max_length=120)),
                ("state", models.CharField(max_length=120)),
                ("district", models.CharField(max_length=120)),
                ("taluk", models.CharField(max_length=120)),
                ("booked_qty", models.PositiveIntegerField()),
                ("unit_price", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("discount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                (
                    "total_amount",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), editable=False, max_digits=12),
                ),
                ("advance_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                (
                    "payment_mode",
                    models.CharField(
                        choices=[("Cash", "Cash"), ("PhonePe", "PhonePe"), ("UPI", "UPI"), ("GPay", "GPay")],
                        default="Cash",
                        max_length=16,
                    ),
                ),
                ("delivery_date", models.DateField()),
                (
                    "status",
                    models.CharField(
                        choices=[("BOOKED", "Booked"), ("DELIVERED", "Delivered"), ("CANCELLED", "Cancelled")],
                        default="BOOKED",
                        max_length=16,
                    ),
                ),
                ("actual_delivery_date", models.DateField(blank=True, null=True)),
                ("actual_delivery_time", models.TimeField(blank=True, null=True)),
                ("delivered_qty", models.PositiveIntegerField(default=0)),
                ("vehicle_details", models.CharField(blank=True, max_length=255)),
                ("driver_name", models.CharField(blank=True, max_length=120)),
                ("driver_phone", models.CharField(blank=True, max_length=20)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "lot",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="lots.sowinglot",
                    ),
                ),
                (
                    "category",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="catalog.category",
                    ),
                ),
                (
                    "variety",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="catalog.variety",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-id"],
                "indexes": [
                    models.Index(fields=["lot", "status"], name="order_lot_status_idx"),
                    models.Index(fields=["status", "delivery_date"], name="order_status_delivery_idx"),
                    models.Index(fields=["category", "variety"], name="order_category_variety_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(check=models.Q(("booked_qty__gt", 0)), name="order_booked_qty_gt_zero"),
                    models.CheckConstraint(check=models.Q(("unit_price__gte", 0)), name="order_unit_price_gte_zero"),
                    models.CheckConstraint(check=models.Q(("advance_amount__gte", 0)), name="order_advance_gte_zero"),
                ],
            },
        ),
    ]
