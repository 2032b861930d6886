import re
from decimal import Decimal

from django.db import models


def normalize_phone(value):
    raw = str(value or "").strip()
    normalized = re.sub(r"\D+", "", raw)
    return normalized or raw


class OrderStatus(models.TextChoices):
    BOOKED = "BOOKED", "Booked"
    DELIVERED = "DELIVERED", "Delivered"
    CANCELLED = "CANCELLED", "Cancelled"


class PaymentMode(models.TextChoices):
    CASH = "Cash", "Cash"
    PHONEPE = "PhonePe", "PhonePe"
    UPI = "UPI", "UPI"
    GPAY = "GPay", "GPay"


class PaymentStatus(models.TextChoices):
    PENDING = "Pending", "Pending"
    PARTIALLY_PAID = "Partially Paid", "Partially Paid"
    PAID = "Paid", "Paid"


class LotStatus(models.TextChoices):
    PENDING_LOT = "PENDING_LOT", "Pending lot"
    ALLOCATED = "ALLOCATED", "Allocated"


ALLOWED_TRANSITIONS = {
    OrderStatus.BOOKED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    # Undo delivery is the only way back.
    OrderStatus.DELIVERED: {OrderStatus.BOOKED},
    OrderStatus.CANCELLED: set(),
}


def payment_status_for(advance_amount, total_amount):
    advance_amount = Decimal(advance_amount or 0)
    total_amount = Decimal(total_amount or 0)
    if advance_amount <= 0:
        return PaymentStatus.PENDING
    if advance_amount < total_amount:
        return PaymentStatus.PARTIALLY_PAID
    return PaymentStatus.PAID


def order_total(booked_qty, unit_price, discount):
    gross = Decimal(booked_qty or 0) * Decimal(unit_price or 0)
    return (gross - Decimal(discount or 0)).quantize(Decimal("0.01"))


class Order(models.Model):
    invoice_number = models.CharField(max_length=32, unique=True, null=True, blank=True)
    lot = models.ForeignKey("lots.SowingLot", null=True, blank=True, on_delete=models.PROTECT, related_name="orders")
    category = models.ForeignKey("catalog.Category", on_delete=models.PROTECT, related_name="orders")
    variety = models.ForeignKey("catalog.Variety", on_delete=models.PROTECT, related_name="orders")
    customer_name = models.CharField(max_length=255)
    phone = models.CharField(max_length=20)
    phone_normalized = models.CharField(max_length=20, db_index=True, editable=False)
    village = models.CharField(max_length=120, blank=True)
    state = models.CharField(max_length=120)
    district = models.CharField(max_length=120)
    taluk = models.CharField(max_length=120)
    booked_qty = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    discount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"), editable=False)
    advance_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    payment_mode = models.CharField(max_length=16, choices=PaymentMode.choices, default=PaymentMode.CASH)
    delivery_date = models.DateField()
    status = models.CharField(max_length=16, choices=OrderStatus.choices, default=OrderStatus.BOOKED)
    actual_delivery_date = models.DateField(null=True, blank=True)
    actual_delivery_time = models.TimeField(null=True, blank=True)
    delivered_qty = models.PositiveIntegerField(default=0)
    vehicle_details = models.CharField(max_length=255, blank=True)
    driver_name = models.CharField(max_length=120, blank=True)
    driver_phone = models.CharField(max_length=20, blank=True)
    created_by = models.ForeignKey(
        "accounts.User",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="orders",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-id"]
        indexes = [
            models.Index(fields=["lot", "status"], name="order_lot_status_idx"),
            models.Index(fields=["status", "delivery_date"], name="order_status_delivery_idx"),
            models.Index(fields=["category", "variety"], name="order_category_variety_idx"),
        ]
        constraints = [
            models.CheckConstraint(check=models.Q(booked_qty__gt=0), name="order_booked_qty_gt_zero"),
            models.CheckConstraint(check=models.Q(unit_price__gte=0), name="order_unit_price_gte_zero"),
            models.CheckConstraint(check=models.Q(advance_amount__gte=0), name="order_advance_gte_zero"),
        ]

    def save(self, *args, **kwargs):
        self.phone = str(self.phone or "").strip()
        self.phone_normalized = normalize_phone(self.phone)
        self.total_amount = order_total(self.booked_qty, self.unit_price, self.discount)
        update_fields = kwargs.get("update_fields")
        if update_fields is not None:
            kwargs["update_fields"] = set(update_fields) | {"phone", "phone_normalized", "total_amount"}
        super().save(*args, **kwargs)
        if not self.invoice_number:
            self.invoice_number = f"K{self.pk}"
            super().save(update_fields=["invoice_number"])

    @property
    def remaining_balance(self):
        return (self.total_amount - self.advance_amount).quantize(Decimal("0.01"))

    @property
    def payment_status(self):
        return payment_status_for(self.advance_amount, self.total_amount)

    @property
    def lot_status(self):
        return LotStatus.ALLOCATED if self.lot_id else LotStatus.PENDING_LOT

    def can_transition_to(self, status):
        return status in ALLOWED_TRANSITIONS.get(self.status, set())

    def __str__(self):
        return f"{self.invoice_number or self.pk} - {self.customer_name}"
