from decimal import ROUND_HALF_UP, Decimal

from django.db import models


def damage_percentage_for(damaged, seeds_sown):
    if not seeds_sown:
        return Decimal("0.00")
    return (Decimal(damaged) * Decimal("100") / Decimal(seeds_sown)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def damaged_from_percentage(seeds_sown, percentage):
    """Whole seeds lost for a percentage, rounded down."""
    return int(Decimal(seeds_sown) * Decimal(percentage) / Decimal("100"))


class SowingLot(models.Model):
    lot_number = models.CharField(max_length=64, unique=True)
    category = models.ForeignKey("catalog.Category", on_delete=models.PROTECT, related_name="lots")
    variety = models.ForeignKey("catalog.Variety", on_delete=models.PROTECT, related_name="lots")
    seed_inward = models.ForeignKey(
        "seed_inward.SeedInwardBatch",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="lots",
    )
    sowing_date = models.DateField()
    seeds_sown = models.PositiveIntegerField()
    packets_sown = models.PositiveIntegerField(default=0)
    damaged = models.PositiveIntegerField(default=0)
    damage_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    expected_ready_date = models.DateField(null=True, blank=True)
    remarks = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(
        "accounts.User",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="sowing_lots",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-sowing_date", "-id"]
        indexes = [
            models.Index(fields=["category", "variety"], name="lot_category_variety_idx"),
            models.Index(fields=["sowing_date"], name="lot_sowing_date_idx"),
        ]
        constraints = [
            models.CheckConstraint(check=models.Q(seeds_sown__gt=0), name="lot_seeds_sown_gt_zero"),
            models.CheckConstraint(check=models.Q(damaged__lte=models.F("seeds_sown")), name="lot_damaged_lte_sown"),
        ]

    def __str__(self):
        return self.lot_number


class LotDamageEntry(models.Model):
    lot = models.ForeignKey(SowingLot, on_delete=models.CASCADE, related_name="damage_entries")
    quantity = models.PositiveIntegerField()
    reason = models.CharField(max_length=255, blank=True)
    damaged_after = models.PositiveIntegerField()
    created_by = models.ForeignKey(
        "accounts.User",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="lot_damage_entries",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name_plural = "lot damage entries"
