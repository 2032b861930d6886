from django.db import models
from django.utils import timezone


class SeedInwardBatch(models.Model):
    category = models.ForeignKey("catalog.Category", on_delete=models.PROTECT, related_name="seed_inward_batches")
    variety = models.ForeignKey("catalog.Variety", on_delete=models.PROTECT, related_name="seed_inward_batches")
    lot_number = models.CharField(max_length=64)
    expiry_date = models.DateField()
    number_of_packets = models.PositiveIntegerField()
    total_quantity = models.PositiveIntegerField()
    available_quantity = models.IntegerField()
    package_type = models.CharField(max_length=60)
    received_from = models.CharField(max_length=120)
    received_at = models.DateTimeField(default=timezone.now)
    created_by = models.ForeignKey(
        "accounts.User",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="seed_inward_batches",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-received_at"]
        indexes = [
            models.Index(fields=["category", "variety"], name="seedinward_cat_variety_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["category", "variety", "lot_number"],
                name="unique_seed_inward_lot_per_variety",
            ),
            models.CheckConstraint(check=models.Q(number_of_packets__gt=0), name="seedinward_packets_gt_zero"),
            models.CheckConstraint(check=models.Q(total_quantity__gt=0), name="seedinward_total_gt_zero"),
        ]

    @property
    def consumed_quantity(self):
        return self.total_quantity - self.available_quantity

    def __str__(self):
        return f"{self.lot_number} ({self.available_quantity}/{self.total_quantity})"
