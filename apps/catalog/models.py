from decimal import Decimal

from django.db import models


def normalize_name(value: str) -> str:
    return " ".join((value or "").split())


class Category(models.Model):
    name = models.CharField(max_length=120, unique=True)
    image = models.TextField(blank=True, default="")
    price_per_unit = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("1.00"))
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "categories"
        constraints = [
            models.CheckConstraint(check=models.Q(price_per_unit__gte=0), name="category_price_gte_zero"),
        ]

    def save(self, *args, **kwargs):
        self.name = normalize_name(self.name)
        super().save(*args, **kwargs)

    def __str__(self):
        return self.name


class Variety(models.Model):
    category = models.ForeignKey(Category, on_delete=models.PROTECT, related_name="varieties")
    name = models.CharField(max_length=120)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "varieties"
        constraints = [
            models.UniqueConstraint(fields=["category", "name"], name="unique_variety_name_per_category"),
        ]

    def save(self, *args, **kwargs):
        self.name = normalize_name(self.name)
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.category.name} / {self.name}"
