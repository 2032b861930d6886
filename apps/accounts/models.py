from django.contrib.auth.models import AbstractUser
from django.db import models


class UserRole(models.TextChoices):
    ADMIN = "admin", "Admin"
    STAFF = "staff", "Staff"


class Page(models.TextChoices):
    DASHBOARD = "dashboard", "Dashboard"
    CATEGORIES = "categories", "Categories"
    VARIETIES = "varieties", "Varieties"
    SEED_INWARD = "seed_inward", "Seed Inward"
    LOTS = "lots", "Lots"
    ORDERS = "orders", "Orders"
    TODAY_DELIVERIES = "today_deliveries", "Today Deliveries"
    CUSTOMERS = "customers", "Customers"
    REPORTS = "reports", "Reports"
    DELIVERY_REPORTS = "delivery_reports", "Delivery Reports"
    USERS = "users", "Users"
    AUDIT_LOGS = "audit_logs", "Audit Logs"


DEFAULT_STAFF_PAGES = {
    Page.DASHBOARD,
    Page.SEED_INWARD,
    Page.LOTS,
    Page.ORDERS,
    Page.TODAY_DELIVERIES,
    Page.CUSTOMERS,
}


class User(AbstractUser):
    role = models.CharField(max_length=20, choices=UserRole.choices, default=UserRole.STAFF)
    phone_number = models.CharField(max_length=20, blank=True)


class RolePagePermission(models.Model):
    role = models.CharField(max_length=20, choices=UserRole.choices)
    page = models.CharField(max_length=40, choices=Page.choices)
    allowed = models.BooleanField(default=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["role", "page"]
        constraints = [
            models.UniqueConstraint(fields=["role", "page"], name="unique_role_page_permission"),
        ]

    @classmethod
    def pages_for_role(cls, role):
        if role == UserRole.ADMIN:
            return sorted(Page.values)
        stored = dict(cls.objects.filter(role=role).values_list("page", "allowed"))
        pages = []
        for page in Page.values:
            allowed = stored.get(page, page in DEFAULT_STAFF_PAGES)
            if allowed:
                pages.append(page)
        return sorted(pages)

    def __str__(self):
        return f"{self.role}:{self.page}={'yes' if self.allowed else 'no'}"
