from django.conf import settings


def stock_limits_enforced():
    return getattr(settings, "NURSERY_ENFORCE_STOCK_LIMITS", True)


def upcoming_delivery_days():
    return getattr(settings, "NURSERY_UPCOMING_DELIVERY_DAYS", 7)
