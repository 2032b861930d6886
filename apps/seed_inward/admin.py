from django.contrib import admin

from apps.seed_inward.models import SeedInwardBatch


@admin.register(SeedInwardBatch)
class SeedInwardBatchAdmin(admin.ModelAdmin):
    list_display = (
        "lot_number",
        "category",
        "variety",
        "number_of_packets",
        "total_quantity",
        "available_quantity",
        "expiry_date",
        "received_from",
    )
    list_filter = ("category", "package_type")
    search_fields = ("lot_number", "received_from", "variety__name")
