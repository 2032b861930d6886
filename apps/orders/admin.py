from django.contrib import admin

from apps.orders.models import Order


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "invoice_number",
        "customer_name",
        "phone",
        "variety",
        "lot",
        "booked_qty",
        "total_amount",
        "delivery_date",
        "status",
    )
    list_filter = ("status", "payment_mode", "category")
    search_fields = ("invoice_number", "customer_name", "phone", "lot__lot_number")
    readonly_fields = ("total_amount", "phone_normalized")
