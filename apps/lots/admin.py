from django.contrib import admin

from apps.lots.models import LotDamageEntry, SowingLot


class LotDamageEntryInline(admin.TabularInline):
    model = LotDamageEntry
    extra = 0
    readonly_fields = ("quantity", "reason", "damaged_after", "created_by", "created_at")


@admin.register(SowingLot)
class SowingLotAdmin(admin.ModelAdmin):
    list_display = ("lot_number", "category", "variety", "sowing_date", "seeds_sown", "damaged", "seed_inward")
    list_filter = ("category", "sowing_date")
    search_fields = ("lot_number", "variety__name")
    inlines = [LotDamageEntryInline]
