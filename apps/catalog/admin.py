from django.contrib import admin

from apps.catalog.models import Category, Variety


class VarietyInline(admin.TabularInline):
    model = Variety
    extra = 0


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ("name", "price_per_unit", "is_active", "updated_at")
    list_filter = ("is_active",)
    search_fields = ("name",)
    inlines = [VarietyInline]


@admin.register(Variety)
class VarietyAdmin(admin.ModelAdmin):
    list_display = ("name", "category", "is_active", "updated_at")
    list_filter = ("is_active", "category")
    search_fields = ("name", "category__name")
