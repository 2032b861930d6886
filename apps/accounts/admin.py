from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin

from .models import RolePagePermission, User


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    fieldsets = DjangoUserAdmin.fieldsets + (("Nursery", {"fields": ("role", "phone_number")}),)
    list_display = DjangoUserAdmin.list_display + ("role",)


@admin.register(RolePagePermission)
class RolePagePermissionAdmin(admin.ModelAdmin):
    list_display = ("role", "page", "allowed", "updated_at")
    list_filter = ("role", "allowed")
