from rest_framework.permissions import BasePermission

from apps.accounts.models import UserRole


ROLE_CAPABILITIES = {
    UserRole.ADMIN: {
        "catalog.view",
        "catalog.manage",
        "seed_inward.view",
        "seed_inward.manage",
        "lots.view",
        "lots.manage",
        "lots.delete",
        "orders.view",
        "orders.create",
        "orders.manage",
        "orders.deliver",
        "orders.cancel",
        "orders.delete",
        "customers.view",
        "reports.view",
        "users.manage",
        "audit.view",
    },
    UserRole.STAFF: {
        "catalog.view",
        "seed_inward.view",
        "seed_inward.manage",
        "lots.view",
        "lots.manage",
        "orders.view",
        "orders.create",
        "orders.manage",
        "orders.deliver",
        "customers.view",
        "reports.view",
    },
}


def resolve_role(user):
    if getattr(user, "is_superuser", False):
        return UserRole.ADMIN
    return getattr(user, "role", UserRole.STAFF)


class RolePermission(BasePermission):
    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        capability_map = getattr(view, "capability_map", {})
        action = getattr(view, "action", None) or request.method.lower()
        required = capability_map.get(action) or capability_map.get(request.method.lower()) or set()
        if not required:
            return True

        user_caps = ROLE_CAPABILITIES.get(resolve_role(request.user), set())
        return all(cap in user_caps for cap in required)


class IsAdminRole(BasePermission):
    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and resolve_role(request.user) == UserRole.ADMIN)
