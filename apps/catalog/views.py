from django.db.models import Count, Q
from rest_framework import viewsets

from apps.audit.services import record_audit
from apps.catalog.models import Category, Variety
from apps.catalog.serializers import CategorySerializer, VarietySerializer
from apps.common.exceptions import ConflictError
from apps.common.permissions import RolePermission


def _category_snapshot(category):
    return {
        "name": category.name,
        "price_per_unit": str(category.price_per_unit),
        "is_active": category.is_active,
    }


def _variety_snapshot(variety):
    return {
        "name": variety.name,
        "category_id": variety.category_id,
        "is_active": variety.is_active,
    }


def variety_dependents(variety):
    """Names of the dependent row types that block deleting ``variety``."""
    blocking = []
    if variety.lots.exists():
        blocking.append("lots")
    if variety.seed_inward_batches.exists():
        blocking.append("seed inward batches")
    if variety.orders.exists():
        blocking.append("orders")
    return blocking


class CategoryViewSet(viewsets.ModelViewSet):
    serializer_class = CategorySerializer
    permission_classes = [RolePermission]
    pagination_class = None
    capability_map = {
        "list": ["catalog.view"],
        "retrieve": ["catalog.view"],
        "create": ["catalog.manage"],
        "update": ["catalog.manage"],
        "partial_update": ["catalog.manage"],
        "destroy": ["catalog.manage"],
    }

    def get_queryset(self):
        queryset = Category.objects.annotate(variety_count=Count("varieties")).order_by("name")
        query = self.request.query_params.get("q")
        if query:
            queryset = queryset.filter(name__icontains=query.strip())
        active = self.request.query_params.get("active")
        if active is not None:
            queryset = queryset.filter(is_active=active.strip().lower() in {"1", "true", "yes"})
        return queryset

    def perform_create(self, serializer):
        category = serializer.save()
        record_audit(
            actor=self.request.user,
            action="catalog.category.create",
            entity_type="category",
            entity_id=category.id,
            summary=f"Created category {category.name}",
            payload=_category_snapshot(category),
        )

    def perform_update(self, serializer):
        before = _category_snapshot(serializer.instance)
        category = serializer.save()
        record_audit(
            actor=self.request.user,
            action="catalog.category.update",
            entity_type="category",
            entity_id=category.id,
            summary=f"Updated category {category.name}",
            payload={"before": before, "after": _category_snapshot(category)},
        )

    def perform_destroy(self, instance):
        if instance.varieties.exists():
            raise ConflictError("Cannot delete category: it still has varieties. Delete or move them first.")
        record_audit(
            actor=self.request.user,
            action="catalog.category.delete",
            entity_type="category",
            entity_id=instance.id,
            summary=f"Deleted category {instance.name}",
            payload=_category_snapshot(instance),
        )
        super().perform_destroy(instance)


class VarietyViewSet(viewsets.ModelViewSet):
    serializer_class = VarietySerializer
    permission_classes = [RolePermission]
    pagination_class = None
    capability_map = {
        "list": ["catalog.view"],
        "retrieve": ["catalog.view"],
        "create": ["catalog.manage"],
        "update": ["catalog.manage"],
        "partial_update": ["catalog.manage"],
        "destroy": ["catalog.manage"],
    }

    def get_queryset(self):
        queryset = Variety.objects.select_related("category").order_by("category__name", "name")
        category_id = self.request.query_params.get("categoryId") or self.request.query_params.get("category")
        if category_id:
            queryset = queryset.filter(category_id=category_id)
        query = self.request.query_params.get("q")
        if query:
            query = query.strip()
            queryset = queryset.filter(Q(name__icontains=query) | Q(category__name__icontains=query))
        active = self.request.query_params.get("active")
        if active is not None:
            queryset = queryset.filter(is_active=active.strip().lower() in {"1", "true", "yes"})
        return queryset

    def perform_create(self, serializer):
        variety = serializer.save()
        record_audit(
            actor=self.request.user,
            action="catalog.variety.create",
            entity_type="variety",
            entity_id=variety.id,
            summary=f"Created variety {variety.name}",
            payload=_variety_snapshot(variety),
        )

    def perform_update(self, serializer):
        variety = serializer.instance
        before = _variety_snapshot(variety)
        new_category = serializer.validated_data.get("category")
        if new_category is not None and new_category.pk != variety.category_id and variety_dependents(variety):
            raise ConflictError("Cannot move a variety that already has lots, seed inward batches or orders.")
        variety = serializer.save()
        record_audit(
            actor=self.request.user,
            action="catalog.variety.update",
            entity_type="variety",
            entity_id=variety.id,
            summary=f"Updated variety {variety.name}",
            payload={"before": before, "after": _variety_snapshot(variety)},
        )

    def perform_destroy(self, instance):
        blocking = variety_dependents(instance)
        if blocking:
            raise ConflictError(f"Cannot delete variety: it is used by {', '.join(blocking)}.")
        record_audit(
            actor=self.request.user,
            action="catalog.variety.delete",
            entity_type="variety",
            entity_id=instance.id,
            summary=f"Deleted variety {instance.name}",
            payload=_variety_snapshot(instance),
        )
        super().perform_destroy(instance)
