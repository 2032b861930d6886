from django.db.models import Q
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.common.permissions import RolePermission
from apps.lots import services
from apps.lots.models import SowingLot
from apps.lots.querysets import with_availability
from apps.lots.serializers import (
    AllocateOrdersSerializer,
    LotDetailSerializer,
    LotSerializer,
    RecordDamageSerializer,
)
from apps.orders.serializers import OrderSerializer


class LotViewSet(viewsets.ModelViewSet):
    permission_classes = [RolePermission]
    pagination_class = None
    capability_map = {
        "list": ["lots.view"],
        "retrieve": ["lots.view"],
        "create": ["lots.manage"],
        "update": ["lots.manage"],
        "partial_update": ["lots.manage"],
        "damage": ["lots.manage"],
        "allocate_orders": ["lots.manage", "orders.manage"],
        "destroy": ["lots.delete"],
    }

    def get_serializer_class(self):
        if self.action == "retrieve":
            return LotDetailSerializer
        return LotSerializer

    def get_queryset(self):
        queryset = with_availability(
            SowingLot.objects.select_related("category", "variety", "seed_inward", "created_by")
        )
        if self.action == "retrieve":
            queryset = queryset.prefetch_related("damage_entries__created_by")
        params = self.request.query_params
        if params.get("categoryId"):
            queryset = queryset.filter(category_id=params["categoryId"])
        if params.get("varietyId"):
            queryset = queryset.filter(variety_id=params["varietyId"])
        if str(params.get("available", "")).lower() in {"1", "true", "yes"}:
            queryset = queryset.filter(available__gt=0)
        query = params.get("q")
        if query:
            query = query.strip()
            queryset = queryset.filter(
                Q(lot_number__icontains=query)
                | Q(variety__name__icontains=query)
                | Q(category__name__icontains=query)
            )
        return queryset

    def _fresh(self, lot):
        return with_availability(SowingLot.objects.select_related("category", "variety", "seed_inward")).get(
            pk=lot.pk
        )

    def perform_create(self, serializer):
        lot = services.create_lot(actor=self.request.user, **serializer.validated_data)
        serializer.instance = self._fresh(lot)

    def perform_update(self, serializer):
        lot = services.update_lot(actor=self.request.user, lot=serializer.instance, **serializer.validated_data)
        serializer.instance = self._fresh(lot)

    def perform_destroy(self, instance):
        services.delete_lot(actor=self.request.user, lot=instance)

    @action(detail=True, methods=["post"])
    def damage(self, request, pk=None):
        lot = self.get_object()
        serializer = RecordDamageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        lot = services.record_damage(actor=request.user, lot=lot, **serializer.validated_data)
        return Response(LotSerializer(self._fresh(lot)).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], url_path="allocate-orders")
    def allocate_orders(self, request, pk=None):
        lot = self.get_object()
        serializer = AllocateOrdersSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        orders = services.allocate_pending_orders(
            actor=request.user,
            lot=lot,
            order_ids=serializer.validated_data["order_ids"],
        )
        return Response(
            {
                "lot": LotSerializer(self._fresh(lot)).data,
                "orders": OrderSerializer(orders, many=True).data,
            }
        )
