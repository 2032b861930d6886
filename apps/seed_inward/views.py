from django.db.models import Q
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.common.permissions import RolePermission
from apps.seed_inward import services
from apps.seed_inward.models import SeedInwardBatch
from apps.seed_inward.serializers import SeedInwardBatchSerializer, SeedInwardLotOptionSerializer


class SeedInwardViewSet(viewsets.ModelViewSet):
    serializer_class = SeedInwardBatchSerializer
    permission_classes = [RolePermission]
    pagination_class = None
    capability_map = {
        "list": ["seed_inward.view"],
        "retrieve": ["seed_inward.view"],
        "lots": ["seed_inward.view"],
        "create": ["seed_inward.manage"],
        "update": ["seed_inward.manage"],
        "partial_update": ["seed_inward.manage"],
        "destroy": ["seed_inward.manage"],
    }

    def get_queryset(self):
        queryset = SeedInwardBatch.objects.select_related("category", "variety", "created_by")
        category_id = self.request.query_params.get("categoryId")
        if category_id:
            queryset = queryset.filter(category_id=category_id)
        variety_id = self.request.query_params.get("varietyId")
        if variety_id:
            queryset = queryset.filter(variety_id=variety_id)
        query = self.request.query_params.get("q")
        if query:
            query = query.strip()
            queryset = queryset.filter(
                Q(lot_number__icontains=query)
                | Q(received_from__icontains=query)
                | Q(variety__name__icontains=query)
            )
        return queryset

    def perform_create(self, serializer):
        serializer.instance = services.receive_batch(actor=self.request.user, **serializer.validated_data)

    def perform_update(self, serializer):
        serializer.instance = services.update_batch(
            actor=self.request.user,
            batch=serializer.instance,
            **serializer.validated_data,
        )

    def perform_destroy(self, instance):
        services.delete_batch(actor=self.request.user, batch=instance)

    @action(detail=False, methods=["get"])
    def lots(self, request):
        only_available = str(request.query_params.get("available", "")).lower() in {"1", "true", "yes"}
        batches = services.list_available_batches(
            category_id=request.query_params.get("categoryId"),
            variety_id=request.query_params.get("varietyId"),
            only_available=only_available,
        )
        return Response(SeedInwardLotOptionSerializer(batches, many=True).data)
