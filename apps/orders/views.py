from django.db.models import Q
from rest_framework import generics, serializers, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.common.permissions import RolePermission
from apps.orders import services
from apps.orders.models import Order, OrderStatus, normalize_phone
from apps.orders.serializers import (
    CancelOrderSerializer,
    CustomerSerializer,
    DeliverOrderSerializer,
    OrderSerializer,
    UndoDeliverySerializer,
)

SORT_FIELDS = {
    "id": "id",
    "invoiceNumber": "id",
    "deliveryDate": "delivery_date",
    "customerName": "customer_name",
    "bookedQty": "booked_qty",
    "totalAmount": "total_amount",
    "status": "status",
    "createdAt": "created_at",
}


class OrderListQuerySerializer(serializers.Serializer):
    sortField = serializers.ChoiceField(choices=sorted(SORT_FIELDS), required=False, default="id")
    sortOrder = serializers.ChoiceField(choices=["asc", "desc"], required=False, default="desc")
    status = serializers.ChoiceField(choices=OrderStatus.choices, required=False)
    lotId = serializers.IntegerField(required=False)
    categoryId = serializers.IntegerField(required=False)
    varietyId = serializers.IntegerField(required=False)
    pendingLot = serializers.ChoiceField(choices=["true", "false", "1", "0"], required=False)
    q = serializers.CharField(required=False, allow_blank=True)
    deliveryFrom = serializers.DateField(required=False)
    deliveryTo = serializers.DateField(required=False)

    def validate(self, attrs):
        delivery_from = attrs.get("deliveryFrom")
        delivery_to = attrs.get("deliveryTo")
        if delivery_from and delivery_to and delivery_from > delivery_to:
            raise serializers.ValidationError({"deliveryFrom": "deliveryFrom must be before or equal to deliveryTo."})
        return attrs


class OrderViewSet(viewsets.ModelViewSet):
    serializer_class = OrderSerializer
    permission_classes = [RolePermission]
    capability_map = {
        "list": ["orders.view"],
        "retrieve": ["orders.view"],
        "today_deliveries": ["orders.view"],
        "unallocated_count": ["orders.view"],
        "create": ["orders.create"],
        "update": ["orders.manage"],
        "partial_update": ["orders.manage"],
        "deliver": ["orders.deliver"],
        "undo_delivery": ["orders.manage"],
        "cancel": ["orders.cancel"],
        "destroy": ["orders.delete"],
    }

    def get_queryset(self):
        queryset = Order.objects.select_related("lot", "category", "variety", "created_by")
        if self.action != "list":
            return queryset

        query_serializer = OrderListQuerySerializer(data=self.request.query_params)
        query_serializer.is_valid(raise_exception=True)
        params = query_serializer.validated_data

        if params.get("status"):
            queryset = queryset.filter(status=params["status"])
        if params.get("lotId"):
            queryset = queryset.filter(lot_id=params["lotId"])
        if params.get("categoryId"):
            queryset = queryset.filter(category_id=params["categoryId"])
        if params.get("varietyId"):
            queryset = queryset.filter(variety_id=params["varietyId"])
        if params.get("pendingLot"):
            queryset = queryset.filter(lot__isnull=params["pendingLot"] in {"true", "1"})
        if params.get("deliveryFrom"):
            queryset = queryset.filter(delivery_date__gte=params["deliveryFrom"])
        if params.get("deliveryTo"):
            queryset = queryset.filter(delivery_date__lte=params["deliveryTo"])
        query = (params.get("q") or "").strip()
        if query:
            lookup = (
                Q(customer_name__icontains=query)
                | Q(phone__icontains=query)
                | Q(invoice_number__iexact=query)
                | Q(lot__lot_number__icontains=query)
                | Q(variety__name__icontains=query)
            )
            normalized = normalize_phone(query)
            if normalized.isdigit():
                lookup |= Q(phone_normalized__icontains=normalized)
            queryset = queryset.filter(lookup)

        sort_field = SORT_FIELDS[params["sortField"]]
        prefix = "-" if params["sortOrder"] == "desc" else ""
        return queryset.order_by(f"{prefix}{sort_field}", f"{prefix}id")

    def perform_create(self, serializer):
        serializer.instance = services.book_order(actor=self.request.user, **serializer.validated_data)

    def perform_update(self, serializer):
        serializer.instance = services.update_order(
            actor=self.request.user,
            order=serializer.instance,
            **serializer.validated_data,
        )

    def perform_destroy(self, instance):
        services.delete_order(actor=self.request.user, order=instance)

    @action(detail=True, methods=["post"])
    def deliver(self, request, pk=None):
        order = self.get_object()
        serializer = DeliverOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = services.deliver_order(actor=request.user, order=order, **serializer.validated_data)
        return Response(OrderSerializer(order).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], url_path="undo-delivery")
    def undo_delivery(self, request, pk=None):
        order = self.get_object()
        serializer = UndoDeliverySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = services.undo_delivery(actor=request.user, order=order, reason=serializer.validated_data["reason"])
        return Response(OrderSerializer(order).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        order = self.get_object()
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = services.cancel_order(actor=request.user, order=order, reason=serializer.validated_data["reason"])
        return Response(OrderSerializer(order).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=["get"], url_path="today-deliveries")
    def today_deliveries(self, request):
        orders = services.today_deliveries().select_related("lot", "category", "variety").order_by("customer_name")
        return Response(OrderSerializer(orders, many=True).data)

    @action(detail=False, methods=["get"], url_path="unallocated-count")
    def unallocated_count(self, request):
        return Response({"count": services.unallocated_count()})


class CustomerLookupView(APIView):
    permission_classes = [RolePermission]
    capability_map = {"get": ["customers.view"]}

    def get(self, request):
        customer = services.lookup_customer_by_phone(request.query_params.get("phone", ""))
        return Response(CustomerSerializer(customer).data)


class CustomerDirectoryView(generics.GenericAPIView):
    permission_classes = [RolePermission]
    capability_map = {"get": ["customers.view"]}
    serializer_class = CustomerSerializer

    def get(self, request):
        customers = services.customer_directory(query=request.query_params.get("q"))
        page = self.paginate_queryset(customers)
        if page is not None:
            return self.get_paginated_response(self.get_serializer(page, many=True).data)
        return Response(self.get_serializer(customers, many=True).data)
