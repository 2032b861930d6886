from datetime import timedelta
from decimal import Decimal

from django.db.models import Count, DecimalField, F, IntegerField, Q, Sum, Value
from django.db.models.functions import Coalesce
from django.utils import timezone
from rest_framework import generics, serializers
from rest_framework.response import Response

from apps.common.conf import upcoming_delivery_days
from apps.common.permissions import RolePermission
from apps.lots.models import SowingLot
from apps.lots.querysets import with_availability
from apps.orders.models import Order, OrderStatus
from apps.orders.serializers import OrderSerializer

MONEY = DecimalField(max_digits=16, decimal_places=2)
QUANTITY = IntegerField()
CENT = Decimal("0.01")


def _money(value):
    return str(Decimal(value or 0).quantize(CENT))


class DeliveryReportQuerySerializer(serializers.Serializer):
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)
    district = serializers.CharField(required=False, allow_blank=True)
    taluk = serializers.CharField(required=False, allow_blank=True)
    q = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        date_from = attrs.get("date_from")
        date_to = attrs.get("date_to")
        if date_from and date_to and date_from > date_to:
            raise serializers.ValidationError({"date_from": "date_from must be before or equal to date_to."})
        return attrs


class ReportMixin:
    permission_classes = [RolePermission]
    capability_map = {"get": ["reports.view"]}


class DashboardView(ReportMixin, generics.GenericAPIView):
    def get(self, request):
        today = timezone.localdate()
        horizon = today + timedelta(days=upcoming_delivery_days())

        sown_today = SowingLot.objects.filter(sowing_date=today).aggregate(
            lots=Count("id"),
            seeds=Coalesce(Sum("seeds_sown"), 0, output_field=QUANTITY),
        )
        booked = Order.objects.filter(status=OrderStatus.BOOKED)
        upcoming = booked.filter(delivery_date__gte=today, delivery_date__lte=horizon)
        upcoming_qty = upcoming.aggregate(total=Coalesce(Sum("booked_qty"), 0, output_field=QUANTITY))["total"]
        by_variety = list(
            Order.objects.exclude(status=OrderStatus.CANCELLED)
            .values("variety_id", "variety__name", "category__name")
            .annotate(
                orders=Count("id"),
                quantity=Coalesce(Sum("booked_qty"), 0, output_field=QUANTITY),
                amount=Coalesce(Sum("total_amount"), Value(Decimal("0.00")), output_field=MONEY),
                advance=Coalesce(Sum("advance_amount"), Value(Decimal("0.00")), output_field=MONEY),
            )
            .order_by("-quantity", "variety__name")
        )

        return Response(
            {
                "date": today,
                "sowing_today": {"lots": sown_today["lots"], "seeds_sown": sown_today["seeds"]},
                "active_lots": with_availability(SowingLot.objects.all()).filter(available__gt=0).count(),
                "pending_orders": booked.count(),
                "unallocated_orders": booked.filter(lot__isnull=True).count(),
                "upcoming_deliveries": {
                    "days": upcoming_delivery_days(),
                    "count": upcoming.count(),
                    "quantity": upcoming_qty,
                },
                "sales_by_variety": [
                    {
                        "variety_id": row["variety_id"],
                        "variety_name": row["variety__name"],
                        "category_name": row["category__name"],
                        "orders": row["orders"],
                        "quantity": row["quantity"],
                        "amount": _money(row["amount"]),
                        "advance": _money(row["advance"]),
                    }
                    for row in by_variety
                ],
            }
        )


class DeliveryReportView(ReportMixin, generics.GenericAPIView):
    """Delivered and still-pending orders for a date range.

    Delivered orders are matched on ``actual_delivery_date``, pending ones on
    the promised ``delivery_date``. District, taluk and ``q`` narrow both.
    """

    def get(self, request):
        query_serializer = DeliveryReportQuerySerializer(data=request.query_params)
        query_serializer.is_valid(raise_exception=True)
        params = query_serializer.validated_data
        date_from = params.get("date_from")
        date_to = params.get("date_to")

        orders = Order.objects.select_related("lot", "category", "variety")
        if params.get("district"):
            orders = orders.filter(district__iexact=params["district"])
        if params.get("taluk"):
            orders = orders.filter(taluk__iexact=params["taluk"])
        if params.get("q"):
            term = params["q"]
            orders = orders.filter(
                Q(customer_name__icontains=term) | Q(village__icontains=term) | Q(phone__icontains=term)
            )

        delivered = orders.filter(status=OrderStatus.DELIVERED)
        pending = orders.filter(status=OrderStatus.BOOKED)
        if date_from:
            delivered = delivered.filter(actual_delivery_date__gte=date_from)
            pending = pending.filter(delivery_date__gte=date_from)
        if date_to:
            delivered = delivered.filter(actual_delivery_date__lte=date_to)
            pending = pending.filter(delivery_date__lte=date_to)

        totals = delivered.aggregate(
            orders=Count("id"),
            delivered_quantity=Coalesce(Sum("delivered_qty"), 0, output_field=QUANTITY),
            amount=Coalesce(Sum("total_amount"), Value(Decimal("0.00")), output_field=MONEY),
            advance=Coalesce(Sum("advance_amount"), Value(Decimal("0.00")), output_field=MONEY),
        )
        totals["short_deliveries"] = delivered.filter(delivered_qty__lt=F("booked_qty")).count()
        totals["amount"] = _money(totals["amount"])
        totals["advance"] = _money(totals["advance"])

        pending_totals = pending.aggregate(
            orders=Count("id"),
            quantity=Coalesce(Sum("booked_qty"), 0, output_field=QUANTITY),
            amount=Coalesce(Sum("total_amount"), Value(Decimal("0.00")), output_field=MONEY),
            balance=Coalesce(Sum(F("total_amount") - F("advance_amount")), Value(Decimal("0.00")), output_field=MONEY),
        )
        pending_totals["amount"] = _money(pending_totals["amount"])
        pending_totals["balance"] = _money(pending_totals["balance"])

        by_variety = (
            delivered.values("variety_id", "variety__name")
            .annotate(
                orders=Count("id"),
                quantity=Coalesce(Sum("delivered_qty"), 0, output_field=QUANTITY),
                amount=Coalesce(Sum("total_amount"), Value(Decimal("0.00")), output_field=MONEY),
            )
            .order_by("variety__name")
        )
        by_village = (
            delivered.values("village")
            .annotate(
                orders=Count("id"),
                quantity=Coalesce(Sum("delivered_qty"), 0, output_field=QUANTITY),
                collected=Coalesce(Sum("advance_amount"), Value(Decimal("0.00")), output_field=MONEY),
                balance=Coalesce(
                    Sum(F("total_amount") - F("advance_amount")),
                    Value(Decimal("0.00")),
                    output_field=MONEY,
                ),
            )
            .order_by("village")
        )

        return Response(
            {
                "date_from": date_from,
                "date_to": date_to,
                "district": params.get("district"),
                "taluk": params.get("taluk"),
                "totals": totals,
                "orders": OrderSerializer(delivered.order_by("actual_delivery_date", "id"), many=True).data,
                "pending": {
                    "totals": pending_totals,
                    "orders": OrderSerializer(pending.order_by("delivery_date", "id"), many=True).data,
                },
                "by_variety": [
                    {
                        "variety_id": row["variety_id"],
                        "variety_name": row["variety__name"],
                        "orders": row["orders"],
                        "quantity": row["quantity"],
                        "amount": _money(row["amount"]),
                    }
                    for row in by_variety
                ],
                "by_village": [
                    {
                        "village": row["village"] or "Unknown",
                        "orders": row["orders"],
                        "quantity": row["quantity"],
                        "payment_collected": _money(row["collected"]),
                        "pending_balance": _money(row["balance"]),
                    }
                    for row in by_village
                ],
            }
        )
