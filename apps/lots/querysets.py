from django.db.models import ExpressionWrapper, F, IntegerField, OuterRef, Subquery, Sum, Value
from django.db.models.functions import Coalesce

from apps.lots.models import SowingLot
from apps.orders.models import Order, OrderStatus


def compute_available(lot, orders):
    """Seeds sown, minus damage, minus every non-cancelled booking on ``lot``.

    Orders for other lots are ignored, so the full order list can be passed.
    The result goes negative when the lot is over-booked.
    """
    booked = sum(
        order.booked_qty
        for order in orders
        if order.lot_id == lot.id and order.status != OrderStatus.CANCELLED
    )
    return lot.seeds_sown - lot.damaged - booked


def _active_orders():
    return Order.objects.exclude(status=OrderStatus.CANCELLED)


def with_availability(queryset):
    booked_subquery = (
        _active_orders()
        .filter(lot_id=OuterRef("pk"))
        .values("lot_id")
        .annotate(total=Sum("booked_qty"))
        .values("total")
    )
    return queryset.annotate(
        booked_quantity=Coalesce(
            Subquery(booked_subquery, output_field=IntegerField()),
            Value(0, output_field=IntegerField()),
        ),
    ).annotate(
        available=ExpressionWrapper(
            F("seeds_sown") - F("damaged") - F("booked_quantity"),
            output_field=IntegerField(),
        ),
    )


def booked_quantity_for_lot(lot_id, exclude_order_id=None):
    orders = _active_orders().filter(lot_id=lot_id)
    if exclude_order_id is not None:
        orders = orders.exclude(pk=exclude_order_id)
    total = Coalesce(Sum("booked_qty"), Value(0), output_field=IntegerField())
    return orders.aggregate(total=total)["total"]


def available_for_lot(lot_id, exclude_order_id=None):
    lot = SowingLot.objects.only("seeds_sown", "damaged").get(pk=lot_id)
    return lot.seeds_sown - lot.damaged - booked_quantity_for_lot(lot_id, exclude_order_id=exclude_order_id)
