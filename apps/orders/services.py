import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import Count, Max, Q, Sum
from django.utils import timezone
from rest_framework import serializers
from rest_framework.exceptions import NotFound

from apps.audit.services import record_audit
from apps.common.conf import stock_limits_enforced
from apps.common.exceptions import CapacityExceededError, InvalidTransitionError
from apps.lots.models import SowingLot
from apps.lots.querysets import available_for_lot
from apps.orders.models import Order, OrderStatus, normalize_phone, order_total

logger = logging.getLogger(__name__)

CUSTOMER_FIELDS = ("customer_name", "phone", "village", "state", "district", "taluk")


def _snapshot(order):
    return {
        "invoice_number": order.invoice_number,
        "lot_id": order.lot_id,
        "category_id": order.category_id,
        "variety_id": order.variety_id,
        "customer_name": order.customer_name,
        "phone": order.phone,
        "booked_qty": order.booked_qty,
        "unit_price": str(order.unit_price),
        "discount": str(order.discount),
        "total_amount": str(order.total_amount),
        "advance_amount": str(order.advance_amount),
        "delivery_date": order.delivery_date.isoformat() if order.delivery_date else None,
        "status": order.status,
    }


def _check_amounts(order):
    gross = Decimal(order.booked_qty) * Decimal(order.unit_price)
    if Decimal(order.discount) > gross:
        raise serializers.ValidationError({"discount": "Discount cannot exceed the order amount."})
    total = order_total(order.booked_qty, order.unit_price, order.discount)
    if Decimal(order.advance_amount) > total:
        raise serializers.ValidationError({"advance_amount": "Advance amount cannot exceed the total amount."})


def _ensure_capacity(lot_id, booked_qty, exclude_order_id=None):
    """Lock the lot row and reject ``booked_qty`` if it exceeds availability."""
    if not stock_limits_enforced():
        return
    lot = SowingLot.objects.select_for_update().get(pk=lot_id)
    available = available_for_lot(lot.pk, exclude_order_id=exclude_order_id)
    if booked_qty > available:
        logger.warning("Rejected booking of %s on lot %s (available %s)", booked_qty, lot.lot_number, available)
        raise CapacityExceededError(
            f"Lot {lot.lot_number} has only {available} available; {booked_qty} requested."
        )


def book_order(*, actor, **fields):
    lot = fields.get("lot")
    if lot is not None:
        fields["category"] = lot.category
        fields["variety"] = lot.variety
    fields["status"] = OrderStatus.BOOKED
    order = Order(created_by=actor, **fields)
    _check_amounts(order)

    with transaction.atomic():
        if lot is not None:
            _ensure_capacity(lot.pk, order.booked_qty)
        order.save()
        record_audit(
            actor=actor,
            action="orders.create",
            entity_type="order",
            entity_id=order.id,
            summary=f"Booked {order.booked_qty} for {order.customer_name} ({order.invoice_number})",
            payload=_snapshot(order),
        )
    logger.info("Order %s booked: %s units, lot %s", order.invoice_number, order.booked_qty, order.lot_id or "pending")
    return order


def update_order(*, actor, order, **fields):
    with transaction.atomic():
        order = Order.objects.select_for_update().get(pk=order.pk)
        before = _snapshot(order)

        new_status = fields.pop("status", order.status)
        if order.status == OrderStatus.CANCELLED and (fields or new_status != order.status):
            raise InvalidTransitionError(f"Order {order.invoice_number} is cancelled and can no longer be edited.")
        if new_status != order.status:
            if new_status != OrderStatus.CANCELLED or not order.can_transition_to(new_status):
                raise InvalidTransitionError(f"Cannot change order status from {order.status} to {new_status}.")

        old_lot_id = order.lot_id
        old_qty = order.booked_qty
        for name, value in fields.items():
            setattr(order, name, value)
        if order.lot is not None:
            order.category = order.lot.category
            order.variety = order.lot.variety
        elif order.variety.category_id != order.category_id:
            raise serializers.ValidationError({"variety": "Variety does not belong to the selected category."})
        order.status = new_status
        _check_amounts(order)

        grows = order.lot_id != old_lot_id or order.booked_qty > old_qty
        if order.lot_id and grows and order.status != OrderStatus.CANCELLED:
            _ensure_capacity(order.lot_id, order.booked_qty, exclude_order_id=order.pk)

        order.save()
        record_audit(
            actor=actor,
            action="orders.cancel" if before["status"] != order.status else "orders.update",
            entity_type="order",
            entity_id=order.id,
            summary=f"Updated order {order.invoice_number}",
            payload={"before": before, "after": _snapshot(order)},
        )
    return order


def _transition(order, target):
    if not order.can_transition_to(target):
        raise InvalidTransitionError(f"Cannot change order status from {order.status} to {target}.")


def deliver_order(
    *,
    actor,
    order,
    actual_delivery_date,
    actual_delivery_time,
    delivered_qty,
    vehicle_details="",
    driver_name="",
    driver_phone="",
):
    with transaction.atomic():
        order = Order.objects.select_for_update().get(pk=order.pk)
        _transition(order, OrderStatus.DELIVERED)
        if delivered_qty > order.booked_qty:
            raise serializers.ValidationError({"delivered_qty": "Delivered quantity cannot exceed booked quantity."})

        order.status = OrderStatus.DELIVERED
        order.actual_delivery_date = actual_delivery_date
        order.actual_delivery_time = actual_delivery_time
        order.delivered_qty = delivered_qty
        order.vehicle_details = vehicle_details
        order.driver_name = driver_name
        order.driver_phone = driver_phone
        order.save()
        record_audit(
            actor=actor,
            action="orders.deliver",
            entity_type="order",
            entity_id=order.id,
            summary=f"Delivered {delivered_qty} for order {order.invoice_number}",
            payload={
                "delivered_qty": delivered_qty,
                "actual_delivery_date": order.actual_delivery_date.isoformat(),
                "vehicle_details": vehicle_details,
                "driver_name": driver_name,
            },
        )
    logger.info("Order %s delivered", order.invoice_number)
    return order


def undo_delivery(*, actor, order, reason):
    """Move a delivered order back to BOOKED. Delivery details stay on the row."""
    with transaction.atomic():
        order = Order.objects.select_for_update().get(pk=order.pk)
        _transition(order, OrderStatus.BOOKED)
        order.status = OrderStatus.BOOKED
        order.save(update_fields=["status", "updated_at"])
        record_audit(
            actor=actor,
            action="orders.undo_delivery",
            entity_type="order",
            entity_id=order.id,
            summary=f"Undid delivery of order {order.invoice_number}",
            payload={"reason": reason},
        )
    logger.info("Delivery of order %s undone: %s", order.invoice_number, reason)
    return order


def cancel_order(*, actor, order, reason=""):
    with transaction.atomic():
        order = Order.objects.select_for_update().get(pk=order.pk)
        _transition(order, OrderStatus.CANCELLED)
        order.status = OrderStatus.CANCELLED
        order.save(update_fields=["status", "updated_at"])
        record_audit(
            actor=actor,
            action="orders.cancel",
            entity_type="order",
            entity_id=order.id,
            summary=f"Cancelled order {order.invoice_number}",
            payload={"reason": reason, "booked_qty": order.booked_qty, "lot_id": order.lot_id},
        )
    logger.info("Order %s cancelled", order.invoice_number)
    return order


def delete_order(*, actor, order):
    record_audit(
        actor=actor,
        action="orders.delete",
        entity_type="order",
        entity_id=order.id,
        summary=f"Deleted order {order.invoice_number}",
        payload=_snapshot(order),
    )
    order.delete()


def lookup_customer_by_phone(phone):
    normalized = normalize_phone(phone)
    if not normalized:
        raise serializers.ValidationError({"phone": "phone is required"})
    order = Order.objects.filter(phone_normalized=normalized).order_by("-created_at", "-id").first()
    if order is None:
        raise NotFound("No customer found for this phone number.")
    return {name: getattr(order, name) for name in CUSTOMER_FIELDS}


def customer_directory(query=None):
    orders = Order.objects.all()
    if query:
        query = query.strip()
        orders = orders.filter(
            Q(customer_name__icontains=query)
            | Q(phone__icontains=query)
            | Q(village__icontains=query)
            | Q(phone_normalized__icontains=normalize_phone(query))
        )
    rows = list(
        orders.values("phone_normalized")
        .annotate(
            order_count=Count("id"),
            total_quantity=Sum("booked_qty", filter=~Q(status=OrderStatus.CANCELLED)),
            last_delivery_date=Max("delivery_date"),
            last_order_id=Max("id"),
        )
        .order_by("-last_order_id")
    )
    latest = Order.objects.in_bulk([row["last_order_id"] for row in rows])
    customers = []
    for row in rows:
        order = latest[row["last_order_id"]]
        customer = {name: getattr(order, name) for name in CUSTOMER_FIELDS}
        customer.update(
            order_count=row["order_count"],
            total_quantity=row["total_quantity"] or 0,
            last_delivery_date=row["last_delivery_date"],
        )
        customers.append(customer)
    return customers


def today_deliveries():
    return Order.objects.filter(status=OrderStatus.BOOKED, delivery_date=timezone.localdate())


def unallocated_count():
    return Order.objects.filter(status=OrderStatus.BOOKED, lot__isnull=True).count()
