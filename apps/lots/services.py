import logging

from django.db import transaction
from django.utils import timezone
from rest_framework import serializers

from apps.audit.services import record_audit
from apps.common.conf import stock_limits_enforced
from apps.common.exceptions import CapacityExceededError, ConflictError
from apps.lots.models import LotDamageEntry, SowingLot, damage_percentage_for, damaged_from_percentage
from apps.lots.querysets import available_for_lot
from apps.orders.models import Order, OrderStatus
from apps.seed_inward import services as seed_inward_services

logger = logging.getLogger(__name__)


def _snapshot(lot):
    return {
        "lot_number": lot.lot_number,
        "category_id": lot.category_id,
        "variety_id": lot.variety_id,
        "seed_inward_id": lot.seed_inward_id,
        "seeds_sown": lot.seeds_sown,
        "packets_sown": lot.packets_sown,
        "damaged": lot.damaged,
        "damage_percentage": str(lot.damage_percentage),
    }


def create_lot(*, actor, **fields):
    seeds_sown = fields["seeds_sown"]
    damage_percentage = fields.pop("damage_percentage", None)
    damaged = fields.pop("damaged", None)
    if damaged is None:
        damaged = damaged_from_percentage(seeds_sown, damage_percentage) if damage_percentage else 0
    if damaged > seeds_sown:
        raise serializers.ValidationError({"damaged": "Damaged quantity cannot exceed seeds sown."})

    batch = fields.pop("seed_inward", None)
    if batch is None:
        batch = seed_inward_services.find_batch_for_lot(
            category_id=fields["category"].id,
            variety_id=fields["variety"].id,
            lot_number=fields["lot_number"],
        )

    with transaction.atomic():
        lot = SowingLot.objects.create(
            seed_inward=batch,
            damaged=damaged,
            damage_percentage=damage_percentage_for(damaged, seeds_sown),
            created_by=actor,
            **fields,
        )
        if batch is not None:
            seed_inward_services.consume(batch.id, lot.seeds_sown)
        record_audit(
            actor=actor,
            action="lots.create",
            entity_type="lot",
            entity_id=lot.id,
            summary=f"Sowed lot {lot.lot_number} with {lot.seeds_sown} seeds",
            payload=_snapshot(lot),
        )
    logger.info("Lot %s created with %s seeds sown", lot.lot_number, lot.seeds_sown)
    return lot


def record_damage(*, actor, lot, additional_damaged, reason=""):
    """Add ``additional_damaged`` seedlings to the lot.

    Damage only ever grows through this call; repeating it adds again.
    """
    if additional_damaged < 1:
        raise serializers.ValidationError({"additional_damaged": "Damaged quantity must be at least 1."})

    with transaction.atomic():
        lot = SowingLot.objects.select_for_update().get(pk=lot.pk)
        if lot.damaged + additional_damaged > lot.seeds_sown:
            raise serializers.ValidationError(
                {
                    "additional_damaged": (
                        f"Total damage ({lot.damaged} + {additional_damaged}) "
                        f"cannot exceed seeds sown ({lot.seeds_sown})."
                    )
                }
            )
        lot.damaged += additional_damaged
        lot.damage_percentage = damage_percentage_for(lot.damaged, lot.seeds_sown)
        lot.save(update_fields=["damaged", "damage_percentage", "updated_at"])
        LotDamageEntry.objects.create(
            lot=lot,
            quantity=additional_damaged,
            reason=reason,
            damaged_after=lot.damaged,
            created_by=actor,
        )
        record_audit(
            actor=actor,
            action="lots.damage",
            entity_type="lot",
            entity_id=lot.id,
            summary=f"Recorded {additional_damaged} damaged in lot {lot.lot_number}",
            payload={"quantity": additional_damaged, "damaged": lot.damaged, "reason": reason},
        )
    return lot


def _sync_seed_inward(lot, old_batch_id, old_seeds_sown):
    if lot.seed_inward_id != old_batch_id:
        if old_batch_id:
            seed_inward_services.release(old_batch_id, old_seeds_sown)
        if lot.seed_inward_id:
            seed_inward_services.consume(lot.seed_inward_id, lot.seeds_sown)
        return

    if lot.seed_inward_id and lot.seeds_sown != old_seeds_sown:
        delta = lot.seeds_sown - old_seeds_sown
        if delta > 0:
            seed_inward_services.consume(lot.seed_inward_id, delta)
        else:
            seed_inward_services.release(lot.seed_inward_id, -delta)


def update_lot(*, actor, lot, **fields):
    with transaction.atomic():
        lot = SowingLot.objects.select_for_update().get(pk=lot.pk)
        before = _snapshot(lot)
        old_available = available_for_lot(lot.pk)

        damage_percentage = fields.pop("damage_percentage", None)
        for name, value in fields.items():
            setattr(lot, name, value)
        if damage_percentage is not None and "damaged" not in fields:
            lot.damaged = damaged_from_percentage(lot.seeds_sown, damage_percentage)
        if lot.damaged > lot.seeds_sown:
            raise serializers.ValidationError({"damaged": "Damaged quantity cannot exceed seeds sown."})
        lot.damage_percentage = damage_percentage_for(lot.damaged, lot.seeds_sown)

        _sync_seed_inward(lot, before["seed_inward_id"], before["seeds_sown"])
        lot.save()

        if stock_limits_enforced() and lot.seeds_sown < before["seeds_sown"]:
            available = available_for_lot(lot.pk)
            if available < 0 and available < old_available:
                logger.warning("Rejected shrinking lot %s below its bookings", lot.lot_number)
                raise CapacityExceededError(
                    f"Lot {lot.lot_number} would be over-booked by {-available} after this change."
                )

        record_audit(
            actor=actor,
            action="lots.update",
            entity_type="lot",
            entity_id=lot.id,
            summary=f"Updated lot {lot.lot_number}",
            payload={"before": before, "after": _snapshot(lot)},
        )
    return lot


def delete_lot(*, actor, lot):
    if lot.orders.exists():
        raise ConflictError("Cannot delete lot: orders are booked against it.")
    with transaction.atomic():
        if lot.seed_inward_id:
            seed_inward_services.release(lot.seed_inward_id, lot.seeds_sown)
        record_audit(
            actor=actor,
            action="lots.delete",
            entity_type="lot",
            entity_id=lot.id,
            summary=f"Deleted lot {lot.lot_number}",
            payload=_snapshot(lot),
        )
        lot.delete()


def allocate_pending_orders(*, actor, lot, order_ids):
    """Attach orders booked without a lot to ``lot``.

    Only BOOKED orders of the lot's category and variety qualify; the caller
    picks which ones.
    """
    order_ids = list(dict.fromkeys(order_ids))
    with transaction.atomic():
        lot = SowingLot.objects.select_for_update().get(pk=lot.pk)
        orders = list(Order.objects.select_for_update().filter(pk__in=order_ids).order_by("delivery_date", "id"))
        missing = sorted(set(order_ids) - {order.id for order in orders})
        if missing:
            raise serializers.ValidationError({"orders": f"Unknown orders: {missing}"})

        for order in orders:
            if order.lot_id is not None or order.status != OrderStatus.BOOKED:
                raise serializers.ValidationError({"orders": f"Order {order.id} is not waiting for a lot."})
            if order.category_id != lot.category_id or order.variety_id != lot.variety_id:
                raise serializers.ValidationError(
                    {"orders": f"Order {order.id} is for a different category or variety than lot {lot.lot_number}."}
                )

        requested = sum(order.booked_qty for order in orders)
        if stock_limits_enforced():
            available = available_for_lot(lot.pk)
            if requested > available:
                logger.warning(
                    "Rejected allocating %s units to lot %s (available %s)", requested, lot.lot_number, available
                )
                raise CapacityExceededError(
                    f"Lot {lot.lot_number} has only {available} available; {requested} requested."
                )

        Order.objects.filter(pk__in=[order.id for order in orders]).update(lot=lot, updated_at=timezone.now())
        record_audit(
            actor=actor,
            action="lots.allocate_orders",
            entity_type="lot",
            entity_id=lot.id,
            summary=f"Allocated {len(orders)} pending orders to lot {lot.lot_number}",
            payload={"order_ids": [order.id for order in orders], "quantity": requested},
        )
    return Order.objects.filter(pk__in=[order.id for order in orders]).order_by("delivery_date", "id")
