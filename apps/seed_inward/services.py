import logging

from django.db import transaction
from django.db.models import F
from django.utils import timezone
from rest_framework import serializers
from rest_framework.exceptions import NotFound

from apps.audit.services import record_audit
from apps.common.conf import stock_limits_enforced
from apps.common.exceptions import CapacityExceededError, ConflictError
from apps.seed_inward.models import SeedInwardBatch

logger = logging.getLogger(__name__)

IDENTITY_FIELDS = ("category", "variety", "lot_number")


def _snapshot(batch):
    return {
        "lot_number": batch.lot_number,
        "category_id": batch.category_id,
        "variety_id": batch.variety_id,
        "number_of_packets": batch.number_of_packets,
        "total_quantity": batch.total_quantity,
        "available_quantity": batch.available_quantity,
    }


def receive_batch(*, actor, **fields):
    batch = SeedInwardBatch(created_by=actor, **fields)
    batch.available_quantity = batch.total_quantity
    with transaction.atomic():
        batch.save()
        record_audit(
            actor=actor,
            action="seed_inward.receive",
            entity_type="seed_inward",
            entity_id=batch.id,
            summary=f"Received {batch.total_quantity} of lot {batch.lot_number} from {batch.received_from}",
            payload=_snapshot(batch),
        )
    logger.info("Seed batch %s received with %s units", batch.lot_number, batch.total_quantity)
    return batch


def update_batch(*, actor, batch, **fields):
    before = _snapshot(batch)
    changes_identity = any(
        name in fields and getattr(batch, name) != fields[name] for name in IDENTITY_FIELDS
    )
    if changes_identity and batch.lots.exists():
        raise ConflictError("Cannot change category, variety or lot number of a batch already used by sowing lots.")

    with transaction.atomic():
        batch = SeedInwardBatch.objects.select_for_update().get(pk=batch.pk)
        consumed = batch.total_quantity - batch.available_quantity
        new_total = fields.get("total_quantity", batch.total_quantity)
        if new_total < consumed and stock_limits_enforced():
            raise serializers.ValidationError(
                {"total_quantity": f"Total quantity cannot be lower than the {consumed} units already sown."}
            )
        for name, value in fields.items():
            setattr(batch, name, value)
        batch.available_quantity = new_total - consumed
        batch.save()
        record_audit(
            actor=actor,
            action="seed_inward.update",
            entity_type="seed_inward",
            entity_id=batch.id,
            summary=f"Updated seed inward lot {batch.lot_number}",
            payload={"before": before, "after": _snapshot(batch)},
        )
    return batch


def delete_batch(*, actor, batch):
    if batch.lots.exists():
        raise ConflictError("Cannot delete seed inward batch: sowing lots were created from it.")
    record_audit(
        actor=actor,
        action="seed_inward.delete",
        entity_type="seed_inward",
        entity_id=batch.id,
        summary=f"Deleted seed inward lot {batch.lot_number}",
        payload=_snapshot(batch),
    )
    batch.delete()


def consume(batch_id, qty):
    """Take ``qty`` units out of a batch.

    With stock limits enforced this is a single conditional UPDATE, so two
    concurrent sowings cannot both draw the last units.
    """
    if qty <= 0:
        return
    queryset = SeedInwardBatch.objects.filter(pk=batch_id)
    if stock_limits_enforced():
        queryset = queryset.filter(available_quantity__gte=qty)
    updated = queryset.update(available_quantity=F("available_quantity") - qty, updated_at=timezone.now())
    if updated:
        return

    batch = SeedInwardBatch.objects.filter(pk=batch_id).first()
    if batch is None:
        raise NotFound("Seed inward batch not found.")
    logger.warning(
        "Rejected consumption of %s units from seed batch %s (available %s)",
        qty,
        batch.lot_number,
        batch.available_quantity,
    )
    raise CapacityExceededError(
        f"Seed inward lot {batch.lot_number} has only {batch.available_quantity} units left; {qty} requested."
    )


def release(batch_id, qty):
    if qty <= 0:
        return
    SeedInwardBatch.objects.filter(pk=batch_id).update(
        available_quantity=F("available_quantity") + qty,
        updated_at=timezone.now(),
    )


def find_batch_for_lot(*, category_id, variety_id, lot_number):
    return SeedInwardBatch.objects.filter(
        category_id=category_id,
        variety_id=variety_id,
        lot_number=lot_number,
    ).first()


def list_available_batches(*, category_id=None, variety_id=None, only_available=False):
    queryset = SeedInwardBatch.objects.select_related("category", "variety").order_by("expiry_date", "lot_number")
    if category_id:
        queryset = queryset.filter(category_id=category_id)
    if variety_id:
        queryset = queryset.filter(variety_id=variety_id)
    if only_available:
        queryset = queryset.filter(available_quantity__gt=0)
    return queryset
