import logging

from apps.audit.models import AuditLog

logger = logging.getLogger(__name__)


def record_audit(*, actor, action, entity_type, entity_id, payload=None, summary=""):
    """Persist one audit row for a mutation performed by ``actor``.

    Anonymous actors are stored as NULL so that system jobs can audit too.
    """
    if actor is not None and not getattr(actor, "is_authenticated", False):
        actor = None
    entry = AuditLog.objects.create(
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        summary=summary[:255],
        payload=payload or {},
    )
    logger.debug("audit %s %s#%s by %s", action, entity_type, entity_id, getattr(actor, "username", None))
    return entry
