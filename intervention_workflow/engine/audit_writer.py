"""Audit Writer - Append-only activity log of intervention events"""
from typing import Optional

from ..domain.models import AuditEvent, InterventionEvent
from ..repositories.audit_repo import AuditRepository
from ..utils.idgen import generate_audit_event_id
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AuditWriter:
    """
    Write audit events (append-only)

    Every committed event produces exactly one audit entry, also when the
    event is replayed after a crash.
    """

    def __init__(self, repo: Optional[AuditRepository] = None):
        self.repo = repo or AuditRepository()

    def write_event(self, event: InterventionEvent) -> Optional[AuditEvent]:
        """Record an event unless it is already in the trail"""
        if self.repo.event_recorded(event.event_id):
            return None

        audit_event = AuditEvent(
            audit_event_id=generate_audit_event_id(),
            intervention_id=event.intervention_id,
            event_id=event.event_id,
            action=event.action,
            old_status=event.old_status,
            new_status=event.new_status,
            actor_id=event.actor_id,
            actor_role=event.actor_role,
            details=_public_details(event),
            timestamp=event.occurred_at,
            correlation_id=event.correlation_id
        )
        return self.repo.create_event(audit_event)


def _public_details(event: InterventionEvent) -> dict:
    details = dict(event.payload)
    if event.actor_name:
        details["actor_name"] = event.actor_name
    return details
