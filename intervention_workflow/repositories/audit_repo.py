"""Audit Repository - Data access for audit events"""
from typing import Any, Dict, List, Optional
from pymongo import DESCENDING
from pymongo.collection import Collection

from .mongo_client import get_collection, to_document
from ..domain.models import AuditEvent
from ..domain.enums import Action
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AuditRepository:
    """Repository for audit event operations (append-only)"""

    def __init__(self):
        self._audit_events: Collection = get_collection("audit_events")

    def create_event(self, event: AuditEvent) -> AuditEvent:
        """Create an audit event (append-only)"""
        self._audit_events.insert_one(to_document(event, event.audit_event_id))
        logger.info(
            f"Created audit event: {event.action.value}",
            extra={
                "intervention_id": event.intervention_id,
                "event_id": event.event_id,
                "actor_id": event.actor_id
            }
        )
        return event

    def get_events_for_intervention(
        self,
        intervention_id: str,
        actions: Optional[List[Action]] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[AuditEvent]:
        """Get audit events for an intervention, newest first"""
        query: Dict[str, Any] = {"intervention_id": intervention_id}
        if actions:
            query["action"] = {"$in": [a.value for a in actions]}

        cursor = self._audit_events.find(query).sort("timestamp", DESCENDING).skip(skip).limit(limit)

        events = []
        for doc in cursor:
            doc.pop("_id", None)
            events.append(AuditEvent.model_validate(doc))
        return events

    def event_recorded(self, event_id: str) -> bool:
        """A transition event was already written to the trail"""
        return self._audit_events.count_documents({"event_id": event_id}, limit=1) > 0
