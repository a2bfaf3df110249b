"""Intervention Service - Role-appropriate views over engine results"""
from typing import Any, Dict, List, Optional

from ..domain.models import ActorContext, Intervention, TransitionResult
from ..domain.enums import InterventionStatus
from ..engine.engine import InterventionEngine
from ..engine.transition_table import get_available_actions
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Never shown to tenants or providers
MANAGER_ONLY_FIELDS = {"manager_comment"}
INTERNAL_FIELDS = {"pending_events", "version"}


class InterventionService:
    """Service for intervention operations exposed over HTTP"""

    def __init__(self, engine: Optional[InterventionEngine] = None):
        self.engine = engine or InterventionEngine()

    def to_view(self, intervention: Intervention, actor: ActorContext) -> Dict[str, Any]:
        """Serialize an intervention for the given actor"""
        exclude = set(INTERNAL_FIELDS)
        if not actor.is_manager:
            exclude |= MANAGER_ONLY_FIELDS
        view = intervention.model_dump(mode="json", exclude=exclude)
        view["version"] = intervention.version
        return view

    def respond(self, result: TransitionResult, actor: ActorContext) -> Dict[str, Any]:
        """Standard response for every mutating operation"""
        response: Dict[str, Any] = {
            "success": True,
            "intervention": self.to_view(result.intervention, actor),
            "available_actions": [
                a.value for a in get_available_actions(result.intervention.status, actor.role)
            ],
            "notifications": result.notifications.model_dump(),
            "event_id": result.event_id,
        }
        if result.quote is not None:
            response["quote"] = result.quote.model_dump(mode="json")
        if result.time_slot is not None:
            response["time_slot"] = result.time_slot.model_dump(mode="json")
        if result.availabilities is not None:
            response["availabilities"] = [a.model_dump(mode="json") for a in result.availabilities]
        return response

    def get_intervention(self, intervention_id: str, actor: ActorContext) -> Dict[str, Any]:
        intervention = self.engine.get_intervention(intervention_id, actor)
        return {
            "success": True,
            "intervention": self.to_view(intervention, actor),
            "available_actions": [a.value for a in get_available_actions(intervention.status, actor.role)],
        }

    def get_available_actions(self, intervention_id: str, actor: ActorContext) -> Dict[str, Any]:
        intervention = self.engine.get_intervention(intervention_id, actor)
        return {
            "success": True,
            "intervention_id": intervention_id,
            "status": intervention.status.value,
            "available_actions": [a.value for a in get_available_actions(intervention.status, actor.role)],
        }

    def list_interventions(
        self,
        actor: ActorContext,
        statuses: Optional[List[InterventionStatus]] = None,
        skip: int = 0,
        limit: int = 50
    ) -> Dict[str, Any]:
        interventions = self.engine.list_interventions(actor, statuses=statuses, skip=skip, limit=limit)
        return {
            "success": True,
            "items": [self.to_view(i, actor) for i in interventions],
            "skip": skip,
            "limit": limit,
        }

    def get_quotes(self, intervention_id: str, actor: ActorContext) -> Dict[str, Any]:
        quotes = self.engine.get_quotes(intervention_id, actor)
        return {"success": True, "items": [q.model_dump(mode="json") for q in quotes]}

    def get_time_slots(self, intervention_id: str, actor: ActorContext) -> Dict[str, Any]:
        slots = self.engine.get_time_slots(intervention_id, actor)
        return {"success": True, "items": [s.model_dump(mode="json") for s in slots]}

    def get_availabilities(self, intervention_id: str, actor: ActorContext) -> Dict[str, Any]:
        availabilities = self.engine.get_availabilities(intervention_id, actor)
        return {"success": True, "items": [a.model_dump(mode="json") for a in availabilities]}

    def match_availabilities(self, intervention_id: str, actor: ActorContext) -> Dict[str, Any]:
        matches = self.engine.match_availabilities(intervention_id, actor)
        return {"success": True, **matches.model_dump(mode="json")}
