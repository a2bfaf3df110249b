"""Intervention Repository - Data access for interventions and assignments"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from .mongo_client import get_collection, to_document
from ..domain.models import Intervention, Assignment, InterventionEvent
from ..domain.enums import InterventionStatus, AssignmentRole
from ..domain.errors import InterventionNotFoundError, ConcurrencyError, AlreadyExistsError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class InterventionRepository:
    """Repository for intervention operations"""

    def __init__(self):
        self._interventions: Collection = get_collection("interventions")
        self._assignments: Collection = get_collection("intervention_assignments")

    # =========================================================================
    # Intervention CRUD
    # =========================================================================

    def create_intervention(self, intervention: Intervention) -> Intervention:
        """Create a new intervention"""
        doc = to_document(intervention, intervention.intervention_id)
        self._interventions.insert_one(doc)
        logger.info(
            f"Created intervention: {intervention.intervention_id}",
            extra={"intervention_id": intervention.intervention_id, "team_id": intervention.team_id}
        )
        return intervention

    def get_intervention(self, intervention_id: str) -> Optional[Intervention]:
        """Get intervention by ID"""
        doc = self._interventions.find_one({"intervention_id": intervention_id})
        if doc:
            doc.pop("_id", None)
            return Intervention.model_validate(doc)
        return None

    def get_intervention_or_raise(self, intervention_id: str) -> Intervention:
        """Get intervention by ID or raise error"""
        intervention = self.get_intervention(intervention_id)
        if not intervention:
            raise InterventionNotFoundError(f"Intervention {intervention_id} not found")
        return intervention

    def apply_transition(
        self,
        intervention_id: str,
        expected_status: InterventionStatus,
        expected_version: Optional[int],
        updates: Dict[str, Any],
        event: Optional[InterventionEvent] = None,
        increments: Optional[Dict[str, int]] = None
    ) -> Intervention:
        """
        Compare-and-set write guarded on the current status and version.

        The status change, any counter increments and the pending event land in
        one document update, so either all of them are visible or none is.
        Passing ``expected_version=None`` guards on the status alone, for
        writes that do not change it.

        Raises:
            ConcurrencyError: status or version moved since the caller read it
            InterventionNotFoundError: intervention does not exist
        """
        set_fields = dict(updates)
        set_fields["updated_at"] = utc_now()

        inc_fields: Dict[str, int] = {"version": 1}
        if increments:
            inc_fields.update(increments)

        update: Dict[str, Any] = {"$set": set_fields, "$inc": inc_fields}
        if event is not None:
            update["$push"] = {"pending_events": to_document(event)}

        filter_query: Dict[str, Any] = {
            "intervention_id": intervention_id,
            "status": expected_status.value
        }
        if expected_version is not None:
            filter_query["version"] = expected_version

        result = self._interventions.find_one_and_update(
            filter_query,
            update,
            return_document=ReturnDocument.AFTER
        )

        if result is None:
            current = self._interventions.find_one(
                {"intervention_id": intervention_id},
                {"status": 1, "version": 1}
            )
            if current:
                raise ConcurrencyError(
                    f"Intervention {intervention_id} was modified. Please refresh and try again.",
                    details={
                        "expected_status": expected_status.value,
                        "expected_version": expected_version,
                        "current_status": current.get("status"),
                        "current_version": current.get("version")
                    }
                )
            raise InterventionNotFoundError(f"Intervention {intervention_id} not found")

        result.pop("_id", None)
        logger.info(
            f"Updated intervention: {intervention_id}",
            extra={
                "intervention_id": intervention_id,
                "old_status": expected_status.value,
                "new_status": result.get("status")
            }
        )
        return Intervention.model_validate(result)

    def clear_pending_event(self, intervention_id: str, event_id: str) -> bool:
        """Remove a dispatched event from the intervention"""
        result = self._interventions.update_one(
            {"intervention_id": intervention_id},
            {"$pull": {"pending_events": {"event_id": event_id}}}
        )
        return result.modified_count > 0

    def find_with_stale_events(self, older_than: datetime, limit: int = 50) -> List[Intervention]:
        """Interventions still holding events that were never dispatched"""
        cursor = self._interventions.find(
            {"pending_events": {"$elemMatch": {"occurred_at": {"$lte": older_than}}}}
        ).limit(limit)

        interventions = []
        for doc in cursor:
            doc.pop("_id", None)
            interventions.append(Intervention.model_validate(doc))
        return interventions

    def find_scheduled_between(
        self,
        start: datetime,
        end: datetime,
        status: InterventionStatus = InterventionStatus.PLANIFIEE
    ) -> List[Intervention]:
        """Interventions with scheduled_date in [start, end)"""
        cursor = self._interventions.find({
            "status": status.value,
            "scheduled_date": {"$gte": start, "$lt": end}
        }).sort("scheduled_date", ASCENDING)

        interventions = []
        for doc in cursor:
            doc.pop("_id", None)
            interventions.append(Intervention.model_validate(doc))
        return interventions

    def list_interventions(
        self,
        team_id: str,
        statuses: Optional[List[InterventionStatus]] = None,
        intervention_ids: Optional[List[str]] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[Intervention]:
        """List a team's interventions, newest first"""
        query: Dict[str, Any] = {"team_id": team_id}
        if statuses:
            query["status"] = {"$in": [s.value for s in statuses]}
        if intervention_ids is not None:
            query["intervention_id"] = {"$in": intervention_ids}

        cursor = self._interventions.find(query).sort("created_at", DESCENDING).skip(skip).limit(limit)

        interventions = []
        for doc in cursor:
            doc.pop("_id", None)
            interventions.append(Intervention.model_validate(doc))
        return interventions

    # =========================================================================
    # Assignments
    # =========================================================================

    def add_assignment(self, assignment: Assignment) -> Assignment:
        """
        Link a user to an intervention.

        Raises:
            AlreadyExistsError: the (user, role) pair is already assigned
        """
        doc = to_document(assignment, assignment.assignment_id)
        try:
            self._assignments.insert_one(doc)
        except DuplicateKeyError:
            raise AlreadyExistsError(
                f"User {assignment.user_id} is already assigned as {assignment.role.value}",
                details={"intervention_id": assignment.intervention_id, "user_id": assignment.user_id}
            )
        logger.info(
            f"Assigned {assignment.user_id} as {assignment.role.value}",
            extra={"intervention_id": assignment.intervention_id}
        )
        return assignment

    def remove_assignment(self, intervention_id: str, user_id: str, role: AssignmentRole) -> bool:
        """Unlink a user from an intervention"""
        result = self._assignments.delete_one({
            "intervention_id": intervention_id,
            "user_id": user_id,
            "role": role.value
        })
        return result.deleted_count > 0

    def get_assignments(
        self,
        intervention_id: str,
        role: Optional[AssignmentRole] = None
    ) -> List[Assignment]:
        """Get assignments for an intervention"""
        query: Dict[str, Any] = {"intervention_id": intervention_id}
        if role:
            query["role"] = role.value

        assignments = []
        for doc in self._assignments.find(query).sort("created_at", ASCENDING):
            doc.pop("_id", None)
            assignments.append(Assignment.model_validate(doc))
        return assignments

    def is_assigned(self, intervention_id: str, user_id: str, role: AssignmentRole) -> bool:
        """Check if user holds the given role on the intervention"""
        return self._assignments.count_documents({
            "intervention_id": intervention_id,
            "user_id": user_id,
            "role": role.value
        }, limit=1) > 0

    def get_intervention_ids_for_user(self, user_id: str) -> List[str]:
        """IDs of every intervention the user is assigned to"""
        return [
            doc["intervention_id"]
            for doc in self._assignments.find({"user_id": user_id}, {"intervention_id": 1})
        ]
