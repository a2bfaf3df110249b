"""Time Slot Repository - Data access for proposed slots and responses"""
from typing import Any, Dict, List, Optional
from pymongo import ASCENDING, ReturnDocument
from pymongo.collection import Collection

from .mongo_client import get_collection, to_document
from ..domain.models import TimeSlot, TimeSlotResponse
from ..domain.enums import TimeSlotStatus
from ..domain.errors import TimeSlotNotFoundError, InvalidStateError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class TimeSlotRepository:
    """Repository for time slot operations"""

    def __init__(self):
        self._slots: Collection = get_collection("intervention_time_slots")
        self._responses: Collection = get_collection("time_slot_responses")

    def create_slot(self, slot: TimeSlot) -> TimeSlot:
        """Create a time slot"""
        self._slots.insert_one(to_document(slot, slot.slot_id))
        logger.info(
            f"Created time slot {slot.slot_id} on {slot.slot_date.isoformat()}",
            extra={"intervention_id": slot.intervention_id, "slot_id": slot.slot_id}
        )
        return slot

    def delete_slot(self, slot_id: str) -> None:
        """Remove a slot whose intervention write did not go through"""
        self._slots.delete_one({"slot_id": slot_id})

    def get_slot(self, slot_id: str) -> Optional[TimeSlot]:
        """Get slot by ID"""
        doc = self._slots.find_one({"slot_id": slot_id})
        if doc:
            doc.pop("_id", None)
            return TimeSlot.model_validate(doc)
        return None

    def get_slot_or_raise(self, slot_id: str) -> TimeSlot:
        """Get slot by ID or raise error"""
        slot = self.get_slot(slot_id)
        if not slot:
            raise TimeSlotNotFoundError(f"Time slot {slot_id} not found")
        return slot

    def get_slots_for_intervention(
        self,
        intervention_id: str,
        statuses: Optional[List[TimeSlotStatus]] = None
    ) -> List[TimeSlot]:
        """Get slots for an intervention ordered by date"""
        query: Dict[str, Any] = {"intervention_id": intervention_id}
        if statuses:
            query["status"] = {"$in": [s.value for s in statuses]}

        slots = []
        for doc in self._slots.find(query).sort([("slot_date", ASCENDING), ("start_time", ASCENDING)]):
            doc.pop("_id", None)
            slots.append(TimeSlot.model_validate(doc))
        return slots

    def update_slot_status(
        self,
        slot_id: str,
        expected_status: TimeSlotStatus,
        new_status: TimeSlotStatus
    ) -> TimeSlot:
        """Move a slot between statuses, guarded on the current one"""
        result = self._slots.find_one_and_update(
            {"slot_id": slot_id, "status": expected_status.value},
            {"$set": {"status": new_status.value, "updated_at": utc_now()}},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            current = self.get_slot_or_raise(slot_id)
            raise InvalidStateError(
                f"Time slot {slot_id} is {current.status.value}, expected {expected_status.value}",
                details={"slot_id": slot_id, "status": current.status.value}
            )
        result.pop("_id", None)
        return TimeSlot.model_validate(result)

    def close_pending_slots(
        self,
        intervention_id: str,
        new_status: TimeSlotStatus,
        exclude_slot_id: Optional[str] = None
    ) -> int:
        """Withdraw every other pending slot of an intervention"""
        query: Dict[str, Any] = {
            "intervention_id": intervention_id,
            "status": TimeSlotStatus.PENDING.value
        }
        if exclude_slot_id:
            query["slot_id"] = {"$ne": exclude_slot_id}

        result = self._slots.update_many(
            query,
            {"$set": {"status": new_status.value, "updated_at": utc_now()}}
        )
        return result.modified_count

    # =========================================================================
    # Responses
    # =========================================================================

    def upsert_response(self, response: TimeSlotResponse) -> TimeSlotResponse:
        """Record a participant's answer, replacing any earlier one"""
        doc = to_document(response, response.response_id)
        existing = self._responses.find_one(
            {"slot_id": response.slot_id, "user_id": response.user_id},
            {"_id": 1, "response_id": 1}
        )
        if existing:
            doc["_id"] = existing["_id"]
            doc["response_id"] = existing["response_id"]
        self._responses.replace_one(
            {"slot_id": response.slot_id, "user_id": response.user_id},
            doc,
            upsert=True
        )
        return TimeSlotResponse.model_validate({k: v for k, v in doc.items() if k != "_id"})

    def get_responses_for_slot(self, slot_id: str) -> List[TimeSlotResponse]:
        """All answers recorded for a slot"""
        responses = []
        for doc in self._responses.find({"slot_id": slot_id}).sort("responded_at", ASCENDING):
            doc.pop("_id", None)
            responses.append(TimeSlotResponse.model_validate(doc))
        return responses

    def get_response(self, slot_id: str, user_id: str) -> Optional[TimeSlotResponse]:
        """A participant's current answer to a slot"""
        doc = self._responses.find_one({"slot_id": slot_id, "user_id": user_id})
        if doc:
            doc.pop("_id", None)
            return TimeSlotResponse.model_validate(doc)
        return None

    def delete_response(self, slot_id: str, user_id: str) -> None:
        """Drop a participant's answer"""
        self._responses.delete_one({"slot_id": slot_id, "user_id": user_id})
