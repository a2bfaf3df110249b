"""Availability Repository - Participant availability windows per intervention"""
from typing import List

from pymongo import ASCENDING
from pymongo.collection import Collection

from .mongo_client import get_collection, to_document
from ..domain.models import Availability
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AvailabilityRepository:
    """Repository for availability windows"""

    def __init__(self):
        self._collection: Collection = get_collection("user_availabilities")

    def replace_for_user(
        self,
        intervention_id: str,
        user_id: str,
        availabilities: List[Availability]
    ) -> List[Availability]:
        """
        Replace everything a participant entered for an intervention.

        An empty list clears the participant's availabilities.
        """
        self._collection.delete_many({"intervention_id": intervention_id, "user_id": user_id})
        if availabilities:
            self._collection.insert_many([to_document(a, a.availability_id) for a in availabilities])
        logger.info(
            f"Stored {len(availabilities)} availability windows for {user_id}",
            extra={"intervention_id": intervention_id, "user_id": user_id}
        )
        return availabilities

    def get_for_user(self, intervention_id: str, user_id: str) -> List[Availability]:
        return self._find({"intervention_id": intervention_id, "user_id": user_id})

    def get_for_intervention(self, intervention_id: str) -> List[Availability]:
        """All windows of an intervention ordered by date and start time"""
        return self._find({"intervention_id": intervention_id})

    def _find(self, query: dict) -> List[Availability]:
        cursor = self._collection.find(query).sort([
            ("slot_date", ASCENDING), ("start_time", ASCENDING), ("user_id", ASCENDING)
        ])
        result = []
        for doc in cursor:
            doc.pop("_id", None)
            result.append(Availability.model_validate(doc))
        return result
