"""In-App Notification Repository - Data access for the notification bell"""
from typing import Any, Dict, List
from pymongo import DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from .mongo_client import get_collection, to_document
from ..domain.models import Notification
from ..domain.enums import NotificationKind
from ..domain.errors import NotFoundError
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class NotificationRepository:
    """Repository for in-app notification operations"""

    COLLECTION_NAME = "notifications"

    def __init__(self):
        self._collection: Collection = get_collection(self.COLLECTION_NAME)

    def create_notification(self, notification: Notification) -> bool:
        """
        Insert an in-app notification.

        Returns:
            False when an identical notification already exists
        """
        try:
            self._collection.insert_one(to_document(notification, notification.notification_id))
        except DuplicateKeyError:
            logger.debug(
                f"Notification already exists for {notification.user_id}",
                extra={
                    "intervention_id": notification.related_entity_id,
                    "notification_id": notification.notification_id
                }
            )
            return False

        logger.info(
            f"Created in-app notification for {notification.user_id}",
            extra={
                "notification_id": notification.notification_id,
                "intervention_id": notification.related_entity_id
            }
        )
        return True

    def reminder_exists(self, intervention_id: str, reminder_type: str) -> bool:
        """A reminder for this intervention and window was already recorded"""
        return self._collection.count_documents({
            "type": NotificationKind.REMINDER.value,
            "related_entity_type": "intervention",
            "related_entity_id": intervention_id,
            "metadata.reminder_type": reminder_type
        }, limit=1) > 0

    def get_notifications_for_user(
        self,
        user_id: str,
        skip: int = 0,
        limit: int = 50,
        unread_only: bool = False
    ) -> List[Notification]:
        """Get notifications for a user, newest first"""
        query: Dict[str, Any] = {"user_id": user_id}
        if unread_only:
            query["read"] = False

        cursor = self._collection.find(query).sort("created_at", DESCENDING).skip(skip).limit(limit)

        notifications = []
        for doc in cursor:
            doc.pop("_id", None)
            notifications.append(Notification.model_validate(doc))
        return notifications

    def get_notifications_for_entity(self, intervention_id: str) -> List[Notification]:
        """Every in-app notification raised about an intervention"""
        notifications = []
        for doc in self._collection.find({"related_entity_id": intervention_id}).sort("created_at", DESCENDING):
            doc.pop("_id", None)
            notifications.append(Notification.model_validate(doc))
        return notifications

    def get_unread_count(self, user_id: str) -> int:
        """Count unread notifications"""
        return self._collection.count_documents({"user_id": user_id, "read": False})

    def mark_as_read(self, notification_id: str, user_id: str) -> Notification:
        """Mark one of the user's notifications as read"""
        result = self._collection.find_one_and_update(
            {"notification_id": notification_id, "user_id": user_id},
            {"$set": {"read": True, "read_at": utc_now()}},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        result.pop("_id", None)
        return Notification.model_validate(result)

    def mark_all_as_read(self, user_id: str) -> int:
        """Mark all of the user's notifications as read"""
        result = self._collection.update_many(
            {"user_id": user_id, "read": False},
            {"$set": {"read": True, "read_at": utc_now()}}
        )
        logger.info(f"Marked {result.modified_count} notifications as read for {user_id}")
        return result.modified_count
