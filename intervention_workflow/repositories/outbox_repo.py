"""Outbox Repository - Data access for deferred push/email deliveries

Provides distributed locking for multi-server deployments using MongoDB
atomic operations, so a row is never delivered by two dispatchers at once.
"""
from datetime import datetime, timedelta
from typing import List, Optional
from pymongo import ASCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError

from .mongo_client import get_collection, to_document
from ..domain.models import NotificationOutbox
from ..domain.enums import NotificationStatus
from ..domain.errors import NotFoundError
from ..config.settings import settings
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class OutboxRepository:
    """Repository for notification outbox operations"""

    def __init__(self):
        self._outbox: Collection = get_collection("notification_outbox")

    def enqueue(self, row: NotificationOutbox) -> Optional[NotificationOutbox]:
        """
        Insert a delivery intent.

        Returns:
            None when the same (dedup key, channel, recipient) was already queued
        """
        try:
            self._outbox.insert_one(to_document(row, row.outbox_id))
        except DuplicateKeyError:
            logger.debug(
                f"Outbox row already queued for {row.recipient_user_id}",
                extra={"intervention_id": row.intervention_id, "channel": row.channel.value}
            )
            return None

        logger.info(
            f"Queued {row.channel.value} {row.template_key.value} for {row.recipient_user_id}",
            extra={
                "outbox_id": row.outbox_id,
                "intervention_id": row.intervention_id,
                "channel": row.channel.value
            }
        )
        return row

    def get_row(self, outbox_id: str) -> Optional[NotificationOutbox]:
        """Get outbox row by ID"""
        doc = self._outbox.find_one({"outbox_id": outbox_id})
        if doc:
            doc.pop("_id", None)
            return NotificationOutbox.model_validate(doc)
        return None

    def exists_for_dedup_key(self, dedup_key: str) -> bool:
        """Any row, whatever its status, was queued under this key"""
        return self._outbox.count_documents({"dedup_key": dedup_key}, limit=1) > 0

    def get_rows_for_intervention(self, intervention_id: str) -> List[NotificationOutbox]:
        """Get all outbox rows for an intervention"""
        rows = []
        for doc in self._outbox.find({"intervention_id": intervention_id}).sort("created_at", ASCENDING):
            doc.pop("_id", None)
            rows.append(NotificationOutbox.model_validate(doc))
        return rows

    def get_pending(self, limit: int = 100) -> List[NotificationOutbox]:
        """
        Get pending rows ready for sending.

        Only returns rows that:
        - Have PENDING status
        - Are not locked (or lock expired)
        - Are ready for retry (or first attempt)
        """
        now = utc_now()

        try:
            cursor = self._outbox.find({
                "status": NotificationStatus.PENDING.value,
                "$and": [
                    {"$or": [
                        {"next_retry_at": {"$lte": now}},
                        {"next_retry_at": None}
                    ]},
                    {"$or": [
                        {"locked_until": {"$lte": now}},
                        {"locked_until": None}
                    ]}
                ]
            }).sort("created_at", ASCENDING).limit(limit)

            rows = []
            for doc in cursor:
                doc.pop("_id", None)
                rows.append(NotificationOutbox.model_validate(doc))
            return rows

        except PyMongoError as e:
            logger.error(
                f"Database error fetching pending outbox rows: {e}",
                extra={"error_type": type(e).__name__}
            )
            return []

    def acquire_lock(
        self,
        outbox_id: str,
        lock_by: str,
        lock_duration_seconds: int = 60
    ) -> bool:
        """
        Try to acquire a lock on a row with an atomic find-and-modify.

        Args:
            outbox_id: The row to lock
            lock_by: Unique identifier for this locker (e.g., "host-pid-uuid")
            lock_duration_seconds: How long to hold the lock

        Returns:
            True if lock acquired, False otherwise
        """
        now = utc_now()
        lock_until = now + timedelta(seconds=lock_duration_seconds)

        try:
            result = self._outbox.find_one_and_update(
                {
                    "outbox_id": outbox_id,
                    "status": NotificationStatus.PENDING.value,
                    "$or": [
                        {"locked_until": {"$lte": now}},
                        {"locked_until": None}
                    ]
                },
                {"$set": {"locked_until": lock_until, "locked_by": lock_by}},
                return_document=ReturnDocument.BEFORE
            )
        except PyMongoError as e:
            logger.error(
                f"Database error acquiring lock on outbox row {outbox_id}: {e}",
                extra={"outbox_id": outbox_id, "error_type": type(e).__name__}
            )
            return False

        if result:
            logger.debug(f"Lock acquired on outbox row {outbox_id}", extra={"outbox_id": outbox_id})
            return True
        return False

    def release_lock(self, outbox_id: str, lock_by: Optional[str] = None) -> bool:
        """Release a lock, only if still held by lock_by when given"""
        query = {"outbox_id": outbox_id}
        if lock_by:
            query["locked_by"] = lock_by

        try:
            result = self._outbox.update_one(
                query,
                {"$set": {"locked_until": None, "locked_by": None}}
            )
            return result.modified_count > 0
        except PyMongoError as e:
            logger.error(
                f"Database error releasing lock on outbox row {outbox_id}: {e}",
                extra={"outbox_id": outbox_id, "error_type": type(e).__name__}
            )
            return False

    def cleanup_stale_locks(self, max_lock_age_minutes: int = 10) -> int:
        """
        Clean up locks left behind by crashed processes.

        Returns:
            Number of stale locks cleaned up
        """
        cutoff = utc_now() - timedelta(minutes=max_lock_age_minutes)

        try:
            result = self._outbox.update_many(
                {"locked_until": {"$lte": cutoff}, "locked_by": {"$ne": None}},
                {"$set": {"locked_until": None, "locked_by": None}}
            )
        except PyMongoError as e:
            logger.error(f"Error cleaning up stale locks: {e}")
            return 0

        if result.modified_count > 0:
            logger.warning(
                f"Cleaned up {result.modified_count} stale outbox locks",
                extra={"max_age_minutes": max_lock_age_minutes}
            )
        return result.modified_count

    def mark_sent(self, outbox_id: str) -> NotificationOutbox:
        """Mark row as sent"""
        return self._finish(outbox_id, {
            "status": NotificationStatus.SENT.value,
            "sent_at": utc_now()
        })

    def mark_skipped(self, outbox_id: str, reason: str) -> NotificationOutbox:
        """Mark row as skipped (channel not configured, no address)"""
        return self._finish(outbox_id, {
            "status": NotificationStatus.SKIPPED.value,
            "last_error": reason
        })

    def mark_failed(
        self,
        outbox_id: str,
        error: str,
        retry_at: Optional[datetime] = None
    ) -> NotificationOutbox:
        """Record a failed attempt, scheduling a retry with exponential backoff"""
        row = self.get_row(outbox_id)
        if not row:
            raise NotFoundError(f"Outbox row {outbox_id} not found")

        new_retry_count = row.retry_count + 1

        if new_retry_count >= settings.notification_max_retries:
            new_status = NotificationStatus.FAILED.value
            next_retry = None
        else:
            new_status = NotificationStatus.PENDING.value
            # Exponential backoff: 1, 2, 4, 8, 16 minutes
            next_retry = retry_at or utc_now() + timedelta(minutes=2 ** row.retry_count)

        updated = self._finish(outbox_id, {
            "status": new_status,
            "retry_count": new_retry_count,
            "last_error": error,
            "next_retry_at": next_retry
        })
        logger.warning(
            f"Outbox delivery failed: {outbox_id}",
            extra={"outbox_id": outbox_id, "channel": row.channel.value, "status": new_status}
        )
        return updated

    def _finish(self, outbox_id: str, fields: dict) -> NotificationOutbox:
        fields.update({"locked_until": None, "locked_by": None})
        result = self._outbox.find_one_and_update(
            {"outbox_id": outbox_id},
            {"$set": fields},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise NotFoundError(f"Outbox row {outbox_id} not found")
        result.pop("_id", None)
        return NotificationOutbox.model_validate(result)
