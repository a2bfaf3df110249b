"""Outbox Dispatcher - Drains queued push/email intents

Each row is locked before it is sent so that several server processes can
drain the same outbox. Rows are independent: a failing recipient gets its own
retry schedule and never holds back the others.
"""
import os
import socket
from typing import Dict, Optional

from ..domain.models import NotificationOutbox
from ..domain.enums import NotificationChannel
from ..domain.errors import ExternalServiceError
from ..repositories.outbox_repo import OutboxRepository
from .delivery_service import NotificationDelivery
from ..config.settings import settings
from ..utils.idgen import generate_id
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


def generate_worker_id() -> str:
    """Unique locker identity: host, pid and a random suffix"""
    return f"{socket.gethostname()}-{os.getpid()}-{generate_id()[:8]}"


class OutboxDispatcher:
    """Sends pending outbox rows through the delivery capability"""

    def __init__(
        self,
        outbox_repo: Optional[OutboxRepository] = None,
        delivery: Optional[NotificationDelivery] = None,
        worker_id: Optional[str] = None
    ):
        self.outbox_repo = outbox_repo or OutboxRepository()
        self.delivery = delivery or NotificationDelivery()
        self.worker_id = worker_id or generate_worker_id()

    async def drain(self, limit: int = 50) -> Dict[str, int]:
        """
        Process one batch of pending rows.

        Returns:
            Counts of sent, failed, skipped and locked (held by another worker) rows
        """
        start_time = utc_now()
        counts = {"sent": 0, "failed": 0, "skipped": 0, "locked": 0}

        rows = self.outbox_repo.get_pending(limit=limit)
        if not rows:
            return counts

        for row in rows:
            lock_id = f"{self.worker_id}-{generate_id()[:8]}"
            if not self.outbox_repo.acquire_lock(
                row.outbox_id,
                lock_id,
                lock_duration_seconds=settings.notification_lock_duration_seconds
            ):
                counts["locked"] += 1
                continue

            try:
                outcome = await self.send_row(row)
                counts[outcome] += 1
            except Exception as e:
                counts["failed"] += 1
                logger.error(
                    f"Error processing outbox row {row.outbox_id}: {e}",
                    extra={"outbox_id": row.outbox_id, "error_type": type(e).__name__}
                )
                try:
                    self.outbox_repo.mark_failed(row.outbox_id, str(e))
                except Exception as mark_error:
                    logger.error(f"Could not record failure on {row.outbox_id}: {mark_error}")
            finally:
                self.outbox_repo.release_lock(row.outbox_id, lock_id)

        duration_ms = (utc_now() - start_time).total_seconds() * 1000
        logger.info(
            f"Outbox cycle complete: {counts['sent']} sent, {counts['failed']} failed, "
            f"{counts['skipped']} skipped, {counts['locked']} locked elsewhere",
            extra={"duration_ms": round(duration_ms, 2)}
        )
        return counts

    async def send_row(self, row: NotificationOutbox) -> str:
        """
        Deliver one row and record the outcome on it.

        Returns:
            "sent", "skipped" or "failed"
        """
        if row.channel == NotificationChannel.PUSH and not self.delivery.push_enabled:
            self.outbox_repo.mark_skipped(row.outbox_id, "push channel not configured")
            return "skipped"
        if row.channel == NotificationChannel.EMAIL:
            if not self.delivery.email_enabled:
                self.outbox_repo.mark_skipped(row.outbox_id, "email channel not configured")
                return "skipped"
            if not row.recipient_email:
                self.outbox_repo.mark_skipped(row.outbox_id, "recipient has no email address")
                return "skipped"

        try:
            if row.channel == NotificationChannel.PUSH:
                await self.delivery.send_push([row.recipient_user_id], row.payload)
            else:
                await self.delivery.send_email(row.recipient_email, row.template_key.value, row.payload)
        except ExternalServiceError as e:
            self.outbox_repo.mark_failed(row.outbox_id, e.message)
            logger.warning(
                f"Delivery failed for {row.recipient_user_id}: {e.message}",
                extra={
                    "outbox_id": row.outbox_id,
                    "intervention_id": row.intervention_id,
                    "channel": row.channel.value,
                    "error_code": e.error_code
                }
            )
            return "failed"

        self.outbox_repo.mark_sent(row.outbox_id)
        logger.info(
            f"Sent {row.channel.value} {row.template_key.value} to {row.recipient_user_id}",
            extra={"outbox_id": row.outbox_id, "intervention_id": row.intervention_id, "channel": row.channel.value}
        )
        return "sent"
