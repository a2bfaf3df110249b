"""Reminder Sweep - 24h and 1h reminders before scheduled interventions

Runs hourly. Each window has a tolerance wide enough to absorb scheduler
drift, so an intervention can be seen by two consecutive sweeps; the dedup
check on existing reminder rows keeps delivery at most once per window.
"""
import time
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from ..domain.models import Intervention, FanoutResult
from ..domain.enums import NotificationKind, NotificationTemplateKey, ReminderWindow
from ..repositories.intervention_repo import InterventionRepository
from ..repositories.notification_repo import NotificationRepository
from ..repositories.outbox_repo import OutboxRepository
from .notification_service import NotificationFanout, NotificationContent
from ..config.settings import settings
from ..utils.logger import get_logger
from ..utils.time import utc_now, format_iso, to_local, minutes_until

logger = get_logger(__name__)

# Window -> (earliest, latest) offset from now
REMINDER_WINDOWS: Dict[ReminderWindow, Tuple[timedelta, timedelta]] = {
    ReminderWindow.H24: (timedelta(hours=23), timedelta(hours=25)),
    ReminderWindow.H1: (timedelta(minutes=50), timedelta(minutes=70)),
}


def reminder_dedup_key(intervention_id: str, window: ReminderWindow) -> str:
    return f"reminder:{intervention_id}:{window.value}"


class ReminderService:
    """Sends scheduled-intervention reminders to the three audience groups"""

    def __init__(
        self,
        intervention_repo: Optional[InterventionRepository] = None,
        notification_repo: Optional[NotificationRepository] = None,
        outbox_repo: Optional[OutboxRepository] = None,
        fanout: Optional[NotificationFanout] = None
    ):
        self.intervention_repo = intervention_repo or InterventionRepository()
        self.notification_repo = notification_repo or NotificationRepository()
        self.outbox_repo = outbox_repo or OutboxRepository()
        self.fanout = fanout or NotificationFanout(intervention_repo=self.intervention_repo)

    def run_sweep(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Evaluate both windows once.

        Bounded by ``reminder_sweep_budget_seconds``; whatever is left when the
        budget runs out is picked up by the next sweep while still in window.
        """
        now = now or utc_now()
        deadline = time.monotonic() + settings.reminder_sweep_budget_seconds
        summary: Dict[str, Any] = {
            "success": True,
            "timestamp": format_iso(now),
            "windows": {},
            "budget_exhausted": False,
        }

        for window, (earliest, latest) in REMINDER_WINDOWS.items():
            stats = {"candidates": 0, "sent": 0, "already_sent": 0, "errors": 0}
            summary["windows"][window.value] = stats

            candidates = self.intervention_repo.find_scheduled_between(now + earliest, now + latest)
            stats["candidates"] = len(candidates)

            for intervention in candidates:
                if time.monotonic() > deadline:
                    summary["budget_exhausted"] = True
                    break
                try:
                    result = self.send_reminder(intervention, window)
                    if result is None:
                        stats["already_sent"] += 1
                    else:
                        stats["sent"] += 1
                except Exception as e:
                    stats["errors"] += 1
                    logger.error(
                        f"Reminder failed: {e}",
                        extra={
                            "intervention_id": intervention.intervention_id,
                            "window": window.value,
                            "error_type": type(e).__name__
                        }
                    )

            if summary["budget_exhausted"]:
                logger.warning(
                    "Reminder sweep budget exhausted",
                    extra={"window": window.value}
                )
                break

        logger.info("Reminder sweep complete", extra={"status": summary["windows"]})
        return summary

    def send_reminder(self, intervention: Intervention, window: ReminderWindow) -> Optional[FanoutResult]:
        """
        Send one reminder unless it was already sent.

        Returns:
            None when a reminder for this window already exists
        """
        dedup_key = reminder_dedup_key(intervention.intervention_id, window)
        if (
            self.notification_repo.reminder_exists(intervention.intervention_id, window.value)
            or self.outbox_repo.exists_for_dedup_key(dedup_key)
        ):
            logger.debug(
                "Reminder already sent",
                extra={"intervention_id": intervention.intervention_id, "window": window.value}
            )
            return None

        # The creator does not get the direct channels of a reminder
        audience = self.fanout.compute_audience(
            intervention,
            exclude_from_assigned=[intervention.created_by]
        )
        content = self._build_content(intervention, window)

        result = self.fanout.deliver(
            intervention=intervention,
            audience=audience,
            content=content,
            dedup_key=dedup_key,
            metadata={
                "reminder_type": window.value,
                "scheduled_date": format_iso(intervention.scheduled_date),
            }
        )
        logger.info(
            f"Sent {window.value} reminder: {result.in_app} in-app, "
            f"{result.push_queued} push, {result.email_queued} email",
            extra={"intervention_id": intervention.intervention_id, "window": window.value}
        )
        return result

    def _build_content(self, intervention: Intervention, window: ReminderWindow) -> NotificationContent:
        local = to_local(intervention.scheduled_date, settings.property_timezone)
        when = local.strftime("%d/%m/%Y à %H:%M")
        if window == ReminderWindow.H24:
            return NotificationContent(
                NotificationTemplateKey.REMINDER_24H,
                NotificationKind.REMINDER,
                "Rappel : intervention demain",
                f"L'intervention « {intervention.title} » est prévue le {when}."
            )
        return NotificationContent(
            NotificationTemplateKey.REMINDER_1H,
            NotificationKind.REMINDER,
            "Rappel : intervention imminente",
            f"L'intervention « {intervention.title} » commence dans "
            f"{minutes_until(intervention.scheduled_date)} minutes ({when})."
        )
