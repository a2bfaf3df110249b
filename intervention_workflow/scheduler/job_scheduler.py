"""Job Scheduler - Background work for notification delivery and reminders

Supports multi-server deployment: outbox rows are locked before they are sent
and reminders are deduplicated, so every server can run the same jobs.
Handles:
- Draining the push/email outbox with exponential backoff retry
- Replaying transition events whose fan-out never ran
- The hourly 24h / 1h reminder sweep
- Stale lock cleanup for crash recovery
"""
import asyncio
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import settings
from ..engine.engine import InterventionEngine
from ..repositories.outbox_repo import OutboxRepository
from ..services.notification_dispatcher import OutboxDispatcher, generate_worker_id
from ..services.reminder_service import ReminderService
from ..utils.logger import get_logger, set_correlation_id
from ..utils.idgen import generate_correlation_id

logger = get_logger(__name__)


class JobScheduler:
    """
    APScheduler-backed runner for the periodic jobs

    Responsibilities:
    - Send pending outbox rows
    - Replay stale pending events
    - Run the reminder sweep
    - Clean up stale locks from crashed processes
    """

    def __init__(self):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._server_id = generate_worker_id()
        self.outbox_repo = OutboxRepository()
        self.engine = InterventionEngine()
        self.dispatcher = OutboxDispatcher(outbox_repo=self.outbox_repo, worker_id=self._server_id)
        self.reminders = ReminderService(
            intervention_repo=self.engine.intervention_repo,
            outbox_repo=self.outbox_repo,
            fanout=self.engine.fanout
        )
        self._is_running = False

    def start(self) -> None:
        """Start the scheduler"""
        if self._is_running:
            logger.warning("Scheduler already running")
            return

        self.scheduler = AsyncIOScheduler()

        # Drain the outbox at configured interval (default 10 seconds)
        self.scheduler.add_job(
            self._process_outbox,
            trigger=IntervalTrigger(seconds=settings.scheduler_interval_seconds),
            id="process_outbox",
            name="Send pending push and email notifications",
            replace_existing=True
        )

        # Replay events left behind by an interrupted fan-out
        self.scheduler.add_job(
            self._replay_events,
            trigger=IntervalTrigger(seconds=settings.event_replay_delay_seconds),
            id="replay_events",
            name="Replay undelivered transition events",
            replace_existing=True
        )

        # Reminder sweep (hourly by default)
        self.scheduler.add_job(
            self._sweep_reminders,
            trigger=IntervalTrigger(minutes=settings.reminder_sweep_interval_minutes),
            id="intervention_reminders",
            name="Send 24h and 1h intervention reminders",
            replace_existing=True
        )

        # Clean up stale locks every 5 minutes (crash recovery)
        self.scheduler.add_job(
            self._cleanup_stale_locks,
            trigger=IntervalTrigger(minutes=5),
            id="cleanup_stale_locks",
            name="Cleanup stale outbox locks",
            replace_existing=True
        )

        self.scheduler.start()
        self._is_running = True
        logger.info(
            "Scheduler started",
            extra={
                "server_id": self._server_id,
                "notification_interval": settings.scheduler_interval_seconds,
                "lock_duration": settings.notification_lock_duration_seconds
            }
        )

    def stop(self) -> None:
        """Stop the scheduler"""
        if self.scheduler:
            self.scheduler.shutdown()
            self._is_running = False
            logger.info("Scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running"""
        return self._is_running

    # Replay, sweep and lock cleanup are synchronous pymongo work; they run in
    # worker threads so the event loop keeps serving requests.

    async def _process_outbox(self) -> None:
        set_correlation_id(generate_correlation_id())
        try:
            await self.dispatcher.drain(limit=50)
        except Exception as e:
            logger.error(
                f"Error in outbox processing job: {e}",
                extra={"error_type": type(e).__name__, "server_id": self._server_id}
            )

    async def _replay_events(self) -> None:
        set_correlation_id(generate_correlation_id())
        try:
            replayed = await asyncio.to_thread(
                self.engine.replay_stale_events, settings.event_replay_delay_seconds
            )
            if replayed:
                logger.info(f"Replayed {replayed} pending events", extra={"server_id": self._server_id})
        except Exception as e:
            logger.error(f"Error in event replay job: {e}", extra={"error_type": type(e).__name__})

    async def _sweep_reminders(self) -> None:
        set_correlation_id(generate_correlation_id())
        try:
            await asyncio.to_thread(self.reminders.run_sweep)
        except Exception as e:
            logger.error(f"Error in reminder sweep job: {e}", extra={"error_type": type(e).__name__})

    async def _cleanup_stale_locks(self) -> None:
        try:
            await asyncio.to_thread(self.outbox_repo.cleanup_stale_locks, settings.stale_lock_cleanup_minutes)
        except Exception as e:
            logger.error(f"Error cleaning up stale locks: {e}")


# Global scheduler instance
_scheduler: Optional[JobScheduler] = None


def get_scheduler() -> JobScheduler:
    """Get or create scheduler instance"""
    global _scheduler
    if _scheduler is None:
        _scheduler = JobScheduler()
    return _scheduler


def start_scheduler() -> None:
    """Start the global scheduler"""
    scheduler = get_scheduler()
    scheduler.start()


def stop_scheduler() -> None:
    """Stop the global scheduler"""
    global _scheduler
    if _scheduler:
        _scheduler.stop()
        _scheduler = None
