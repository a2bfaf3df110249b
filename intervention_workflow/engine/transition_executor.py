"""Transition Executor - Authorize, commit and fan out one engine operation

Every engine operation goes through the same three steps:

1. ``authorize``: terminal check, transition table, team scope/assignment
2. ``commit``: one compare-and-set write carrying the status change and the
   transition event (``pending_events``)
3. ``dispatch``: post-commit fan-out and audit, after which the event is
   removed from the intervention

A crash between 2 and 3 leaves the event in place; ``replay_stale_events``
picks it up later. Fan-out and audit are idempotent per event ID, so a replay
never notifies twice.
"""
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

from ..domain.models import (
    Intervention, InterventionEvent, ActorContext, FanoutResult, TransitionResult
)
from ..domain.enums import InterventionStatus, Action
from ..domain.errors import ConcurrencyError, ValidationError
from ..repositories.intervention_repo import InterventionRepository
from ..services.notification_service import NotificationFanout
from .audit_writer import AuditWriter
from .permission_guard import PermissionGuard
from .transition_table import check_action, allowed_targets
from ..utils.idgen import generate_event_id
from ..utils.logger import get_logger, get_correlation_id
from ..utils.time import utc_now

logger = get_logger(__name__)

LOG_SEPARATOR = " | "


def append_entry(existing: Optional[str], entry: Optional[str]) -> Optional[str]:
    """Append to an append-only text log (tenant_comment, manager_comment)"""
    if not entry or not entry.strip():
        return existing
    if not existing:
        return entry.strip()
    return f"{existing}{LOG_SEPARATOR}{entry.strip()}"


def require_text(value: Optional[str], field: str) -> str:
    """Mandatory free-text input (reasons); blank counts as missing"""
    if value is None or not value.strip():
        raise ValidationError(f"{field} is required", details={"field": field})
    return value.strip()


class TransitionExecutor:
    """Shared commit path used by every engine component"""

    def __init__(
        self,
        intervention_repo: InterventionRepository,
        guard: PermissionGuard,
        audit_writer: AuditWriter,
        fanout: NotificationFanout
    ):
        self.intervention_repo = intervention_repo
        self.guard = guard
        self.audit_writer = audit_writer
        self.fanout = fanout

    def load(self, intervention_id: str) -> Intervention:
        """Read the current snapshot"""
        return self.intervention_repo.get_intervention_or_raise(intervention_id)

    def authorize(
        self,
        intervention: Intervention,
        actor: ActorContext,
        action: Action,
        expected_status: Optional[InterventionStatus] = None
    ) -> Tuple[InterventionStatus, ...]:
        """
        Check the action against the table and the actor's scope.

        A caller passing ``expected_status`` (the status it last saw) gets a
        ConcurrencyError when another request has moved the intervention in
        the meantime, instead of the table refusal for the new status.

        Returns:
            Allowed target statuses (empty for status-preserving actions)

        Raises:
            ConcurrencyError, TerminalStateError, AuthorizationError, PermissionDeniedError
        """
        if expected_status is not None and intervention.status != expected_status:
            raise ConcurrencyError(
                f"Intervention {intervention.intervention_id} is now {intervention.status.value}. "
                "Please refresh and try again.",
                details={
                    "expected_status": InterventionStatus(expected_status).value,
                    "current_status": intervention.status.value,
                    "current_version": intervention.version
                }
            )
        check_action(intervention.status, actor.role, action)
        self.guard.check_participant(actor, intervention)
        return allowed_targets(intervention.status, actor.role, action)

    def commit(
        self,
        intervention: Intervention,
        actor: ActorContext,
        action: Action,
        new_status: Optional[InterventionStatus] = None,
        updates: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
        increments: Optional[Dict[str, int]] = None
    ) -> TransitionResult:
        """
        Apply the write and fan out.

        Status changes are guarded on (status, version). Status-preserving
        sub-protocol writes are guarded on status only; their own child
        entities carry the finer-grained guard.
        """
        target = new_status or intervention.status
        changes_status = target != intervention.status

        event = InterventionEvent(
            event_id=generate_event_id(),
            intervention_id=intervention.intervention_id,
            team_id=intervention.team_id,
            action=action,
            old_status=intervention.status,
            new_status=target,
            actor_id=actor.user_id,
            actor_role=actor.role,
            actor_name=actor.name,
            payload=payload or {},
            occurred_at=utc_now(),
            correlation_id=get_correlation_id()
        )

        fields = dict(updates or {})
        fields["status"] = target.value

        updated = self.intervention_repo.apply_transition(
            intervention.intervention_id,
            expected_status=intervention.status,
            expected_version=intervention.version if changes_status else None,
            updates=fields,
            event=event,
            increments=increments
        )

        logger.info(
            f"{action.value}: {intervention.status.value} -> {target.value}",
            extra={
                "intervention_id": intervention.intervention_id,
                "action": action.value,
                "actor_id": actor.user_id,
                "actor_role": actor.role.value,
                "old_status": intervention.status.value,
                "new_status": target.value,
                "event_id": event.event_id
            }
        )

        notifications = self.dispatch(updated, event)
        return TransitionResult(intervention=updated, event_id=event.event_id, notifications=notifications)

    def dispatch(self, intervention: Intervention, event: InterventionEvent) -> FanoutResult:
        """
        Post-commit side effects. Never raises.

        The event stays pending when the fan-out itself could not run, so the
        replay job retries it.
        """
        try:
            result = self.fanout.dispatch(event, intervention)
        except Exception as e:
            logger.error(
                f"Fan-out failed, event left for replay: {e}",
                extra={
                    "intervention_id": intervention.intervention_id,
                    "event_id": event.event_id,
                    "error_type": type(e).__name__
                },
                exc_info=True
            )
            return FanoutResult(failed=1)

        try:
            self.audit_writer.write_event(event)
        except Exception as e:
            logger.error(
                f"Failed to write audit event: {e}",
                extra={"intervention_id": intervention.intervention_id, "event_id": event.event_id}
            )

        try:
            self.intervention_repo.clear_pending_event(intervention.intervention_id, event.event_id)
        except Exception as e:
            logger.error(
                f"Failed to clear dispatched event: {e}",
                extra={"intervention_id": intervention.intervention_id, "event_id": event.event_id}
            )

        return result

    def replay_stale_events(self, older_than_seconds: int, limit: int = 50) -> int:
        """
        Dispatch events whose post-commit step never completed.

        Returns:
            Number of events replayed
        """
        cutoff = utc_now() - timedelta(seconds=older_than_seconds)
        replayed = 0

        for intervention in self.intervention_repo.find_with_stale_events(cutoff, limit=limit):
            for event in intervention.pending_events:
                if event.occurred_at > cutoff:
                    continue
                logger.warning(
                    f"Replaying undelivered event {event.action.value}",
                    extra={"intervention_id": intervention.intervention_id, "event_id": event.event_id}
                )
                self.dispatch(intervention, event)
                replayed += 1

        return replayed
