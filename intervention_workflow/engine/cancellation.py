"""Cancellation Manager - Rejection of requests and cancellation of interventions"""
from typing import Optional

from ..domain.models import ActorContext, TransitionResult
from ..domain.enums import Action, InterventionStatus, TimeSlotStatus
from ..repositories.quote_repo import QuoteRepository
from ..repositories.time_slot_repo import TimeSlotRepository
from .transition_executor import TransitionExecutor, require_text
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)

CANCELLED_REASON = "intervention_cancelled"


class CancellationManager:
    """Both exits lead to a terminal status; a reason is always required"""

    def __init__(
        self,
        executor: TransitionExecutor,
        quote_repo: QuoteRepository,
        slot_repo: TimeSlotRepository
    ):
        self.executor = executor
        self.quote_repo = quote_repo
        self.slot_repo = slot_repo

    def reject(
        self,
        intervention_id: str,
        actor: ActorContext,
        reason: Optional[str],
        expected_status: Optional[InterventionStatus] = None
    ) -> TransitionResult:
        """Manager turns down a new request"""
        intervention = self.executor.load(intervention_id)
        self.executor.authorize(intervention, actor, Action.REJECT, expected_status)
        reason = require_text(reason, "reason")

        return self.executor.commit(
            intervention,
            actor,
            Action.REJECT,
            new_status=InterventionStatus.REJETEE,
            updates={"rejection_reason": reason},
            payload={"reason": reason}
        )

    def cancel(
        self,
        intervention_id: str,
        actor: ActorContext,
        reason: Optional[str],
        expected_status: Optional[InterventionStatus] = None
    ) -> TransitionResult:
        """
        Cancel an intervention that is under way.

        Open quotes and pending slot proposals are closed once the
        intervention is ``annulee``. Cancelling twice fails with
        TerminalStateError and notifies nobody.
        """
        intervention = self.executor.load(intervention_id)
        self.executor.authorize(intervention, actor, Action.CANCEL, expected_status)
        reason = require_text(reason, "reason")

        result = self.executor.commit(
            intervention,
            actor,
            Action.CANCEL,
            new_status=InterventionStatus.ANNULEE,
            updates={"cancellation_reason": reason, "cancelled_at": utc_now()},
            payload={"reason": reason}
        )

        quotes = self.quote_repo.cancel_pending_quotes(intervention_id, CANCELLED_REASON)
        slots = self.slot_repo.close_pending_slots(intervention_id, TimeSlotStatus.CANCELLED)
        logger.info(
            f"Closed {quotes} quotes and {slots} slots after cancellation",
            extra={"intervention_id": intervention_id}
        )
        return result
