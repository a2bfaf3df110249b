"""Completion & Contest Manager - Work execution, tenant validation and closure"""
import math
from typing import Any, Dict, Optional, Union

from ..domain.models import ActorContext, TransitionResult
from ..domain.enums import Action, InterventionStatus, ValidationDecision
from ..domain.errors import ContestLimitError, ValidationError
from ..config.settings import settings
from .transition_executor import TransitionExecutor, append_entry, require_text
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class CompletionManager:
    """
    Closure chain: provider completes, tenant validates or contests, manager
    finalizes.

    A contest sends the intervention back to ``planifiee``. The number of
    contests is bounded by ``max_contest_count``; the counter is never reset.
    """

    def __init__(self, executor: TransitionExecutor):
        self.executor = executor

    def start_work(
        self,
        intervention_id: str,
        actor: ActorContext,
        expected_status: Optional[InterventionStatus] = None
    ) -> TransitionResult:
        intervention = self.executor.load(intervention_id)
        self.executor.authorize(intervention, actor, Action.START_WORK, expected_status)
        return self.executor.commit(
            intervention,
            actor,
            Action.START_WORK,
            new_status=InterventionStatus.EN_COURS
        )

    def complete_work(
        self,
        intervention_id: str,
        actor: ActorContext,
        report: Optional[str] = None,
        expected_status: Optional[InterventionStatus] = None
    ) -> TransitionResult:
        """Provider closes the work; the report also lands in the comment log"""
        intervention = self.executor.load(intervention_id)
        self.executor.authorize(intervention, actor, Action.COMPLETE_WORK, expected_status)

        updates: Dict[str, Any] = {}
        if report and report.strip():
            updates["provider_report"] = report.strip()
            updates["tenant_comment"] = append_entry(
                intervention.tenant_comment, f"[Prestataire] {report.strip()}"
            )

        return self.executor.commit(
            intervention,
            actor,
            Action.COMPLETE_WORK,
            new_status=InterventionStatus.CLOTUREE_PAR_PRESTATAIRE,
            updates=updates,
            payload={"report": updates.get("provider_report")}
        )

    def validate_work(
        self,
        intervention_id: str,
        actor: ActorContext,
        decision: Union[ValidationDecision, str],
        reason: Optional[str] = None,
        satisfaction_rating: Optional[int] = None,
        comment: Optional[str] = None,
        expected_status: Optional[InterventionStatus] = None
    ) -> TransitionResult:
        """
        Tenant decision on completed work.

        Raises:
            ValidationError: unknown decision, missing contest reason, bad rating
            ContestLimitError: every allowed contest has been used
        """
        intervention = self.executor.load(intervention_id)
        self.executor.authorize(intervention, actor, Action.VALIDATE_WORK, expected_status)

        try:
            decision = ValidationDecision(decision)
        except ValueError:
            raise ValidationError(
                f"Invalid decision '{decision}', expected approved or contested",
                details={"decision": str(decision)}
            )

        now = utc_now()

        if decision == ValidationDecision.APPROVED:
            if satisfaction_rating is not None and not 1 <= satisfaction_rating <= 5:
                raise ValidationError(
                    "Satisfaction rating must be between 1 and 5",
                    details={"satisfaction_rating": satisfaction_rating}
                )
            updates: Dict[str, Any] = {"tenant_validated_date": now}
            if satisfaction_rating is not None:
                updates["tenant_satisfaction_rating"] = satisfaction_rating
            if comment and comment.strip():
                updates["tenant_comment"] = append_entry(intervention.tenant_comment, f"[Locataire] {comment}")

            return self.executor.commit(
                intervention,
                actor,
                Action.VALIDATE_WORK,
                new_status=InterventionStatus.CLOTUREE_PAR_LOCATAIRE,
                updates=updates,
                payload={"decision": decision.value, "satisfaction_rating": satisfaction_rating}
            )

        reason = require_text(reason, "reason")
        contest_count = intervention.metadata.contest_count
        if contest_count >= settings.max_contest_count:
            logger.warning(
                "Contest refused, limit reached",
                extra={"intervention_id": intervention_id, "actor_id": actor.user_id}
            )
            raise ContestLimitError(
                "Maximum number of contestations reached, please contact your manager",
                details={"contest_count": contest_count, "max_contest_count": settings.max_contest_count}
            )

        entry = f"[Contestation {contest_count + 1}] {reason}"
        if comment and comment.strip():
            entry = f"{entry} {comment.strip()}"

        return self.executor.commit(
            intervention,
            actor,
            Action.VALIDATE_WORK,
            new_status=InterventionStatus.PLANIFIEE,
            updates={
                "metadata.last_contest_reason": reason,
                "metadata.last_contest_date": now,
                "tenant_comment": append_entry(intervention.tenant_comment, entry)
            },
            increments={"metadata.contest_count": 1},
            payload={"decision": decision.value, "reason": reason, "contest_number": contest_count + 1}
        )

    def finalize(
        self,
        intervention_id: str,
        actor: ActorContext,
        final_cost: Optional[float] = None,
        comment: Optional[str] = None,
        expected_status: Optional[InterventionStatus] = None
    ) -> TransitionResult:
        """Manager closes the intervention for good"""
        intervention = self.executor.load(intervention_id)
        self.executor.authorize(intervention, actor, Action.FINALIZE, expected_status)

        if final_cost is not None and (not math.isfinite(final_cost) or final_cost < 0):
            raise ValidationError("Final cost must be a finite amount, zero or positive", details={"final_cost": final_cost})

        updates: Dict[str, Any] = {"finalized_at": utc_now()}
        if final_cost is not None:
            updates["final_cost"] = float(final_cost)
        if comment and comment.strip():
            updates["manager_comment"] = append_entry(intervention.manager_comment, comment)

        return self.executor.commit(
            intervention,
            actor,
            Action.FINALIZE,
            new_status=InterventionStatus.CLOTUREE_PAR_GESTIONNAIRE,
            updates=updates,
            payload={"final_cost": updates.get("final_cost")}
        )
