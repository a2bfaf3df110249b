"""Quote Negotiation Manager - Quote requests, submissions and decisions

Quote writes happen child-first: the quote row changes, then the intervention
CAS carries the event. When the CAS loses a race, the quote change is undone
so that no quote outlives the transition that justified it.
"""
import math
from datetime import datetime
from typing import Any, Dict, Optional

from ..domain.models import ActorContext, Assignment, Intervention, Quote, TransitionResult
from ..domain.enums import Action, AssignmentRole, InterventionStatus, QuoteStatus, Role
from ..domain.errors import (
    AlreadyExistsError, ConflictError, DomainError, QuoteNotFoundError, ValidationError
)
from ..repositories.intervention_repo import InterventionRepository
from ..repositories.quote_repo import QuoteRepository
from ..repositories.user_repo import UserRepository
from .transition_executor import TransitionExecutor
from ..utils.idgen import generate_quote_id, generate_assignment_id
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)

SUPERSEDED_REASON = "superseded"


class QuoteNegotiationManager:
    """Quote sub-protocol of the intervention lifecycle"""

    def __init__(
        self,
        executor: TransitionExecutor,
        intervention_repo: InterventionRepository,
        quote_repo: QuoteRepository,
        user_repo: UserRepository
    ):
        self.executor = executor
        self.intervention_repo = intervention_repo
        self.quote_repo = quote_repo
        self.user_repo = user_repo

    # =========================================================================
    # Request / cancel
    # =========================================================================

    def request_quote(
        self,
        intervention_id: str,
        actor: ActorContext,
        provider_id: str,
        deadline: Optional[datetime] = None,
        notes: Optional[str] = None,
        description: Optional[str] = None,
        expected_status: Optional[InterventionStatus] = None
    ) -> TransitionResult:
        """
        Ask a provider for a quote.

        From ``approuvee`` the intervention moves to ``demande_de_devis``; from
        ``demande_de_devis`` the quote deadline and notes are refreshed.
        """
        intervention = self.executor.load(intervention_id)
        self.executor.authorize(intervention, actor, Action.REQUEST_QUOTE, expected_status)

        provider = self.user_repo.get_user_or_raise(provider_id)
        if provider.role != Role.PRESTATAIRE:
            raise ValidationError(
                f"User {provider_id} is not a prestataire",
                details={"provider_id": provider_id, "role": provider.role.value}
            )
        if not self.user_repo.is_team_member(intervention.team_id, provider_id):
            raise ValidationError(
                f"Provider {provider_id} does not belong to the intervention's team",
                details={"provider_id": provider_id}
            )
        if self.quote_repo.has_open_quote(intervention_id, provider_id):
            raise AlreadyExistsError(
                f"Provider {provider_id} already has an open quote on this intervention",
                details={"provider_id": provider_id}
            )

        now = utc_now()
        quote = self.quote_repo.create_quote(Quote(
            quote_id=generate_quote_id(),
            intervention_id=intervention_id,
            provider_id=provider_id,
            description=description,
            deadline=deadline,
            notes=notes,
            created_by=actor.user_id,
            created_at=now,
            updated_at=now
        ))

        assigned_here = False
        if not self.intervention_repo.is_assigned(intervention_id, provider_id, AssignmentRole.PRESTATAIRE):
            self.intervention_repo.add_assignment(Assignment(
                assignment_id=generate_assignment_id(),
                intervention_id=intervention_id,
                user_id=provider_id,
                role=AssignmentRole.PRESTATAIRE,
                assigned_by=actor.user_id,
                created_at=now
            ))
            assigned_here = True

        updates: Dict[str, Any] = {}
        if deadline is not None:
            updates["quote_deadline"] = deadline
        if notes is not None:
            updates["quote_notes"] = notes

        try:
            result = self.executor.commit(
                intervention,
                actor,
                Action.REQUEST_QUOTE,
                new_status=InterventionStatus.DEMANDE_DE_DEVIS,
                updates=updates,
                payload={"quote_id": quote.quote_id, "provider_id": provider_id}
            )
        except DomainError:
            self.quote_repo.delete_quote(quote.quote_id)
            if assigned_here:
                self.intervention_repo.remove_assignment(
                    intervention_id, provider_id, AssignmentRole.PRESTATAIRE
                )
            raise

        return result.model_copy(update={"quote": quote})

    def cancel_quote(
        self,
        quote_id: str,
        actor: ActorContext,
        reason: Optional[str] = None
    ) -> TransitionResult:
        """Withdraw a pending quote request"""
        quote, intervention = self._load(quote_id)
        self.executor.authorize(intervention, actor, Action.CANCEL_QUOTE)

        updated = self.quote_repo.update_quote(quote_id, QuoteStatus.PENDING, {
            "status": QuoteStatus.CANCELLED.value,
            "cancel_reason": reason,
            "decided_at": utc_now(),
            "decided_by": actor.user_id
        })

        result = self._commit_or_restore(
            intervention, actor, Action.CANCEL_QUOTE, quote, updated,
            payload={"quote_id": quote_id, "provider_id": quote.provider_id, "reason": reason}
        )
        return result.model_copy(update={"quote": updated})

    # =========================================================================
    # Provider side
    # =========================================================================

    def submit_quote(
        self,
        quote_id: str,
        actor: ActorContext,
        amount: float,
        description: Optional[str] = None
    ) -> TransitionResult:
        """Provider prices their quote; a pending quote may be resubmitted"""
        quote, intervention = self._load(quote_id)
        self.executor.authorize(intervention, actor, Action.SUBMIT_QUOTE)
        self.executor.guard.check_quote_owner(actor, quote)

        if amount is None or not math.isfinite(amount) or amount < 0:
            raise ValidationError("Quote amount must be a finite amount, zero or positive", details={"amount": amount})

        updated = self.quote_repo.update_quote(quote_id, QuoteStatus.PENDING, {
            "amount": float(amount),
            "description": description if description is not None else quote.description,
            "submitted_at": utc_now()
        })

        result = self._commit_or_restore(
            intervention, actor, Action.SUBMIT_QUOTE, quote, updated,
            payload={"quote_id": quote_id, "amount": float(amount)}
        )
        return result.model_copy(update={"quote": updated})

    # =========================================================================
    # Manager decisions
    # =========================================================================

    def accept_quote(self, quote_id: str, actor: ActorContext) -> TransitionResult:
        """Accept a submitted quote and record it as the selected one"""
        quote, intervention = self._load(quote_id)
        self.executor.authorize(intervention, actor, Action.ACCEPT_QUOTE)

        updated = self.mark_accepted(quote, actor)
        result = self._commit_or_restore(
            intervention, actor, Action.ACCEPT_QUOTE, quote, updated,
            updates={"selected_quote_id": quote_id},
            payload={"quote_id": quote_id, "provider_id": quote.provider_id, "amount": quote.amount}
        )
        return result.model_copy(update={"quote": updated})

    def reject_quote(
        self,
        quote_id: str,
        actor: ActorContext,
        reason: Optional[str] = None
    ) -> TransitionResult:
        """Decline a pending quote"""
        quote, intervention = self._load(quote_id)
        self.executor.authorize(intervention, actor, Action.REJECT_QUOTE)

        updated = self.quote_repo.update_quote(quote_id, QuoteStatus.PENDING, {
            "status": QuoteStatus.REJECTED.value,
            "cancel_reason": reason,
            "decided_at": utc_now(),
            "decided_by": actor.user_id
        })

        result = self._commit_or_restore(
            intervention, actor, Action.REJECT_QUOTE, quote, updated,
            payload={"quote_id": quote_id, "provider_id": quote.provider_id, "reason": reason}
        )
        return result.model_copy(update={"quote": updated})

    # =========================================================================
    # Helpers shared with scheduling
    # =========================================================================

    def mark_accepted(self, quote: Quote, actor: ActorContext) -> Quote:
        """
        Move a submitted quote to accepted.

        Raises:
            ValidationError: the provider never submitted it
            InvalidStateError: quote is no longer pending
            ConflictError: another quote is already accepted
        """
        if quote.status == QuoteStatus.PENDING and quote.amount is None:
            raise ValidationError(
                "Quote has not been submitted by the provider yet",
                details={"quote_id": quote.quote_id}
            )
        accepted = self.quote_repo.get_quotes_for_intervention(
            quote.intervention_id, statuses=[QuoteStatus.ACCEPTED]
        )
        if accepted:
            raise ConflictError(
                "Another quote has already been accepted for this intervention",
                details={"quote_id": quote.quote_id, "accepted_quote_id": accepted[0].quote_id}
            )
        return self.quote_repo.update_quote(quote.quote_id, QuoteStatus.PENDING, {
            "status": QuoteStatus.ACCEPTED.value,
            "decided_at": utc_now(),
            "decided_by": actor.user_id
        })

    def resolve_selected_quote(self, intervention: Intervention, quote_id: str) -> Quote:
        """Quote named by a planning operation; must belong to the intervention"""
        quote = self.quote_repo.get_quote_or_raise(quote_id)
        if quote.intervention_id != intervention.intervention_id:
            raise QuoteNotFoundError(
                f"Quote {quote_id} not found on intervention {intervention.intervention_id}"
            )
        return quote

    def restore(self, original: Quote, current: Quote) -> None:
        """Put a quote back the way it was before a failed transition"""
        try:
            self.quote_repo.update_quote(original.quote_id, current.status, {
                "status": original.status.value,
                "amount": original.amount,
                "description": original.description,
                "submitted_at": original.submitted_at,
                "decided_at": original.decided_at,
                "decided_by": original.decided_by,
                "cancel_reason": original.cancel_reason
            })
        except DomainError as e:
            logger.error(
                f"Could not restore quote {original.quote_id}: {e.message}",
                extra={"intervention_id": original.intervention_id, "quote_id": original.quote_id}
            )

    def cancel_superseded(self, intervention_id: str) -> int:
        """Close the quote phase: every still-pending quote is cancelled"""
        return self.quote_repo.cancel_pending_quotes(intervention_id, SUPERSEDED_REASON)

    def _load(self, quote_id: str):
        quote = self.quote_repo.get_quote_or_raise(quote_id)
        intervention = self.executor.load(quote.intervention_id)
        return quote, intervention

    def _commit_or_restore(
        self,
        intervention: Intervention,
        actor: ActorContext,
        action: Action,
        original: Quote,
        updated: Quote,
        payload: Dict[str, Any],
        updates: Optional[Dict[str, Any]] = None
    ) -> TransitionResult:
        try:
            return self.executor.commit(intervention, actor, action, updates=updates, payload=payload)
        except DomainError:
            self.restore(original, updated)
            raise
