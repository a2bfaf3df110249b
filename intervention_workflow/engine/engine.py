"""
Intervention Engine - Single entry point for every lifecycle operation

=============================================================================
MODULE STRUCTURE
=============================================================================

1. INITIALIZATION
   - Repositories, guard, audit writer, fan-out and the sub-managers

2. CREATION & MANAGER DECISIONS
   - create_intervention, approve
   - reject, cancel (CancellationManager)

3. ASSIGNMENTS
   - assign_user, unassign_user

4. SUB-PROTOCOLS (delegated)
   - Quotes: QuoteNegotiationManager
   - Scheduling: SchedulingNegotiator
     (slot proposals, availabilities and their matching)
   - Completion & contest: CompletionManager

5. READ MODEL
   - get_intervention, get_available_actions, list_interventions,
     get_quotes, get_time_slots, get_availabilities, match_availabilities

Every mutating operation follows the same order: terminal check, transition
table, team scope and assignment, payload validation, compare-and-set write,
post-commit fan-out.
=============================================================================
"""
from typing import List, Optional

from ..domain.models import (
    ActorContext, Assignment, Availability, AvailabilityMatchResult, AvailabilityWindow, Intervention,
    InterventionEvent, Quote, TimeSlot, TransitionResult
)
from ..domain.enums import (
    Action, AssignmentRole, InterventionStatus, Role, TimeSlotStatus, Urgency
)
from ..domain.errors import (
    AuthorizationError, DomainError, NotFoundError, PermissionDeniedError, ValidationError
)
from ..repositories.intervention_repo import InterventionRepository
from ..repositories.user_repo import UserRepository
from ..repositories.quote_repo import QuoteRepository
from ..repositories.availability_repo import AvailabilityRepository
from ..repositories.time_slot_repo import TimeSlotRepository
from ..services.notification_service import NotificationFanout
from .availability import find_matches
from .audit_writer import AuditWriter
from .permission_guard import PermissionGuard
from .transition_executor import TransitionExecutor, append_entry, require_text
from .transition_table import get_available_actions as table_actions
from .quote_manager import QuoteNegotiationManager
from .scheduling import SchedulingNegotiator
from .completion import CompletionManager
from .cancellation import CancellationManager
from ..utils.idgen import (
    generate_intervention_id, generate_intervention_reference, generate_assignment_id, generate_event_id
)
from ..utils.logger import get_logger, get_correlation_id
from ..utils.time import utc_now

logger = get_logger(__name__)

CREATOR_ROLES = (Role.LOCATAIRE, Role.GESTIONNAIRE, Role.ADMIN)


class InterventionEngine:
    """Orchestrates the intervention lifecycle"""

    def __init__(
        self,
        intervention_repo: Optional[InterventionRepository] = None,
        user_repo: Optional[UserRepository] = None,
        quote_repo: Optional[QuoteRepository] = None,
        slot_repo: Optional[TimeSlotRepository] = None,
        availability_repo: Optional[AvailabilityRepository] = None,
        audit_writer: Optional[AuditWriter] = None,
        fanout: Optional[NotificationFanout] = None
    ):
        self.intervention_repo = intervention_repo or InterventionRepository()
        self.user_repo = user_repo or UserRepository()
        self.quote_repo = quote_repo or QuoteRepository()
        self.slot_repo = slot_repo or TimeSlotRepository()
        self.availability_repo = availability_repo or AvailabilityRepository()
        self.permission_guard = PermissionGuard(self.intervention_repo)
        self.fanout = fanout or NotificationFanout(
            intervention_repo=self.intervention_repo,
            user_repo=self.user_repo
        )
        self.executor = TransitionExecutor(
            self.intervention_repo,
            self.permission_guard,
            audit_writer or AuditWriter(),
            self.fanout
        )

        self.quotes = QuoteNegotiationManager(
            self.executor, self.intervention_repo, self.quote_repo, self.user_repo
        )
        self.scheduling = SchedulingNegotiator(
            self.executor, self.slot_repo, self.quotes, self.availability_repo
        )
        self.completion = CompletionManager(self.executor)
        self.cancellation = CancellationManager(self.executor, self.quote_repo, self.slot_repo)

    # =========================================================================
    # Creation & manager decisions
    # =========================================================================

    def create_intervention(
        self,
        actor: ActorContext,
        title: str,
        description: Optional[str] = None,
        type: str = "autre",
        urgency: Urgency = Urgency.NORMALE,
        lot_id: Optional[str] = None,
        building_id: Optional[str] = None,
        tenant_id: Optional[str] = None
    ) -> TransitionResult:
        """
        Open a new request in ``demande``.

        A tenant is assigned to their own request. A manager is assigned as
        gestionnaire and may name the tenant the request is for.
        """
        if actor.role not in CREATOR_ROLES:
            raise AuthorizationError(
                f"Role '{actor.role.value}' cannot create interventions",
                details={"role": actor.role.value, "action": Action.CREATE.value}
            )
        title = require_text(title, "title")
        if not actor.team_id:
            raise ValidationError("Actor has no team; interventions are created within a team")
        if tenant_id and actor.role == Role.LOCATAIRE and tenant_id != actor.user_id:
            raise ValidationError("A tenant can only open requests for themselves")

        tenant = None
        if tenant_id and tenant_id != actor.user_id:
            tenant = self.user_repo.get_user_or_raise(tenant_id)
            if tenant.role != Role.LOCATAIRE or not self.user_repo.is_team_member(actor.team_id, tenant_id):
                raise ValidationError(
                    f"User {tenant_id} is not a locataire of this team",
                    details={"tenant_id": tenant_id}
                )

        now = utc_now()
        intervention_id = generate_intervention_id()
        event = InterventionEvent(
            event_id=generate_event_id(),
            intervention_id=intervention_id,
            team_id=actor.team_id,
            action=Action.CREATE,
            old_status=InterventionStatus.DEMANDE,
            new_status=InterventionStatus.DEMANDE,
            actor_id=actor.user_id,
            actor_role=actor.role,
            actor_name=actor.name,
            payload={"urgency": Urgency(urgency).value, "type": type},
            occurred_at=now,
            correlation_id=get_correlation_id()
        )
        intervention = self.intervention_repo.create_intervention(Intervention(
            intervention_id=intervention_id,
            reference=generate_intervention_reference(),
            team_id=actor.team_id,
            lot_id=lot_id,
            building_id=building_id,
            title=title,
            description=description,
            type=type,
            urgency=urgency,
            created_by=actor.user_id,
            pending_events=[event],
            created_at=now,
            updated_at=now
        ))

        if actor.role == Role.LOCATAIRE:
            self._link(intervention_id, actor.user_id, AssignmentRole.LOCATAIRE, actor, is_primary=True)
        else:
            self._link(intervention_id, actor.user_id, AssignmentRole.GESTIONNAIRE, actor, is_primary=True)
            if tenant:
                self._link(intervention_id, tenant.user_id, AssignmentRole.LOCATAIRE, actor, is_primary=True)

        logger.info(
            f"Intervention {intervention.reference} created",
            extra={
                "intervention_id": intervention_id,
                "actor_id": actor.user_id,
                "action": Action.CREATE.value,
                "new_status": InterventionStatus.DEMANDE.value
            }
        )

        notifications = self.executor.dispatch(intervention, event)
        return TransitionResult(
            intervention=self.executor.load(intervention_id),
            event_id=event.event_id,
            notifications=notifications
        )

    def approve(
        self,
        intervention_id: str,
        actor: ActorContext,
        comment: Optional[str] = None,
        expected_status: Optional[InterventionStatus] = None
    ) -> TransitionResult:
        """Manager accepts a new request"""
        intervention = self.executor.load(intervention_id)
        self.executor.authorize(intervention, actor, Action.APPROVE, expected_status)

        updates = {}
        if comment and comment.strip():
            updates["manager_comment"] = append_entry(intervention.manager_comment, comment)

        return self.executor.commit(
            intervention,
            actor,
            Action.APPROVE,
            new_status=InterventionStatus.APPROUVEE,
            updates=updates
        )

    def reject(self, intervention_id: str, actor: ActorContext, reason: Optional[str], **kwargs) -> TransitionResult:
        return self.cancellation.reject(intervention_id, actor, reason, **kwargs)

    def cancel(self, intervention_id: str, actor: ActorContext, reason: Optional[str], **kwargs) -> TransitionResult:
        return self.cancellation.cancel(intervention_id, actor, reason, **kwargs)

    # =========================================================================
    # Assignments
    # =========================================================================

    def assign_user(
        self,
        intervention_id: str,
        actor: ActorContext,
        user_id: str,
        role: AssignmentRole,
        is_primary: bool = False
    ) -> TransitionResult:
        """Link a team member to the intervention with their own role"""
        intervention = self.executor.load(intervention_id)
        self.executor.authorize(intervention, actor, Action.ASSIGN)

        role = AssignmentRole(role)
        user = self.user_repo.get_user_or_raise(user_id)
        if user.role.value != role.value:
            raise ValidationError(
                f"User {user_id} is a {user.role.value}, cannot be assigned as {role.value}",
                details={"user_id": user_id, "role": role.value}
            )
        if not self.user_repo.is_team_member(intervention.team_id, user_id):
            raise ValidationError(
                f"User {user_id} does not belong to the intervention's team",
                details={"user_id": user_id}
            )

        self._link(intervention_id, user_id, role, actor, is_primary=is_primary)
        try:
            return self.executor.commit(
                intervention,
                actor,
                Action.ASSIGN,
                payload={"user_id": user_id, "role": role.value}
            )
        except DomainError:
            self.intervention_repo.remove_assignment(intervention_id, user_id, role)
            raise

    def unassign_user(
        self,
        intervention_id: str,
        actor: ActorContext,
        user_id: str,
        role: AssignmentRole
    ) -> TransitionResult:
        """Remove a participant"""
        intervention = self.executor.load(intervention_id)
        self.executor.authorize(intervention, actor, Action.UNASSIGN)

        role = AssignmentRole(role)
        existing = [a for a in self.intervention_repo.get_assignments(intervention_id, role) if a.user_id == user_id]
        if not existing:
            raise NotFoundError(
                f"User {user_id} is not assigned as {role.value}",
                details={"user_id": user_id, "role": role.value}
            )

        self.intervention_repo.remove_assignment(intervention_id, user_id, role)
        try:
            return self.executor.commit(
                intervention,
                actor,
                Action.UNASSIGN,
                payload={"user_id": user_id, "role": role.value}
            )
        except DomainError:
            self.intervention_repo.add_assignment(existing[0])
            raise

    def _link(
        self,
        intervention_id: str,
        user_id: str,
        role: AssignmentRole,
        actor: ActorContext,
        is_primary: bool = False
    ) -> Assignment:
        return self.intervention_repo.add_assignment(Assignment(
            assignment_id=generate_assignment_id(),
            intervention_id=intervention_id,
            user_id=user_id,
            role=role,
            is_primary=is_primary,
            assigned_by=actor.user_id,
            created_at=utc_now()
        ))

    # =========================================================================
    # Quotes
    # =========================================================================

    def request_quote(self, intervention_id: str, actor: ActorContext, provider_id: str, **kwargs) -> TransitionResult:
        return self.quotes.request_quote(intervention_id, actor, provider_id, **kwargs)

    def cancel_quote(self, quote_id: str, actor: ActorContext, reason: Optional[str] = None) -> TransitionResult:
        return self.quotes.cancel_quote(quote_id, actor, reason)

    def submit_quote(
        self,
        quote_id: str,
        actor: ActorContext,
        amount: float,
        description: Optional[str] = None
    ) -> TransitionResult:
        return self.quotes.submit_quote(quote_id, actor, amount, description)

    def accept_quote(self, quote_id: str, actor: ActorContext) -> TransitionResult:
        return self.quotes.accept_quote(quote_id, actor)

    def reject_quote(self, quote_id: str, actor: ActorContext, reason: Optional[str] = None) -> TransitionResult:
        return self.quotes.reject_quote(quote_id, actor, reason)

    # =========================================================================
    # Scheduling
    # =========================================================================

    def start_planning(
        self,
        intervention_id: str,
        actor: ActorContext,
        selected_quote_id: Optional[str] = None,
        expected_status: Optional[InterventionStatus] = None
    ) -> TransitionResult:
        return self.scheduling.start_planning(intervention_id, actor, selected_quote_id, expected_status)

    def propose_slot(self, intervention_id: str, actor: ActorContext, slot_date, start_time: str, end_time: str) -> TransitionResult:
        return self.scheduling.propose_slot(intervention_id, actor, slot_date, start_time, end_time)

    def respond_to_slot(self, slot_id: str, actor: ActorContext, response, reason: Optional[str] = None) -> TransitionResult:
        return self.scheduling.respond_to_slot(slot_id, actor, response, reason)

    def confirm_schedule(self, intervention_id: str, actor: ActorContext, **kwargs) -> TransitionResult:
        return self.scheduling.confirm_schedule(intervention_id, actor, **kwargs)

    def submit_availability(
        self,
        intervention_id: str,
        actor: ActorContext,
        windows: List[AvailabilityWindow]
    ) -> TransitionResult:
        return self.scheduling.submit_availability(intervention_id, actor, windows)

    # =========================================================================
    # Completion
    # =========================================================================

    def start_work(self, intervention_id: str, actor: ActorContext, **kwargs) -> TransitionResult:
        return self.completion.start_work(intervention_id, actor, **kwargs)

    def complete_work(self, intervention_id: str, actor: ActorContext, report: Optional[str] = None, **kwargs) -> TransitionResult:
        return self.completion.complete_work(intervention_id, actor, report, **kwargs)

    def validate_work(self, intervention_id: str, actor: ActorContext, decision, **kwargs) -> TransitionResult:
        return self.completion.validate_work(intervention_id, actor, decision, **kwargs)

    def finalize(
        self,
        intervention_id: str,
        actor: ActorContext,
        final_cost: Optional[float] = None,
        comment: Optional[str] = None,
        expected_status: Optional[InterventionStatus] = None
    ) -> TransitionResult:
        return self.completion.finalize(intervention_id, actor, final_cost, comment, expected_status)

    # =========================================================================
    # Read model
    # =========================================================================

    def get_intervention(self, intervention_id: str, actor: ActorContext) -> Intervention:
        """Current snapshot, if the actor may see it"""
        intervention = self.executor.load(intervention_id)
        self._check_can_view(actor, intervention)
        return intervention

    def get_available_actions(self, intervention_id: str, actor: ActorContext) -> List[Action]:
        """Actions the UI may offer this actor right now"""
        intervention = self.get_intervention(intervention_id, actor)
        return table_actions(intervention.status, actor.role)

    def list_interventions(
        self,
        actor: ActorContext,
        statuses: Optional[List[InterventionStatus]] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[Intervention]:
        """Managers see their team; tenants and providers see what they are assigned to"""
        intervention_ids = None
        if not actor.is_manager:
            intervention_ids = self.intervention_repo.get_intervention_ids_for_user(actor.user_id)
        return self.intervention_repo.list_interventions(
            actor.team_id,
            statuses=statuses,
            intervention_ids=intervention_ids,
            skip=skip,
            limit=limit
        )

    def get_quotes(self, intervention_id: str, actor: ActorContext) -> List[Quote]:
        """Providers only see the quotes addressed to them"""
        self.get_intervention(intervention_id, actor)
        quotes = self.quote_repo.get_quotes_for_intervention(intervention_id)
        if actor.role == Role.PRESTATAIRE:
            quotes = [q for q in quotes if q.provider_id == actor.user_id]
        return quotes

    def get_time_slots(
        self,
        intervention_id: str,
        actor: ActorContext,
        statuses: Optional[List[TimeSlotStatus]] = None
    ) -> List[TimeSlot]:
        self.get_intervention(intervention_id, actor)
        return self.slot_repo.get_slots_for_intervention(intervention_id, statuses)

    def get_availabilities(self, intervention_id: str, actor: ActorContext) -> List[Availability]:
        self.get_intervention(intervention_id, actor)
        return self.availability_repo.get_for_intervention(intervention_id)

    def match_availabilities(self, intervention_id: str, actor: ActorContext) -> AvailabilityMatchResult:
        """Shared windows across everyone who entered availabilities"""
        return find_matches(self.get_availabilities(intervention_id, actor))

    def replay_stale_events(self, older_than_seconds: int, limit: int = 50) -> int:
        return self.executor.replay_stale_events(older_than_seconds, limit)

    def _check_can_view(self, actor: ActorContext, intervention: Intervention) -> None:
        if not self.permission_guard.can_view(actor, intervention):
            raise PermissionDeniedError(
                "You do not have access to this intervention",
                details={"intervention_id": intervention.intervention_id}
            )
