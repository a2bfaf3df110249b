"""Permission Guard - Team scope and participation checks"""
from typing import TYPE_CHECKING

from ..domain.models import Intervention, ActorContext, Quote
from ..domain.enums import Role, AssignmentRole
from ..domain.errors import PermissionDeniedError
from ..utils.logger import get_logger

if TYPE_CHECKING:
    from ..repositories.intervention_repo import InterventionRepository

logger = get_logger(__name__)


class PermissionGuard:
    """
    Scope enforcement that sits on top of the transition table

    Rules:
    - Admin acts across teams
    - Everyone else must belong to the intervention's team
    - Tenants and providers must be assigned to the intervention with their role
    - A provider only acts on their own quotes
    """

    def __init__(self, intervention_repo: "InterventionRepository"):
        self._intervention_repo = intervention_repo

    def is_in_team(self, actor: ActorContext, intervention: Intervention) -> bool:
        """Admin is never out of scope"""
        return actor.role == Role.ADMIN or actor.team_id == intervention.team_id

    def is_participant(self, actor: ActorContext, intervention: Intervention) -> bool:
        """Managers of the team participate implicitly; others need an assignment"""
        if not self.is_in_team(actor, intervention):
            return False
        if actor.is_manager:
            return True
        return self._intervention_repo.is_assigned(
            intervention.intervention_id,
            actor.user_id,
            AssignmentRole(actor.role.value)
        )

    def can_view(self, actor: ActorContext, intervention: Intervention) -> bool:
        """Check if actor can read the intervention"""
        return self.is_participant(actor, intervention)

    def check_participant(self, actor: ActorContext, intervention: Intervention) -> None:
        """
        Raise unless the actor may act on this intervention.

        Raises:
            PermissionDeniedError: wrong team or not assigned
        """
        if not self.is_in_team(actor, intervention):
            logger.warning(
                f"Actor {actor.user_id} outside team of intervention",
                extra={"intervention_id": intervention.intervention_id, "actor_id": actor.user_id}
            )
            raise PermissionDeniedError(
                "You do not belong to this intervention's team",
                details={"intervention_id": intervention.intervention_id}
            )
        if not self.is_participant(actor, intervention):
            raise PermissionDeniedError(
                f"You are not assigned to this intervention as {actor.role.value}",
                details={"intervention_id": intervention.intervention_id}
            )

    def check_quote_owner(self, actor: ActorContext, quote: Quote) -> None:
        """A provider may only touch the quote addressed to them"""
        if quote.provider_id != actor.user_id:
            raise PermissionDeniedError(
                "This quote was requested from another provider",
                details={"quote_id": quote.quote_id}
            )
