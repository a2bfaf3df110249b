"""Notification Fan-out - Audience groups and channels for every event

Three audience groups are computed for each intervention event:

- Group A: every gestionnaire of the intervention's team -> in-app
- Group B: gestionnaires assigned to the intervention -> push + email
- Group C: assigned locataires and prestataires -> in-app + push + email

In-app rows are written immediately; push and email are queued in the outbox
and delivered by the dispatcher, so provider latency never reaches the caller.
Each recipient and channel is isolated: one failure is logged and counted and
the remaining recipients are still served.
"""
from typing import Any, Dict, Iterable, NamedTuple, Optional, Set

from ..domain.models import (
    Intervention, InterventionEvent, NotificationOutbox, FanoutResult, User
)
from ..domain.enums import (
    Action, AssignmentRole, NotificationChannel, NotificationKind,
    NotificationTemplateKey, Role, ValidationDecision
)
from ..repositories.intervention_repo import InterventionRepository
from ..repositories.user_repo import UserRepository
from ..repositories.outbox_repo import OutboxRepository
from .delivery_service import NotificationDelivery
from ..config.settings import settings
from ..utils.idgen import generate_outbox_id
from ..utils.logger import get_logger
from ..utils.time import utc_now, format_iso

logger = get_logger(__name__)


class Audience(NamedTuple):
    """Recipients per group, as user IDs"""
    managers: Set[str]  # Group A
    assigned_managers: Set[str]  # Group B
    participants: Set[str]  # Group C


class NotificationContent(NamedTuple):
    template_key: NotificationTemplateKey
    kind: NotificationKind
    title: str
    message: str


# (template, in-app type, title) per action
EVENT_CONTENT: Dict[Action, tuple] = {
    Action.CREATE: (NotificationTemplateKey.INTERVENTION_CREATED, NotificationKind.INTERVENTION, "Nouvelle demande d'intervention"),
    Action.APPROVE: (NotificationTemplateKey.INTERVENTION_APPROVED, NotificationKind.INTERVENTION, "Intervention approuvée"),
    Action.REJECT: (NotificationTemplateKey.INTERVENTION_REJECTED, NotificationKind.INTERVENTION, "Intervention rejetée"),
    Action.REQUEST_QUOTE: (NotificationTemplateKey.QUOTE_REQUESTED, NotificationKind.QUOTE, "Demande de devis"),
    Action.CANCEL_QUOTE: (NotificationTemplateKey.QUOTE_CANCELLED, NotificationKind.QUOTE, "Demande de devis annulée"),
    Action.SUBMIT_QUOTE: (NotificationTemplateKey.QUOTE_SUBMITTED, NotificationKind.QUOTE, "Devis reçu"),
    Action.ACCEPT_QUOTE: (NotificationTemplateKey.QUOTE_ACCEPTED, NotificationKind.QUOTE, "Devis accepté"),
    Action.REJECT_QUOTE: (NotificationTemplateKey.QUOTE_REJECTED, NotificationKind.QUOTE, "Devis refusé"),
    Action.START_PLANNING: (NotificationTemplateKey.PLANNING_STARTED, NotificationKind.INTERVENTION, "Planification en cours"),
    Action.PROPOSE_SLOT: (NotificationTemplateKey.SLOT_PROPOSED, NotificationKind.TIME_SLOT, "Nouveau créneau proposé"),
    Action.RESPOND_SLOT: (NotificationTemplateKey.SLOT_RESPONDED, NotificationKind.TIME_SLOT, "Réponse à un créneau"),
    Action.SUBMIT_AVAILABILITY: (NotificationTemplateKey.AVAILABILITY_SUBMITTED, NotificationKind.TIME_SLOT, "Disponibilités renseignées"),
    Action.CONFIRM_SCHEDULE: (NotificationTemplateKey.INTERVENTION_SCHEDULED, NotificationKind.INTERVENTION, "Intervention planifiée"),
    Action.START_WORK: (NotificationTemplateKey.WORK_STARTED, NotificationKind.INTERVENTION, "Travaux démarrés"),
    Action.COMPLETE_WORK: (NotificationTemplateKey.WORK_COMPLETED, NotificationKind.INTERVENTION, "Travaux terminés"),
    Action.VALIDATE_WORK: (NotificationTemplateKey.WORK_VALIDATED, NotificationKind.INTERVENTION, "Travaux validés par le locataire"),
    Action.FINALIZE: (NotificationTemplateKey.INTERVENTION_FINALIZED, NotificationKind.INTERVENTION, "Intervention clôturée"),
    Action.CANCEL: (NotificationTemplateKey.INTERVENTION_CANCELLED, NotificationKind.INTERVENTION, "Intervention annulée"),
    Action.ASSIGN: (NotificationTemplateKey.PARTICIPANT_ASSIGNED, NotificationKind.INTERVENTION, "Nouvelle assignation"),
    Action.UNASSIGN: (NotificationTemplateKey.PARTICIPANT_UNASSIGNED, NotificationKind.INTERVENTION, "Assignation retirée"),
}


def build_event_content(event: InterventionEvent, intervention: Intervention) -> NotificationContent:
    """Template, title and message for an event"""
    template_key, kind, title = EVENT_CONTENT[event.action]
    payload = event.payload
    label = f"« {intervention.title} » ({intervention.reference})"
    actor = event.actor_name or "Un utilisateur"

    if event.action == Action.VALIDATE_WORK and payload.get("decision") == ValidationDecision.CONTESTED.value:
        template_key = NotificationTemplateKey.WORK_CONTESTED
        title = "Travaux contestés par le locataire"
        message = f"{actor} conteste les travaux de l'intervention {label} : {payload.get('reason')}"
    elif event.action == Action.REJECT:
        message = f"L'intervention {label} a été rejetée. Motif : {payload.get('reason')}"
    elif event.action == Action.CANCEL:
        message = f"L'intervention {label} a été annulée. Motif : {payload.get('reason')}"
    elif event.action == Action.CONFIRM_SCHEDULE and intervention.scheduled_date:
        message = f"L'intervention {label} est planifiée le {format_iso(intervention.scheduled_date)}."
    elif event.action == Action.SUBMIT_QUOTE:
        message = f"{actor} a soumis un devis de {payload.get('amount')} € pour l'intervention {label}."
    else:
        message = f"{actor} : {title.lower()} pour l'intervention {label}."

    return NotificationContent(template_key, kind, title, message)


class NotificationFanout:
    """Computes audiences and writes in-app rows and outbox intents"""

    def __init__(
        self,
        intervention_repo: Optional[InterventionRepository] = None,
        user_repo: Optional[UserRepository] = None,
        outbox_repo: Optional[OutboxRepository] = None,
        delivery: Optional[NotificationDelivery] = None
    ):
        self.intervention_repo = intervention_repo or InterventionRepository()
        self.user_repo = user_repo or UserRepository()
        self.outbox_repo = outbox_repo or OutboxRepository()
        self.delivery = delivery or NotificationDelivery()

    def compute_audience(
        self,
        intervention: Intervention,
        exclude_from_managers: Iterable[str] = (),
        exclude_from_assigned: Iterable[str] = (),
        exclude_from_participants: Iterable[str] = ()
    ) -> Audience:
        """Resolve the three groups for an intervention"""
        team_managers = set(self.user_repo.get_team_member_ids(intervention.team_id, Role.GESTIONNAIRE))

        assigned_managers: Set[str] = set()
        participants: Set[str] = set()
        for assignment in self.intervention_repo.get_assignments(intervention.intervention_id):
            if assignment.role == AssignmentRole.GESTIONNAIRE:
                assigned_managers.add(assignment.user_id)
            else:
                participants.add(assignment.user_id)

        return Audience(
            managers=team_managers - set(exclude_from_managers),
            assigned_managers=assigned_managers - set(exclude_from_assigned),
            participants=participants - set(exclude_from_participants)
        )

    def dispatch(self, event: InterventionEvent, intervention: Intervention) -> FanoutResult:
        """Fan out one transition event; the actor is never notified of their own action"""
        actor = {event.actor_id}
        audience = self.compute_audience(intervention, actor, actor, actor)
        content = build_event_content(event, intervention)

        result = self.deliver(
            intervention=intervention,
            audience=audience,
            content=content,
            dedup_key=event.event_id,
            metadata={
                "action": event.action.value,
                "event_id": event.event_id,
                "old_status": event.old_status.value,
                "new_status": event.new_status.value,
            },
            created_by=event.actor_id
        )

        logger.info(
            f"Fan-out for {event.action.value}: {result.in_app} in-app, "
            f"{result.push_queued} push, {result.email_queued} email, {result.failed} failed",
            extra={"intervention_id": intervention.intervention_id, "event_id": event.event_id}
        )
        return result

    def deliver(
        self,
        intervention: Intervention,
        audience: Audience,
        content: NotificationContent,
        dedup_key: str,
        metadata: Optional[Dict[str, Any]] = None,
        created_by: Optional[str] = None
    ) -> FanoutResult:
        """Write in-app rows for A and C, queue push and email for B and C"""
        result = FanoutResult()
        metadata = metadata or {}

        in_app_recipients = audience.managers | audience.participants
        direct_recipients = audience.assigned_managers | audience.participants

        users: Dict[str, User] = {
            user.user_id: user
            for user in self.user_repo.get_users(sorted(in_app_recipients | direct_recipients))
        }

        for user_id in sorted(in_app_recipients):
            try:
                created = self.delivery.create_in_app(
                    user_id=user_id,
                    team_id=intervention.team_id,
                    kind=content.kind,
                    title=content.title,
                    message=content.message,
                    intervention_id=intervention.intervention_id,
                    dedup_key=dedup_key,
                    metadata=metadata,
                    is_personal=user_id in direct_recipients,
                    created_by=created_by
                )
                if created:
                    result.in_app += 1
                else:
                    result.skipped += 1
            except Exception as e:
                result.failed += 1
                logger.error(
                    f"In-app notification failed for {user_id}: {e}",
                    extra={"intervention_id": intervention.intervention_id, "error_type": type(e).__name__}
                )

        payload = {
            "intervention_id": intervention.intervention_id,
            "reference": intervention.reference,
            "intervention_title": intervention.title,
            "title": content.title,
            "message": content.message,
            "url": f"{settings.frontend_url}/interventions/{intervention.intervention_id}",
            **metadata,
        }

        for user_id in sorted(direct_recipients):
            user = users.get(user_id)
            for channel in (NotificationChannel.PUSH, NotificationChannel.EMAIL):
                try:
                    if channel == NotificationChannel.EMAIL and (user is None or not user.email):
                        result.skipped += 1
                        continue
                    row = self.outbox_repo.enqueue(NotificationOutbox(
                        outbox_id=generate_outbox_id(),
                        intervention_id=intervention.intervention_id,
                        channel=channel,
                        template_key=content.template_key,
                        recipient_user_id=user_id,
                        recipient_email=user.email if user else None,
                        payload=payload,
                        dedup_key=dedup_key,
                        created_at=utc_now()
                    ))
                    if row is None:
                        result.skipped += 1
                    elif channel == NotificationChannel.PUSH:
                        result.push_queued += 1
                    else:
                        result.email_queued += 1
                except Exception as e:
                    result.failed += 1
                    logger.error(
                        f"Failed to queue {channel.value} for {user_id}: {e}",
                        extra={
                            "intervention_id": intervention.intervention_id,
                            "channel": channel.value,
                            "error_type": type(e).__name__
                        }
                    )

        return result
