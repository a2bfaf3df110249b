"""Domain Models - Pydantic schemas for all entities"""
from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Optional
from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field

from .enums import (
    InterventionStatus, Role, AssignmentRole, Action, Urgency, QuoteStatus,
    TimeSlotStatus, SlotResponse, NotificationKind, NotificationChannel,
    NotificationStatus, NotificationTemplateKey
)
from ..utils.time import ensure_utc


# Mongo returns naive UTC datetimes; every stored timestamp is normalized on load
UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


# ============================================================================
# Actors & Directory
# ============================================================================

class ActorContext(BaseModel):
    """Current actor context from the verified bearer token"""
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., description="Verified user ID (token subject)")
    role: Role = Field(..., description="Platform role")
    team_id: str = Field(..., description="Team scope of the actor")
    name: str = Field(default="", description="Display name")
    email: Optional[EmailStr] = Field(None, description="User email")

    @property
    def is_manager(self) -> bool:
        """Gestionnaire or admin"""
        return self.role in (Role.GESTIONNAIRE, Role.ADMIN)


class User(BaseModel):
    """Directory entry consumed by the engine (read-only)"""
    model_config = ConfigDict(extra="ignore")

    user_id: str
    name: str
    email: Optional[EmailStr] = None
    role: Role
    team_id: Optional[str] = None


class TeamMember(BaseModel):
    """Team membership row"""
    model_config = ConfigDict(extra="ignore")

    team_id: str
    user_id: str
    role: Role


# ============================================================================
# Intervention aggregate
# ============================================================================

class InterventionEvent(BaseModel):
    """
    Transition-completed event.

    Written into ``Intervention.pending_events`` by the same atomic update that
    changes the intervention, and removed once the fan-out has run.
    """
    model_config = ConfigDict(extra="ignore")

    event_id: str
    intervention_id: str
    team_id: str
    action: Action
    old_status: InterventionStatus
    new_status: InterventionStatus
    actor_id: str
    actor_role: Role
    actor_name: str = ""
    payload: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: UtcDatetime
    correlation_id: Optional[str] = None


class InterventionMetadata(BaseModel):
    """Free-form metadata; contest bookkeeping lives here"""
    model_config = ConfigDict(extra="allow")

    contest_count: int = 0
    last_contest_reason: Optional[str] = None
    last_contest_date: Optional[UtcDatetime] = None


class Intervention(BaseModel):
    """Maintenance request aggregate root"""
    model_config = ConfigDict(extra="ignore")

    intervention_id: str
    reference: str
    team_id: str
    lot_id: Optional[str] = None
    building_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    type: str = "autre"
    urgency: Urgency = Urgency.NORMALE
    status: InterventionStatus = InterventionStatus.DEMANDE
    created_by: str

    # Scheduling
    scheduled_date: Optional[UtcDatetime] = None
    selected_slot_id: Optional[str] = None

    # Quote phase
    quote_deadline: Optional[UtcDatetime] = None
    quote_notes: Optional[str] = None
    selected_quote_id: Optional[str] = None

    # Closure
    tenant_comment: Optional[str] = None
    provider_report: Optional[str] = None
    tenant_satisfaction_rating: Optional[int] = None
    tenant_validated_date: Optional[UtcDatetime] = None
    final_cost: Optional[float] = None
    finalized_at: Optional[UtcDatetime] = None

    # Reasons
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[UtcDatetime] = None

    # Internal to the manager team
    manager_comment: Optional[str] = None

    metadata: InterventionMetadata = Field(default_factory=InterventionMetadata)
    pending_events: List[InterventionEvent] = Field(default_factory=list)

    version: int = 1
    created_at: UtcDatetime
    updated_at: UtcDatetime


class Assignment(BaseModel):
    """(user, role) link to an intervention"""
    model_config = ConfigDict(extra="ignore")

    assignment_id: str
    intervention_id: str
    user_id: str
    role: AssignmentRole
    is_primary: bool = False
    assigned_by: Optional[str] = None
    created_at: UtcDatetime


class Quote(BaseModel):
    """Priced proposal from a provider"""
    model_config = ConfigDict(extra="ignore")

    quote_id: str
    intervention_id: str
    provider_id: str
    status: QuoteStatus = QuoteStatus.PENDING
    amount: Optional[float] = None
    description: Optional[str] = None
    deadline: Optional[UtcDatetime] = None
    notes: Optional[str] = None
    created_by: str
    submitted_at: Optional[UtcDatetime] = None
    decided_at: Optional[UtcDatetime] = None
    decided_by: Optional[str] = None
    cancel_reason: Optional[str] = None
    created_at: UtcDatetime
    updated_at: UtcDatetime


class TimeSlot(BaseModel):
    """Candidate execution window"""
    model_config = ConfigDict(extra="ignore")

    slot_id: str
    intervention_id: str
    slot_date: date
    start_time: str = Field(..., description="HH:MM, property local time")
    end_time: str = Field(..., description="HH:MM, property local time")
    proposed_by: str
    proposer_role: Role
    status: TimeSlotStatus = TimeSlotStatus.PENDING
    created_at: UtcDatetime
    updated_at: UtcDatetime


class TimeSlotResponse(BaseModel):
    """Participant answer to a proposed slot"""
    model_config = ConfigDict(extra="ignore")

    response_id: str
    slot_id: str
    intervention_id: str
    user_id: str
    user_role: Role
    response: SlotResponse
    reason: Optional[str] = None
    responded_at: UtcDatetime


# ============================================================================
# Availabilities
# ============================================================================

class AvailabilityWindow(BaseModel):
    """A window a participant can make themselves available, property local time"""
    slot_date: date
    start_time: str = Field(..., description="HH:MM, property local time")
    end_time: str = Field(..., description="HH:MM, property local time")


class Availability(BaseModel):
    """Stored availability window of one participant"""
    model_config = ConfigDict(extra="ignore")

    availability_id: str
    intervention_id: str
    user_id: str
    user_name: Optional[str] = None
    user_role: Role
    slot_date: date
    start_time: str
    end_time: str
    created_at: UtcDatetime


class AvailabilityParticipant(BaseModel):
    user_id: str
    name: Optional[str] = None
    role: Role


class MatchedSlot(BaseModel):
    """Window shared by several participants on one day"""
    slot_date: date
    start_time: str
    end_time: str
    participants: List[AvailabilityParticipant]
    match_score: int = Field(..., description="Percentage of all participants covered")
    overlap_minutes: int


class PartialMatch(BaseModel):
    """Shared window that leaves some participants out"""
    slot_date: date
    start_time: str
    end_time: str
    available_users: List[AvailabilityParticipant]
    missing_users: List[AvailabilityParticipant]
    match_score: int


class AvailabilityConflict(BaseModel):
    """Overlapping windows entered by the same participant on one day"""
    user_id: str
    name: Optional[str] = None
    slot_date: date
    windows: List[Dict[str, str]]


class MatchStatistics(BaseModel):
    total_users: int = 0
    total_windows: int = 0
    best_match_score: int = 0


class AvailabilityMatchResult(BaseModel):
    """Outcome of matching every participant's availabilities"""
    perfect_matches: List[MatchedSlot] = Field(default_factory=list)
    partial_matches: List[PartialMatch] = Field(default_factory=list)
    conflicts: List[AvailabilityConflict] = Field(default_factory=list)
    statistics: MatchStatistics = Field(default_factory=MatchStatistics)


# ============================================================================
# Notifications
# ============================================================================

class Notification(BaseModel):
    """In-app notification (write-once per user, entity and dedup key)"""
    model_config = ConfigDict(extra="ignore")

    notification_id: str
    user_id: str
    team_id: str
    type: NotificationKind
    title: str
    message: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    related_entity_type: str = "intervention"
    related_entity_id: str
    dedup_key: str
    is_personal: bool = False
    created_by: Optional[str] = None
    read: bool = False
    read_at: Optional[UtcDatetime] = None
    created_at: UtcDatetime


class NotificationOutbox(BaseModel):
    """One deferred delivery intent per (recipient, channel)"""
    model_config = ConfigDict(extra="ignore")

    outbox_id: str
    intervention_id: str
    channel: NotificationChannel
    template_key: NotificationTemplateKey
    recipient_user_id: str
    recipient_email: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    dedup_key: str
    status: NotificationStatus = NotificationStatus.PENDING
    retry_count: int = 0
    last_error: Optional[str] = None
    next_retry_at: Optional[UtcDatetime] = None
    locked_until: Optional[UtcDatetime] = None
    locked_by: Optional[str] = None
    created_at: UtcDatetime
    sent_at: Optional[UtcDatetime] = None


class FanoutResult(BaseModel):
    """Counts reported back to the caller after a fan-out"""
    in_app: int = 0
    push_queued: int = 0
    email_queued: int = 0
    skipped: int = 0
    failed: int = 0


# ============================================================================
# Audit
# ============================================================================

class AuditEvent(BaseModel):
    """Audit event (append-only)"""
    model_config = ConfigDict(extra="ignore")

    audit_event_id: str
    intervention_id: str
    event_id: Optional[str] = None
    action: Action
    old_status: Optional[InterventionStatus] = None
    new_status: Optional[InterventionStatus] = None
    actor_id: str
    actor_role: Role
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: UtcDatetime
    correlation_id: Optional[str] = None


class TransitionResult(BaseModel):
    """What every engine operation hands back to its caller"""
    intervention: Intervention
    event_id: Optional[str] = None
    notifications: FanoutResult = Field(default_factory=FanoutResult)
    quote: Optional[Quote] = None
    time_slot: Optional[TimeSlot] = None
    availabilities: Optional[List[Availability]] = None
