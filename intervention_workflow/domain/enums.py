"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class InterventionStatus(str, Enum):
    """Lifecycle status of an intervention"""
    DEMANDE = "demande"
    REJETEE = "rejetee"  # Terminal
    APPROUVEE = "approuvee"
    DEMANDE_DE_DEVIS = "demande_de_devis"
    PLANIFICATION = "planification"
    PLANIFIEE = "planifiee"
    EN_COURS = "en_cours"
    CLOTUREE_PAR_PRESTATAIRE = "cloturee_par_prestataire"
    CLOTUREE_PAR_LOCATAIRE = "cloturee_par_locataire"
    CLOTUREE_PAR_GESTIONNAIRE = "cloturee_par_gestionnaire"  # Terminal
    ANNULEE = "annulee"  # Terminal


class Role(str, Enum):
    """Actor roles"""
    GESTIONNAIRE = "gestionnaire"  # Manager
    PRESTATAIRE = "prestataire"  # Provider
    LOCATAIRE = "locataire"  # Tenant
    ADMIN = "admin"


class AssignmentRole(str, Enum):
    """Roles a user can hold on a single intervention"""
    GESTIONNAIRE = "gestionnaire"
    PRESTATAIRE = "prestataire"
    LOCATAIRE = "locataire"


class Action(str, Enum):
    """Engine operations, both status-changing and sub-protocol"""
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_QUOTE = "requestQuote"
    CANCEL_QUOTE = "cancelQuote"
    SUBMIT_QUOTE = "submitQuote"
    ACCEPT_QUOTE = "acceptQuote"
    REJECT_QUOTE = "rejectQuote"
    START_PLANNING = "startPlanning"
    PROPOSE_SLOT = "proposeSlot"
    RESPOND_SLOT = "respondSlot"
    SUBMIT_AVAILABILITY = "submitAvailability"
    CONFIRM_SCHEDULE = "confirmSchedule"
    START_WORK = "startWork"
    COMPLETE_WORK = "completeWork"
    VALIDATE_WORK = "validateWork"
    FINALIZE = "finalize"
    CANCEL = "cancel"
    ASSIGN = "assign"
    UNASSIGN = "unassign"
    CREATE = "create"


class Urgency(str, Enum):
    """Intervention urgency"""
    FAIBLE = "faible"
    NORMALE = "normale"
    HAUTE = "haute"
    URGENTE = "urgente"


class QuoteStatus(str, Enum):
    """Quote status"""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class TimeSlotStatus(str, Enum):
    """Proposed time slot status"""
    PENDING = "pending"
    SELECTED = "selected"
    REJECTED = "rejected"  # Withdrawn once another slot is confirmed
    CANCELLED = "cancelled"


class SlotResponse(str, Enum):
    """Participant answer to a proposed slot"""
    ACCEPT = "accept"
    DECLINE = "decline"


class ValidationDecision(str, Enum):
    """Tenant decision on declared-complete work"""
    APPROVED = "approved"
    CONTESTED = "contested"


class NotificationKind(str, Enum):
    """In-app notification type"""
    INTERVENTION = "intervention"
    QUOTE = "quote"
    TIME_SLOT = "time_slot"
    REMINDER = "reminder"


class NotificationChannel(str, Enum):
    """Deferred delivery channels"""
    EMAIL = "email"
    PUSH = "push"


class NotificationStatus(str, Enum):
    """Outbox row status"""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"  # Channel not configured


class NotificationTemplateKey(str, Enum):
    """Email/push template keys, rendered by the delivery provider"""
    INTERVENTION_CREATED = "intervention_created"
    INTERVENTION_APPROVED = "intervention_approved"
    INTERVENTION_REJECTED = "intervention_rejected"
    QUOTE_REQUESTED = "quote_requested"
    QUOTE_CANCELLED = "quote_cancelled"
    QUOTE_SUBMITTED = "quote_submitted"
    QUOTE_ACCEPTED = "quote_accepted"
    QUOTE_REJECTED = "quote_rejected"
    PLANNING_STARTED = "planning_started"
    SLOT_PROPOSED = "slot_proposed"
    SLOT_RESPONDED = "slot_responded"
    AVAILABILITY_SUBMITTED = "availability_submitted"
    INTERVENTION_SCHEDULED = "intervention_scheduled"
    WORK_STARTED = "work_started"
    WORK_COMPLETED = "work_completed"
    WORK_VALIDATED = "work_validated"
    WORK_CONTESTED = "work_contested"
    INTERVENTION_FINALIZED = "intervention_finalized"
    INTERVENTION_CANCELLED = "intervention_cancelled"
    PARTICIPANT_ASSIGNED = "participant_assigned"
    PARTICIPANT_UNASSIGNED = "participant_unassigned"
    REMINDER_24H = "reminder_24h"
    REMINDER_1H = "reminder_1h"


class ReminderWindow(str, Enum):
    """Reminder windows evaluated against scheduled_date"""
    H24 = "24h"
    H1 = "1h"
