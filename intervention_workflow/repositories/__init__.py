"""Repository modules - Data access layer"""
from .mongo_client import get_database, get_collection
from .intervention_repo import InterventionRepository
from .user_repo import UserRepository
from .quote_repo import QuoteRepository
from .time_slot_repo import TimeSlotRepository
from .availability_repo import AvailabilityRepository
from .notification_repo import NotificationRepository
from .outbox_repo import OutboxRepository
from .audit_repo import AuditRepository

__all__ = [
    "get_database",
    "get_collection",
    "InterventionRepository",
    "UserRepository",
    "QuoteRepository",
    "TimeSlotRepository",
    "AvailabilityRepository",
    "NotificationRepository",
    "OutboxRepository",
    "AuditRepository",
]
