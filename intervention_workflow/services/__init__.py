"""Service modules - Notification delivery and background work

InterventionService is imported from its module directly; it sits on top of
the engine, which itself depends on the fan-out defined here.
"""
from .delivery_service import NotificationDelivery
from .notification_service import NotificationFanout, Audience
from .notification_dispatcher import OutboxDispatcher
from .reminder_service import ReminderService

__all__ = [
    "NotificationDelivery",
    "NotificationFanout",
    "Audience",
    "OutboxDispatcher",
    "ReminderService",
]
