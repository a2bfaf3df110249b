"""Workflow engine modules"""
from .engine import InterventionEngine
from .transition_table import (
    TRANSITIONS, AUXILIARY_ACTIONS, TERMINAL_STATUSES, get_available_actions, is_terminal
)
from .permission_guard import PermissionGuard
from .audit_writer import AuditWriter

__all__ = [
    "InterventionEngine",
    "TRANSITIONS",
    "AUXILIARY_ACTIONS",
    "TERMINAL_STATUSES",
    "get_available_actions",
    "is_terminal",
    "PermissionGuard",
    "AuditWriter",
]
