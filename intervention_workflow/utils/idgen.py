"""ID Generation Utilities"""
import uuid
from typing import Optional

from .time import utc_now


def generate_id(prefix: Optional[str] = None) -> str:
    """
    Generate a unique ID with optional prefix

    Args:
        prefix: Optional prefix for the ID (e.g., 'INT', 'QTE', 'SLOT')

    Returns:
        Unique ID string

    Examples:
        >>> generate_id('INT')
        'INT-a1b2c3d4e5f6'
        >>> generate_id()
        'a1b2c3d4e5f6'
    """
    unique_part = uuid.uuid4().hex[:12]

    if prefix:
        return f"{prefix}-{unique_part}"
    return unique_part


def generate_intervention_id() -> str:
    """Generate intervention ID"""
    return generate_id("INT")


def generate_intervention_reference() -> str:
    """Human-facing reference, e.g. INT-20250301-4F2A"""
    return f"INT-{utc_now().strftime('%Y%m%d')}-{uuid.uuid4().hex[:4].upper()}"


def generate_assignment_id() -> str:
    """Generate assignment ID"""
    return generate_id("ASGN")


def generate_quote_id() -> str:
    """Generate quote ID"""
    return generate_id("QTE")


def generate_slot_id() -> str:
    """Generate time slot ID"""
    return generate_id("SLOT")


def generate_slot_response_id() -> str:
    """Generate time slot response ID"""
    return generate_id("RSP")


def generate_availability_id() -> str:
    """Generate availability window ID"""
    return generate_id("AVL")


def generate_event_id() -> str:
    """Generate transition event ID"""
    return generate_id("EVT")


def generate_notification_id() -> str:
    """Generate in-app notification ID"""
    return generate_id("NTF")


def generate_outbox_id() -> str:
    """Generate outbox row ID"""
    return generate_id("OBX")


def generate_audit_event_id() -> str:
    """Generate audit event ID"""
    return generate_id("AUD")


def generate_correlation_id() -> str:
    """
    Generate a correlation ID for request tracing

    Returns:
        Correlation ID string with timestamp prefix
    """
    timestamp = utc_now().strftime("%Y%m%d%H%M%S")
    unique_part = uuid.uuid4().hex[:8]
    return f"COR-{timestamp}-{unique_part}"
