"""Time Utilities - UTC timestamps, ISO formatting and property-local times"""
import re
from datetime import date, datetime, time, timezone
from typing import Optional
from dateutil import parser as date_parser
from dateutil import tz


HHMM_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def utc_now() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to an aware UTC datetime.

    MongoDB hands datetimes back naive (they are stored as UTC), so anything
    read from the store goes through here.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_iso(dt: datetime) -> str:
    """
    Format datetime to ISO 8601 string

    Args:
        dt: Datetime object

    Returns:
        ISO formatted string with Z suffix for UTC
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 string to datetime

    Args:
        iso_string: ISO formatted datetime string

    Returns:
        Datetime object in UTC
    """
    dt = date_parser.isoparse(iso_string)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_hhmm(value: str) -> time:
    """Parse an ``HH:MM`` string, raising ValueError when malformed"""
    match = HHMM_PATTERN.match(value or "")
    if not match:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return time(hour=int(match.group(1)), minute=int(match.group(2)))


def normalize_hhmm(value: str) -> str:
    """Zero-padded ``HH:MM`` form of a valid time (``9:05`` becomes ``09:05``)"""
    return parse_hhmm(value).strftime("%H:%M")


def minutes_of_day(value: str) -> int:
    """Minutes since midnight for an ``HH:MM`` string"""
    parsed = parse_hhmm(value)
    return parsed.hour * 60 + parsed.minute


def combine_local(slot_date: date, hhmm: str, timezone_name: str) -> datetime:
    """
    Combine a calendar date and ``HH:MM`` time in the property's timezone.

    Returns:
        Aware datetime in UTC
    """
    zone = tz.gettz(timezone_name)
    if zone is None:
        raise ValueError(f"Unknown timezone '{timezone_name}'")
    local = datetime.combine(slot_date, parse_hhmm(hhmm)).replace(tzinfo=zone)
    return local.astimezone(timezone.utc)


def local_today(timezone_name: str) -> date:
    """Current calendar date at the property"""
    zone = tz.gettz(timezone_name)
    if zone is None:
        raise ValueError(f"Unknown timezone '{timezone_name}'")
    return datetime.now(zone).date()


def to_local(dt: datetime, timezone_name: str) -> datetime:
    """Convert a stored UTC datetime to the property's local time"""
    zone = tz.gettz(timezone_name)
    if zone is None:
        raise ValueError(f"Unknown timezone '{timezone_name}'")
    return ensure_utc(dt).astimezone(zone)


def minutes_until(dt: datetime) -> int:
    """
    Calculate minutes until the given datetime

    Returns:
        Positive if in future, negative if in past
    """
    delta = ensure_utc(dt) - utc_now()
    return int(delta.total_seconds() / 60)
