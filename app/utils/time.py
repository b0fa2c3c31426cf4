"""
Time utilities for India Standard Time (IST) handling.

Every conversion from an appointment's local slot to an absolute instant goes
through ``slot_start_instant`` so the email and WhatsApp channels agree on
when a reminder fires.
"""

from datetime import date, datetime, time
from zoneinfo import ZoneInfo
from typing import Union

from dateutil import parser as dateutil_parser

# India Standard Time (UTC+05:30, no DST)
IST = ZoneInfo("Asia/Kolkata")


def get_current_time_ist() -> datetime:
    """Get the current time in India timezone."""
    return datetime.now(IST)


def to_ist(dt: datetime) -> datetime:
    """
    Convert a datetime to India timezone.

    Args:
        dt: Datetime to convert (can be naive or aware)

    Returns:
        Datetime in IST timezone
    """
    if dt.tzinfo is None:
        # Assume naive datetime is in IST
        return dt.replace(tzinfo=IST)
    return dt.astimezone(IST)


def to_storage(dt: datetime) -> datetime:
    """Naive IST wall-clock value, as stored in the database."""
    return to_ist(dt).replace(tzinfo=None)


def parse_slot_date(value: Union[date, datetime, str]) -> date:
    """
    Normalize a slot date given as a date, datetime or ISO string.

    Raises:
        ValueError: If the value cannot be interpreted as a date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        raise ValueError("Slot date is missing")
    try:
        return dateutil_parser.isoparse(str(value).strip()).date()
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Invalid slot date: {value!r}") from e


def parse_clock_time(value: str) -> time:
    """
    Parse an ``HH:MM`` time-of-day.

    Raises:
        ValueError: If the value is missing or not a valid time
    """
    if not value:
        raise ValueError("Slot start time is missing")
    try:
        hours, minutes = (int(part) for part in value.strip().split(":"))
        return time(hours, minutes)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid time of day: {value!r}") from e


def slot_start_instant(slot_date: Union[date, datetime, str], start_time: str) -> datetime:
    """
    Absolute start instant of a slot whose date and time are IST wall-clock.

    Args:
        slot_date: Calendar date of the slot
        start_time: Start time as ``HH:MM``

    Returns:
        Aware datetime in IST
    """
    return datetime.combine(parse_slot_date(slot_date), parse_clock_time(start_time), tzinfo=IST)


def to_unix_timestamp(dt: datetime) -> int:
    """Seconds since the epoch for an instant (naive values are IST)."""
    return int(to_ist(dt).timestamp())


def format_slot_date(value: Union[date, datetime, str]) -> str:
    """Format a slot date the way Indian readers expect (DD/MM/YYYY)."""
    return parse_slot_date(value).strftime("%d/%m/%Y")
