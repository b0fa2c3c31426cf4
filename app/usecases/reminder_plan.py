"""
Reminder plan builder: turns an appointment's slot into future reminder instants.
"""

from datetime import datetime
from typing import List, Optional

from app.domain.reminder import PlannedReminder, ReminderKind
from app.utils.time import get_current_time_ist, slot_start_instant, to_ist


class ReminderPlanError(ValueError):
    """The appointment's slot cannot be turned into reminder instants."""


def meeting_start(appointment) -> datetime:
    """
    Absolute start instant of an appointment's slot.

    Raises:
        ReminderPlanError: If the slot date or start time is missing or malformed
    """
    try:
        return slot_start_instant(appointment.slot_date, appointment.slot_start_time)
    except ValueError as e:
        raise ReminderPlanError(f"Appointment {appointment.id}: {e}") from e


def build_reminder_plan(appointment, now: Optional[datetime] = None) -> List[PlannedReminder]:
    """
    Compute the reminders still worth sending for an appointment.

    Args:
        appointment: Object with ``id``, ``slot_date`` and ``slot_start_time``
        now: Evaluation instant (defaults to the current time in IST)

    Returns:
        Reminders in canonical order whose instant is strictly after ``now``.
        Empty when every instant has already passed.
    """
    start = meeting_start(appointment)
    now = to_ist(now) if now is not None else get_current_time_ist()

    plan = []
    for kind in ReminderKind:
        scheduled_time = start + kind.offset
        if scheduled_time <= now:
            continue
        plan.append(
            PlannedReminder(
                kind=kind,
                scheduled_time=scheduled_time,
                subject=kind.subject,
                heading=kind.heading,
                subheading=kind.subheading,
            )
        )
    return plan
