"""Dose window classification and next-reminder lookup."""

from datetime import datetime, time, timedelta
from typing import Collection, List

from dosetrack.db.models import DoseWindow, ReminderDefinition
from dosetrack.engine.recurrence import get_next_occurrence, occurs_on
from dosetrack.utils.constants import (
    DEFAULT_GRACE_MINUTES,
    NEXT_DOSE_LOOKAHEAD_MINUTES,
    NO_UPCOMING_TEXT,
    WEEKDAY_NAMES,
)
from dosetrack.utils.time_utils import minute_of_day


def classify(
    now_local: datetime,
    reminder_time: str,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
) -> DoseWindow:
    """Classify the current time against a reminder's dose window.

    With a reminder at minute ``r`` and grace ``g``:
    - due: ``[r - g, r]``
    - overdue: ``(r, r + g]``

    Before the due window the dose is upcoming; after the overdue window it
    is eligible for auto-miss (see ``should_auto_miss``).

    Args:
        now_local: Current time in the user's timezone
        reminder_time: Reminder time of day (HH:MM)
        grace_minutes: Window size either side of the reminder

    Returns:
        DoseWindow with is_due / is_overdue flags
    """
    current = minute_of_day(now_local)
    reminder = minute_of_day(reminder_time)

    is_due = reminder - grace_minutes <= current <= reminder
    is_overdue = reminder < current <= reminder + grace_minutes

    return DoseWindow(is_due=is_due, is_overdue=is_overdue)


def overdue_minutes(now_local: datetime, reminder_time: str) -> int:
    """Minutes elapsed since the reminder time today (0 if not yet reached)."""
    return max(0, minute_of_day(now_local) - minute_of_day(reminder_time))


def should_auto_miss(
    now_local: datetime,
    reminder_time: str,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
) -> bool:
    """Check if a dose has run past its overdue window."""
    return overdue_minutes(now_local, reminder_time) > grace_minutes


def todays_reminders(
    reminders: List[ReminderDefinition], weekday: int
) -> List[ReminderDefinition]:
    """Active reminders firing on ``weekday``, sorted by time of day."""
    return sorted(
        (r for r in reminders if occurs_on(r, weekday)),
        key=lambda r: minute_of_day(r.time_of_day),
    )


def day_label(days_ahead: int, weekday: int) -> str:
    """Label for a day relative to today ("Today", "Tomorrow", weekday name)."""
    if days_ahead == 0:
        return "Today"
    if days_ahead == 1:
        return "Tomorrow"
    return WEEKDAY_NAMES[weekday - 1]


def find_next_reminder(
    todays: List[ReminderDefinition],
    now_local: datetime,
    all_reminders: List[ReminderDefinition],
    lookahead_minutes: int = NEXT_DOSE_LOOKAHEAD_MINUTES,
    skip_times: Collection[str] = (),
) -> str:
    """Describe the next reminder after now.

    A reminder later today is only reported when it is at least
    ``lookahead_minutes`` away, so a dose does not flap between "due" and
    "next" within one evaluation. Otherwise the earliest reminder on the
    next day (1-7 days ahead) with any active reminder is reported.

    Args:
        todays: Today's reminders, sorted by time of day
        now_local: Current time in the user's timezone
        all_reminders: Every active reminder for the medication
        lookahead_minutes: Minimum distance for a later-today reminder
        skip_times: HH:MM values already taken or missed today

    Returns:
        "Next: <Today|Tomorrow|Weekday> HH:MM" or "No upcoming reminders"
    """
    current = minute_of_day(now_local)

    for reminder in todays:
        reminder_time = reminder.time_of_day[:5]
        if reminder_time in skip_times:
            continue
        if minute_of_day(reminder_time) - current >= lookahead_minutes:
            return f"Next: Today {reminder_time}"

    # Search from local midnight tomorrow
    tomorrow = datetime.combine(
        now_local.date() + timedelta(days=1), time(0, 0), tzinfo=now_local.tzinfo
    )
    occurrences = [
        occurrence
        for occurrence in (
            get_next_occurrence(r.time_of_day, r.active_weekdays, tomorrow, inclusive=True)
            for r in all_reminders
            if r.is_active
        )
        if occurrence is not None
    ]

    if not occurrences:
        return NO_UPCOMING_TEXT

    next_dose = min(occurrences)
    days_ahead = (next_dose.date() - now_local.date()).days
    label = day_label(days_ahead, next_dose.isoweekday())
    return f"Next: {label} {next_dose.strftime('%H:%M')}"
