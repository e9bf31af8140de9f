"""RRULE-based weekly recurrence for reminder definitions."""

from datetime import datetime
from typing import Iterable

from dateutil.rrule import FR, MO, SA, SU, TH, TU, WE, WEEKLY, rrule

from dosetrack.db.models import ReminderDefinition
from dosetrack.utils.time_utils import parse_time_of_day

# Monday=1 .. Sunday=7
ISO_WEEKDAYS = {1: MO, 2: TU, 3: WE, 4: TH, 5: FR, 6: SA, 7: SU}


def occurs_on(reminder: ReminderDefinition, weekday: int) -> bool:
    """Check whether an active reminder fires on an ISO weekday."""
    return reminder.is_active and weekday in reminder.active_weekdays


def build_weekly_rule(time_of_day: str, weekdays: Iterable[int], dtstart: datetime) -> rrule:
    """Build a weekly rule firing at ``time_of_day`` on the given ISO weekdays.

    Args:
        time_of_day: HH:MM in the timezone of ``dtstart``
        weekdays: ISO weekdays (Monday=1 .. Sunday=7)
        dtstart: Timezone-aware local datetime the rule starts from

    Returns:
        An unbounded dateutil rrule
    """
    days = sorted({int(day) for day in weekdays})
    if not days or any(day not in ISO_WEEKDAYS for day in days):
        raise ValueError(f"Invalid weekday set: {list(weekdays)}")

    t = parse_time_of_day(time_of_day)
    return rrule(
        WEEKLY,
        byweekday=[ISO_WEEKDAYS[day] for day in days],
        byhour=t.hour,
        byminute=t.minute,
        bysecond=0,
        dtstart=dtstart.replace(second=0, microsecond=0),
    )


def get_next_occurrence(
    time_of_day: str,
    weekdays: Iterable[int],
    after: datetime,
    inclusive: bool = False,
) -> datetime | None:
    """Get the next occurrence of a weekly reminder after a local datetime.

    Args:
        time_of_day: HH:MM
        weekdays: ISO weekdays the reminder is active on
        after: Timezone-aware local datetime
        inclusive: Whether an occurrence exactly at ``after`` counts

    Returns:
        Next occurrence in the timezone of ``after``, or None if the
        reminder has no active weekdays
    """
    days = list(weekdays)
    if not days:
        return None

    rule = build_weekly_rule(time_of_day, days, after)
    next_date = rule.after(after, inc=inclusive)

    # Ensure timezone info is preserved
    if next_date is not None and next_date.tzinfo is None:
        next_date = next_date.replace(tzinfo=after.tzinfo)

    return next_date
