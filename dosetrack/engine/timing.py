"""Medication timing - what banner to show for a medication right now."""

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable

from dosetrack.config import Config
from dosetrack.db.models import DoseTiming, NextDoseInfo, RecentDose
from dosetrack.db.repository import Repository
from dosetrack.engine.classifier import (
    classify,
    find_next_reminder,
    should_auto_miss,
    todays_reminders,
)
from dosetrack.engine.dedup import load_reconciled_events
from dosetrack.engine.doses import find_logical_event, mark_missed
from dosetrack.engine.recurrence import get_next_occurrence
from dosetrack.utils.constants import (
    DEFAULT_GRACE_MINUTES,
    NO_REMINDERS_TEXT,
    RECENT_DOSE_MATCH_MINUTES,
    TIMING_ERROR_TEXT,
)
from dosetrack.utils.time_utils import (
    UTC,
    combine_local,
    format_time_12h,
    local_now,
    utc_now,
)

logger = logging.getLogger(__name__)


async def get_next_dose_time(
    repo: Repository,
    medication_id: str,
    user_id: str,
    timezone: str,
    now: datetime | None = None,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
    lookahead_minutes: int | None = None,
) -> DoseTiming:
    """Work out whether a medication's dose is due, overdue, or when it is next.

    Today's reminders are walked in time order. Reminders whose dose is
    already taken today are skipped. A reminder past its overdue window
    is transitioned to missed and the scan continues. The first reminder
    inside its due or overdue window is reported; otherwise the next
    future reminder is.

    Args:
        repo: Event and reminder store
        medication_id: Medication to check
        user_id: Owner of the medication
        timezone: User's IANA timezone
        now: Current time (UTC), defaults to the wall clock
        grace_minutes: Due/overdue window size and auto-miss threshold
        lookahead_minutes: Minimum distance for a "later today" reminder,
            defaults to Config.LOOKAHEAD_MINUTES

    Returns:
        DoseTiming; on failure next_time is "Error calculating next dose"
    """
    if now is None:
        now = utc_now()
    if lookahead_minutes is None:
        lookahead_minutes = Config.LOOKAHEAD_MINUTES

    try:
        reminders = await repo.query_reminders(user_id, medication_id=medication_id)
        if not reminders:
            return DoseTiming(is_due=False, next_time=NO_REMINDERS_TEXT, is_overdue=False)

        now_local = local_now(timezone, now)
        todays = todays_reminders(reminders, now_local.isoweekday())
        todays_times = [r.time_of_day[:5] for r in todays]

        statuses: Dict[str, str] = {}
        if todays:
            events = await load_reconciled_events(
                repo, user_id, now_local.date(), timezone, medication_id
            )
            for reminder_time in todays_times:
                event = find_logical_event(events, reminder_time, timezone, now_local.date())
                if event is not None:
                    statuses[reminder_time] = event.status

        for reminder_time in todays_times:
            status = statuses.get(reminder_time)
            if status == "taken":
                continue

            if should_auto_miss(now_local, reminder_time, grace_minutes):
                if status != "missed":
                    await mark_missed(
                        repo, user_id, medication_id, reminder_time, timezone,
                        now=now, grace_minutes=grace_minutes,
                    )
                    statuses[reminder_time] = "missed"
                continue

            if status == "missed":
                continue

            window = classify(now_local, reminder_time, grace_minutes)
            if window.is_due:
                return DoseTiming(
                    is_due=True,
                    next_time=f"Due at {reminder_time}",
                    is_overdue=False,
                    current_reminder_time=reminder_time,
                    upcoming_reminder_times=todays_times,
                )
            if window.is_overdue:
                return DoseTiming(
                    is_due=False,
                    next_time=f"Overdue: {reminder_time}",
                    is_overdue=True,
                    current_reminder_time=reminder_time,
                    upcoming_reminder_times=todays_times,
                )

        resolved = {t for t, s in statuses.items() if s in ("taken", "missed")}
        next_time = find_next_reminder(
            todays, now_local, reminders, lookahead_minutes, skip_times=resolved
        )
        return DoseTiming(
            is_due=False,
            next_time=next_time,
            is_overdue=False,
            upcoming_reminder_times=todays_times,
        )

    except Exception as e:
        logger.error(f"Error getting next dose time for {medication_id}: {e}")
        return DoseTiming(is_due=False, next_time=TIMING_ERROR_TEXT, is_overdue=False)


async def check_recent_dose(
    repo: Repository,
    medication_id: str,
    user_id: str,
    timezone: str,
    now: datetime | None = None,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
) -> RecentDose:
    """Check if the dose for the current reminder window was already taken.

    Only reminders that are currently due or overdue are considered. A
    taken event counts when its scheduled time is within
    ``RECENT_DOSE_MATCH_MINUTES`` of the reminder.
    """
    if now is None:
        now = utc_now()

    try:
        reminders = await repo.query_reminders(user_id, medication_id=medication_id)
        if not reminders:
            return RecentDose(recently_taken=False)

        now_local = local_now(timezone, now)
        events = await load_reconciled_events(
            repo, user_id, now_local.date(), timezone, medication_id
        )
        taken = [e for e in events if e.status == "taken"]
        if not taken:
            return RecentDose(recently_taken=False)

        match_window = timedelta(minutes=RECENT_DOSE_MATCH_MINUTES)
        for reminder in todays_reminders(reminders, now_local.isoweekday()):
            window = classify(now_local, reminder.time_of_day, grace_minutes)
            if not (window.is_due or window.is_overdue):
                continue

            reminder_at = combine_local(now_local.date(), reminder.time_of_day, timezone)
            for event in taken:
                if abs(event.scheduled_time - reminder_at) <= match_window:
                    return RecentDose(recently_taken=True, taken_time=event.taken_time)

        return RecentDose(recently_taken=False)

    except Exception as e:
        logger.error(f"Error checking recent dose for {medication_id}: {e}")
        return RecentDose(recently_taken=False)


def calculate_next_dose(
    time_of_day: str,
    weekdays: Iterable[int],
    timezone: str = "UTC",
    now: datetime | None = None,
) -> NextDoseInfo | None:
    """Calculate the next occurrence of a single reminder strictly after now.

    Args:
        time_of_day: Reminder time (HH:MM)
        weekdays: ISO weekdays the reminder fires on (Monday=1 .. Sunday=7)
        timezone: User's IANA timezone
        now: Current time (UTC), defaults to the wall clock

    Returns:
        NextDoseInfo, or None if the reminder never fires
    """
    try:
        now_local = local_now(timezone, now)
        next_dose = get_next_occurrence(time_of_day, weekdays, now_local)
    except (ValueError, KeyError) as e:
        logger.error(f"Error calculating next dose for {time_of_day}: {e}")
        return None

    if next_dose is None:
        return None

    days_ahead = (next_dose.date() - now_local.date()).days
    delta = next_dose.astimezone(UTC) - now_local.astimezone(UTC)
    minutes_until = round(delta.total_seconds() / 60)

    return NextDoseInfo(
        time=time_of_day[:5],
        date=next_dose,
        formatted_time=format_time_12h(time_of_day),
        is_today=days_ahead == 0,
        is_tomorrow=days_ahead == 1,
        minutes_until=max(0, minutes_until),
    )
