"""Adherence aggregation for dashboards."""

import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Tuple

from dosetrack.db.models import AdherenceStats, AdherenceSummary, DoseEvent, TimelineEntry
from dosetrack.db.repository import Repository
from dosetrack.engine.classifier import todays_reminders
from dosetrack.engine.dedup import collapse_duplicates, reconcile_events, status_rank
from dosetrack.engine.doses import find_event_near
from dosetrack.engine.materializer import materialize_day
from dosetrack.engine.recurrence import occurs_on
from dosetrack.utils.constants import DEFAULT_GRACE_MINUTES, DEFAULT_STATS_DAYS
from dosetrack.utils.time_utils import (
    combine_local,
    day_bounds,
    local_now,
    to_utc,
    utc_now,
)

logger = logging.getLogger(__name__)


def resolve_statuses(events: List[DoseEvent]) -> Dict[Tuple[str, datetime], str]:
    """Collapse exact (medication_id, scheduled_time) duplicates by precedence."""
    resolved: Dict[Tuple[str, datetime], str] = {}
    for event in events:
        key = (event.medication_id, event.scheduled_time)
        if status_rank(event.status) > status_rank(resolved.get(key, "")):
            resolved[key] = event.status
    return resolved


async def get_todays_adherence_status(
    repo: Repository,
    user_id: str,
    timezone: str,
    now: datetime | None = None,
) -> AdherenceSummary:
    """Get today's totals for the dashboard.

    The expected dose count comes from the active reminders, not from the
    rows in the log; the log only decides how many of those are completed
    or missed.

    Args:
        repo: Event and reminder store
        user_id: User to summarize
        timezone: User's IANA timezone
        now: Current time (UTC), defaults to the wall clock

    Returns:
        AdherenceSummary (all zeros on failure)
    """
    try:
        today = local_now(timezone, now).date()
        start, end = day_bounds(today, timezone)

        # Clean view first: dedup, then fill in anything not yet materialized
        await reconcile_events(repo, await repo.query_events(user_id, start, end))
        await materialize_day(repo, user_id, today, timezone)

        reminders = await repo.query_reminders(user_id)
        total = sum(1 for r in reminders if occurs_on(r, today.isoweekday()))

        resolved = resolve_statuses(await repo.query_events(user_id, start, end))
        completed = sum(1 for status in resolved.values() if status == "taken")
        missed = sum(1 for status in resolved.values() if status == "missed")

        pending = total - completed - missed
        inconsistent = pending < 0
        if inconsistent:
            logger.warning(
                f"Inconsistent adherence counts for user {user_id} on {today}: "
                f"{total} expected, {completed} taken, {missed} missed"
            )
            pending = 0

        return AdherenceSummary(
            total_today=total,
            completed_today=completed,
            missed_today=missed,
            pending_today=pending,
            inconsistent=inconsistent,
        )

    except Exception as e:
        logger.error(f"Error getting adherence status for user {user_id}: {e}")
        return AdherenceSummary()


async def get_adherence_history(
    repo: Repository,
    user_id: str,
    medication_id: str,
    timezone: str,
    days: int = DEFAULT_STATS_DAYS,
    now: datetime | None = None,
) -> List[DoseEvent]:
    """Dose history for one medication over the last ``days`` local days.

    Only doses scheduled before now are returned, one per logical dose,
    most recent first.

    Returns:
        List of DoseEvent (empty on failure)
    """
    if now is None:
        now = utc_now()
    now = to_utc(now, "UTC")

    try:
        today = local_now(timezone, now).date()
        start, _ = day_bounds(today - timedelta(days=days - 1), timezone)

        events = await repo.query_events(user_id, start, now, medication_id=medication_id)
        return list(reversed(collapse_duplicates(events)))

    except Exception as e:
        logger.error(f"Error fetching adherence history for {medication_id}: {e}")
        return []


async def get_adherence_stats(
    repo: Repository,
    user_id: str,
    medication_id: str,
    timezone: str,
    days: int = DEFAULT_STATS_DAYS,
    now: datetime | None = None,
) -> AdherenceStats:
    """Adherence for one medication over the last ``days`` local days.

    Only doses scheduled before now are counted. The rate is taken over
    resolved doses (taken + missed). The streak counts consecutive taken
    doses from the most recent backwards; pending doses are skipped and a
    missed dose ends it.
    """
    history = await get_adherence_history(repo, user_id, medication_id, timezone, days, now)

    try:
        taken = [e for e in history if e.status == "taken"]
        missed = [e for e in history if e.status == "missed"]
        pending = [e for e in history if e.status == "scheduled"]

        resolved = len(taken) + len(missed)
        rate = (len(taken) / resolved) * 100 if resolved else 0.0

        streak = 0
        for event in history:
            if event.status == "taken":
                streak += 1
            elif event.status == "missed":
                break

        taken_times = [e.taken_time for e in taken if e.taken_time]

        return AdherenceStats(
            total_doses=len(history),
            taken_doses=len(taken),
            missed_doses=len(missed),
            pending_doses=len(pending),
            adherence_rate=rate,
            streak=streak,
            last_taken=max(taken_times) if taken_times else None,
        )

    except Exception as e:
        logger.error(f"Error calculating adherence stats for {medication_id}: {e}")
        return AdherenceStats()


async def get_dose_timeline(
    repo: Repository,
    user_id: str,
    timezone: str,
    day: date | None = None,
    now: datetime | None = None,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
) -> List[TimelineEntry]:
    """Status of every reminder on a day, read from the adherence log.

    Statuses:
        completed - a taken dose is logged
        missed - a missed dose is logged
        upcoming - the reminder time is still ahead
        pending - past, but within the grace window
        overdue - past the grace window with nothing logged
    """
    if now is None:
        now = utc_now()
    now = to_utc(now, "UTC")

    try:
        now_local = local_now(timezone, now)
        if day is None:
            day = now_local.date()

        reminders = await repo.query_reminders(user_id)
        start, end = day_bounds(day, timezone)
        events = collapse_duplicates(await repo.query_events(user_id, start, end))

        grace = timedelta(minutes=grace_minutes)
        timeline = []
        for reminder in todays_reminders(reminders, day.isoweekday()):
            reminder_time = reminder.time_of_day[:5]
            scheduled_time = combine_local(day, reminder_time, timezone)
            medication_events = [e for e in events if e.medication_id == reminder.medication_id]
            logged = find_event_near(medication_events, scheduled_time)
            status = logged.status if logged else None

            if status == "taken":
                entry_status = "completed"
            elif status == "missed":
                entry_status = "missed"
            elif scheduled_time > now:
                entry_status = "upcoming"
            elif now - scheduled_time <= grace:
                entry_status = "pending"
            else:
                entry_status = "overdue"

            timeline.append(
                TimelineEntry(
                    medication_id=reminder.medication_id,
                    reminder_time=reminder_time,
                    scheduled_time=scheduled_time,
                    status=entry_status,  # type: ignore
                )
            )

        return timeline

    except Exception as e:
        logger.error(f"Error building dose timeline for user {user_id}: {e}")
        return []
