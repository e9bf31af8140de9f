"""Dose event materializer - expands reminders into scheduled doses."""

import logging
from datetime import date, datetime, timedelta

from dosetrack.db.models import DoseEvent
from dosetrack.db.repository import Repository
from dosetrack.engine.recurrence import occurs_on
from dosetrack.utils.constants import DEFAULT_MATERIALIZE_DAYS
from dosetrack.utils.time_utils import combine_local, day_bounds, local_now

logger = logging.getLogger(__name__)


async def materialize_day(
    repo: Repository,
    user_id: str,
    day: date,
    timezone: str,
    medication_id: str | None = None,
) -> int:
    """Insert a ``scheduled`` event for every reminder firing on ``day``.

    Existing events are matched on the exact (medication_id, scheduled_time)
    pair, so calling this repeatedly is safe. Near-duplicates from clock
    skew are left to the reconciliation pass.

    Raises store errors to the caller.

    Returns:
        Number of events inserted
    """
    reminders = await repo.query_reminders(user_id, medication_id=medication_id)
    if not reminders:
        return 0

    weekday = day.isoweekday()  # Monday=1 .. Sunday=7
    start, end = day_bounds(day, timezone)

    existing = await repo.query_events(user_id, start, end)
    keys = {(event.medication_id, event.scheduled_time) for event in existing}

    created = 0
    for reminder in reminders:
        if not occurs_on(reminder, weekday):
            continue

        scheduled_time = combine_local(day, reminder.time_of_day, timezone)
        key = (reminder.medication_id, scheduled_time)
        if key in keys:
            continue

        await repo.insert_event(
            DoseEvent(
                user_id=user_id,
                medication_id=reminder.medication_id,
                scheduled_time=scheduled_time,
                status="scheduled",
            )
        )
        keys.add(key)
        created += 1

    if created:
        logger.info(f"Materialized {created} scheduled doses for user {user_id} on {day}")

    return created


async def ensure_todays_events(
    repo: Repository, user_id: str, timezone: str, now: datetime | None = None
) -> int:
    """Generate today's scheduled doses from the user's active reminders.

    Args:
        repo: Event and reminder store
        user_id: User to materialize for
        timezone: User's IANA timezone, which decides what "today" is
        now: Current time (UTC), defaults to the wall clock

    Returns:
        Number of events inserted (0 on failure)
    """
    try:
        today = local_now(timezone, now).date()
        return await materialize_day(repo, user_id, today, timezone)
    except Exception as e:
        logger.error(f"Error generating scheduled doses for user {user_id}: {e}")
        return 0


async def materialize_days(
    repo: Repository,
    user_id: str,
    timezone: str,
    days: int = DEFAULT_MATERIALIZE_DAYS,
    medication_id: str | None = None,
    now: datetime | None = None,
) -> int:
    """Pre-generate scheduled doses for today and the following days.

    Args:
        repo: Event and reminder store
        user_id: User to materialize for
        timezone: User's IANA timezone
        days: Number of local days, starting today
        medication_id: Restrict to one medication's reminders
        now: Current time (UTC), defaults to the wall clock

    Returns:
        Number of events inserted (0 on failure)
    """
    try:
        today = local_now(timezone, now).date()
        created = 0
        for offset in range(days):
            created += await materialize_day(
                repo, user_id, today + timedelta(days=offset), timezone, medication_id
            )
        return created
    except Exception as e:
        logger.error(f"Error generating scheduled doses ahead for user {user_id}: {e}")
        return 0
