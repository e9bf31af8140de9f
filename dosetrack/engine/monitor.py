"""Missed-dose monitor - the heartbeat that auto-misses overdue doses."""

import logging
from datetime import datetime
from typing import List

from dosetrack.config import Config
from dosetrack.db.models import MissedDoseInfo
from dosetrack.db.repository import Repository
from dosetrack.engine.classifier import overdue_minutes, should_auto_miss, todays_reminders
from dosetrack.engine.dedup import load_reconciled_events, reconcile_duplicates
from dosetrack.engine.doses import find_logical_event, mark_missed
from dosetrack.engine.materializer import ensure_todays_events
from dosetrack.utils.constants import DEFAULT_GRACE_MINUTES
from dosetrack.utils.time_utils import combine_local, format_hhmm, local_now, utc_now

logger = logging.getLogger(__name__)


async def check_and_mark_missed_doses(
    repo: Repository,
    user_id: str,
    timezone: str,
    now: datetime | None = None,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
) -> int:
    """Mark every dose more than ``grace_minutes`` overdue today as missed.

    Covers all of the user's medications. Taken doses are never touched.

    Returns:
        Number of doses newly marked missed
    """
    if now is None:
        now = utc_now()

    try:
        now_local = local_now(timezone, now)
        reminders = await repo.query_reminders(user_id)
        todays = todays_reminders(reminders, now_local.isoweekday())

        logger.debug(f"Checking {len(todays)} reminders for user {user_id}")

        marked = 0
        for reminder in todays:
            if not should_auto_miss(now_local, reminder.time_of_day, grace_minutes):
                continue

            if await mark_missed(
                repo,
                user_id,
                reminder.medication_id,
                reminder.time_of_day,
                timezone,
                now=now,
                grace_minutes=grace_minutes,
            ):
                marked += 1

        return marked

    except Exception as e:
        logger.error(f"Error checking for missed doses for user {user_id}: {e}")
        return 0


async def get_todays_missed_doses(
    repo: Repository,
    user_id: str,
    timezone: str,
    now: datetime | None = None,
) -> List[MissedDoseInfo]:
    """Get today's missed doses, oldest first."""
    try:
        today = local_now(timezone, now).date()
        events = await load_reconciled_events(repo, user_id, today, timezone)

        return [
            MissedDoseInfo(
                medication_id=event.medication_id,
                scheduled_time=event.scheduled_time,
                reminder_time=format_hhmm(event.scheduled_time, timezone),
                status="missed",
            )
            for event in events
            if event.status == "missed"
        ]

    except Exception as e:
        logger.error(f"Error getting missed doses for user {user_id}: {e}")
        return []


async def get_overdue_doses(
    repo: Repository,
    user_id: str,
    timezone: str,
    now: datetime | None = None,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
) -> List[MissedDoseInfo]:
    """Get doses that are overdue but not yet marked missed.

    A dose is overdue for the first ``grace_minutes`` after its reminder
    time, as long as it has not been taken or missed.
    """
    try:
        now_local = local_now(timezone, now)
        reminders = await repo.query_reminders(user_id)
        todays = todays_reminders(reminders, now_local.isoweekday())
        if not todays:
            return []

        events = await load_reconciled_events(repo, user_id, now_local.date(), timezone)

        overdue = []
        for reminder in todays:
            minutes = overdue_minutes(now_local, reminder.time_of_day)
            if not 0 < minutes <= grace_minutes:
                continue

            medication_events = [e for e in events if e.medication_id == reminder.medication_id]
            existing = find_logical_event(
                medication_events, reminder.time_of_day, timezone, now_local.date()
            )
            if existing is not None and existing.status != "scheduled":
                continue

            overdue.append(
                MissedDoseInfo(
                    medication_id=reminder.medication_id,
                    scheduled_time=combine_local(now_local.date(), reminder.time_of_day, timezone),
                    reminder_time=reminder.time_of_day[:5],
                    status="overdue",
                    overdue_minutes=minutes,
                )
            )

        return overdue

    except Exception as e:
        logger.error(f"Error getting overdue doses for user {user_id}: {e}")
        return []


async def heartbeat(
    repo: Repository,
    now: datetime | None = None,
    grace_minutes: int | None = None,
) -> int:
    """Heartbeat job that keeps every user's log current.

    For each user with active reminders:
    1. Materializes today's scheduled doses
    2. Collapses duplicate rows
    3. Marks doses past their grace window as missed

    Returns:
        Total number of doses marked missed
    """
    if now is None:
        now = utc_now()
    if grace_minutes is None:
        grace_minutes = Config.GRACE_MINUTES

    total_marked = 0

    try:
        user_ids = await repo.get_users_with_active_reminders()
    except Exception as e:
        logger.error(f"Heartbeat error: {e}")
        return 0

    for user_id in user_ids:
        try:
            timezone = await repo.get_user_timezone(user_id) or Config.DEFAULT_TIMEZONE
            today = local_now(timezone, now).date()

            await ensure_todays_events(repo, user_id, timezone, now=now)
            await reconcile_duplicates(repo, user_id, today, timezone)
            total_marked += await check_and_mark_missed_doses(
                repo, user_id, timezone, now=now, grace_minutes=grace_minutes
            )

        except Exception as e:
            logger.error(f"Error processing user {user_id}: {e}")
            continue

    if total_marked:
        logger.info(f"Heartbeat: marked {total_marked} doses as missed")

    return total_marked
