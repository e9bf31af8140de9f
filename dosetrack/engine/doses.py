"""Take/mark engine - idempotent status transitions for dose events."""

import logging
from datetime import date, datetime
from typing import List

from dosetrack.db.models import DoseEvent
from dosetrack.db.repository import Repository
from dosetrack.engine.dedup import load_reconciled_events, pick_survivor
from dosetrack.engine.materializer import materialize_day
from dosetrack.utils.constants import (
    AUTO_MISSED_NOTE,
    DEFAULT_GRACE_MINUTES,
    DUPLICATE_WINDOW_SECONDS,
    TAKE_NOW_NOTE,
)
from dosetrack.utils.time_utils import combine_local, format_hhmm, from_utc, utc_now

logger = logging.getLogger(__name__)


def find_event_near(events: List[DoseEvent], scheduled_time: datetime) -> DoseEvent | None:
    """Find the event within ``DUPLICATE_WINDOW_SECONDS`` of a scheduled time.

    If more than one matches, the highest-precedence one is returned.
    """
    matches = [
        e
        for e in events
        if abs((e.scheduled_time - scheduled_time).total_seconds()) <= DUPLICATE_WINDOW_SECONDS
    ]
    if not matches:
        return None
    return pick_survivor(matches)


def find_logical_event(
    events: List[DoseEvent], reminder_time: str, timezone: str, day: date
) -> DoseEvent | None:
    """Find the event for a reminder on a local day.

    Events are matched on time rather than a reminder ID, so a row written
    a few seconds either side of the reminder minute still belongs to it.
    """
    return find_event_near(events, combine_local(day, reminder_time, timezone))


async def _apply_taken(
    repo: Repository,
    user_id: str,
    medication_id: str,
    scheduled_time: datetime,
    timezone: str,
    taken_time: datetime,
    notes: str | None,
) -> None:
    """Set the logical dose at ``scheduled_time`` to taken, creating it if needed."""
    day = from_utc(scheduled_time, timezone).date()
    events = await load_reconciled_events(repo, user_id, day, timezone, medication_id)
    target = find_event_near(events, scheduled_time)
    label = format_hhmm(scheduled_time, timezone)

    if target is None:
        await repo.insert_event(
            DoseEvent(
                user_id=user_id,
                medication_id=medication_id,
                scheduled_time=scheduled_time,
                status="taken",
                taken_time=taken_time,
                notes=notes,
            )
        )
        logger.info(f"Recorded {medication_id} at {day} {label} as taken for user {user_id}")
        return

    if target.status == "taken":
        return

    await repo.update_event(target.id, status="taken", taken_time=taken_time, notes=notes)  # type: ignore
    logger.info(
        f"Marked {medication_id} at {day} {label} as taken for user {user_id} "
        f"(was {target.status})"
    )


async def _apply_missed(
    repo: Repository,
    user_id: str,
    medication_id: str,
    scheduled_time: datetime,
    timezone: str,
    notes: str | None,
) -> bool:
    """Set the logical dose at ``scheduled_time`` to missed unless already resolved."""
    day = from_utc(scheduled_time, timezone).date()
    events = await load_reconciled_events(repo, user_id, day, timezone, medication_id)
    current = find_event_near(events, scheduled_time)
    label = format_hhmm(scheduled_time, timezone)

    if current is None:
        await repo.insert_event(
            DoseEvent(
                user_id=user_id,
                medication_id=medication_id,
                scheduled_time=scheduled_time,
                status="missed",
                notes=notes,
            )
        )
        logger.info(f"Marked {medication_id} at {day} {label} as missed for user {user_id}")
        return True

    if current.status != "scheduled":
        return False

    await repo.update_event(current.id, status="missed", notes=notes)  # type: ignore
    logger.info(
        f"Updated {medication_id} at {day} {label} from scheduled to missed for user {user_id}"
    )
    return True


async def mark_taken(
    repo: Repository,
    user_id: str,
    medication_id: str,
    reminder_time: str,
    timezone: str,
    notes: str | None = None,
    now: datetime | None = None,
    taken_at: datetime | None = None,
) -> bool:
    """Mark today's dose for a reminder as taken.

    Materializes and reconciles today's events first, then updates the
    matching row in place. A dose already taken is left untouched. If no
    row exists yet (the materializer has not run, or lost a race), one is
    created directly as taken.

    Args:
        repo: Event store
        user_id: User taking the dose
        medication_id: Medication taken
        reminder_time: Reminder time of day (HH:MM), matched on its first 5 characters
        timezone: User's IANA timezone
        notes: Optional note stored on the event
        now: Current time (UTC), defaults to the wall clock
        taken_at: When the dose was actually taken, defaults to ``now``

    Returns:
        False only if the store failed
    """
    if now is None:
        now = utc_now()

    try:
        today = from_utc(now, timezone).date()

        await materialize_day(repo, user_id, today, timezone)
        await _apply_taken(
            repo,
            user_id,
            medication_id,
            combine_local(today, reminder_time, timezone),
            timezone,
            taken_time=taken_at or now,
            notes=notes or TAKE_NOW_NOTE,
        )
        return True

    except Exception as e:
        logger.error(f"Error marking dose as taken for user {user_id}: {e}")
        return False


async def mark_missed(
    repo: Repository,
    user_id: str,
    medication_id: str,
    reminder_time: str,
    timezone: str,
    now: datetime | None = None,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
) -> bool:
    """Mark today's dose for a reminder as missed, unless already resolved.

    Only called from the auto-miss paths. A taken dose is never
    overwritten and an already-missed dose is left alone.

    Returns:
        True if a row was inserted or updated
    """
    if now is None:
        now = utc_now()

    try:
        today = from_utc(now, timezone).date()
        return await _apply_missed(
            repo,
            user_id,
            medication_id,
            combine_local(today, reminder_time, timezone),
            timezone,
            notes=AUTO_MISSED_NOTE.format(grace=grace_minutes),
        )

    except Exception as e:
        logger.error(f"Error marking dose as missed for user {user_id}: {e}")
        return False


async def record_dose_taken(
    repo: Repository,
    user_id: str,
    medication_id: str,
    scheduled_time: datetime,
    timezone: str,
    taken_at: datetime | None = None,
    notes: str | None = None,
) -> bool:
    """Log a dose as taken against any scheduled time, including past days.

    Args:
        repo: Event store
        user_id: User who took the dose
        medication_id: Medication taken
        scheduled_time: When the dose was due (aware, any timezone)
        timezone: User's IANA timezone, which decides the day to reconcile
        taken_at: When it was actually taken, defaults to the wall clock
        notes: Optional note stored on the event

    Returns:
        False only if the store failed
    """
    try:
        await _apply_taken(
            repo,
            user_id,
            medication_id,
            scheduled_time,
            timezone,
            taken_time=taken_at or utc_now(),
            notes=notes,
        )
        return True
    except Exception as e:
        logger.error(f"Error recording dose as taken for user {user_id}: {e}")
        return False


async def record_dose_missed(
    repo: Repository,
    user_id: str,
    medication_id: str,
    scheduled_time: datetime,
    timezone: str,
    reason: str | None = None,
) -> bool:
    """Log a dose as missed with an optional reason.

    Returns:
        True if a row was inserted or updated; False if the dose was
        already taken or missed, or the store failed
    """
    try:
        return await _apply_missed(
            repo, user_id, medication_id, scheduled_time, timezone, notes=reason
        )
    except Exception as e:
        logger.error(f"Error recording dose as missed for user {user_id}: {e}")
        return False
