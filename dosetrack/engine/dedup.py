"""Duplicate reconciliation for the adherence log.

Concurrent writers (the "take now" button, the missed-dose sweep, and the
materializer called from several flows) can each insert a row for the same
dose. Rows for one medication whose scheduled times fall within
``DUPLICATE_WINDOW_SECONDS`` of each other describe a single logical dose;
this module collapses them to one row before anything is counted or looked
up.
"""

import logging
from collections import defaultdict
from datetime import date
from typing import Dict, List, Tuple

from dosetrack.db.models import DoseEvent
from dosetrack.db.repository import Repository
from dosetrack.utils.constants import DUPLICATE_WINDOW_SECONDS, STATUS_PRECEDENCE
from dosetrack.utils.time_utils import day_bounds

logger = logging.getLogger(__name__)


def status_rank(status: str) -> int:
    """Precedence of a status: taken > missed > scheduled."""
    return STATUS_PRECEDENCE.get(status, -1)


def pick_survivor(events: List[DoseEvent]) -> DoseEvent:
    """Choose the row to keep among duplicates of one dose.

    Highest status precedence wins; ties go to the later scheduled time,
    then to the later-inserted row.
    """
    return max(
        events,
        key=lambda e: (status_rank(e.status), e.scheduled_time, e.id or 0),
    )


def group_duplicates(
    events: List[DoseEvent], window_seconds: int = DUPLICATE_WINDOW_SECONDS
) -> List[List[DoseEvent]]:
    """Bucket events into logical doses.

    Events are grouped by medication and swept in time order. An event
    joins the current cluster when it is at most ``window_seconds`` after
    the cluster's first event, otherwise it starts a new cluster. Grouping
    is not transitive: events at 0s, 50s and 100s form two clusters even
    though 50s is within the window of both neighbours.
    """
    by_medication: Dict[str, List[DoseEvent]] = defaultdict(list)
    for event in events:
        by_medication[event.medication_id].append(event)

    groups: List[List[DoseEvent]] = []
    for medication_id in sorted(by_medication):
        items = sorted(by_medication[medication_id], key=lambda e: (e.scheduled_time, e.id or 0))

        cluster = [items[0]]
        for event in items[1:]:
            gap = (event.scheduled_time - cluster[0].scheduled_time).total_seconds()
            if gap <= window_seconds:
                cluster.append(event)
            else:
                groups.append(cluster)
                cluster = [event]
        groups.append(cluster)

    return groups


def collapse_duplicates(
    events: List[DoseEvent], window_seconds: int = DUPLICATE_WINDOW_SECONDS
) -> List[DoseEvent]:
    """In-memory collapse of duplicates, without touching the store."""
    survivors = [pick_survivor(group) for group in group_duplicates(events, window_seconds)]
    return sorted(survivors, key=lambda e: (e.scheduled_time, e.id or 0))


async def reconcile_events(
    repo: Repository, events: List[DoseEvent]
) -> Tuple[List[DoseEvent], int]:
    """Merge duplicate rows in the store.

    The survivor inherits notes and taken_time from the rows being removed
    when it has none of its own; the losers are then deleted.

    Returns:
        Tuple of (surviving events sorted by time, number of rows deleted)
    """
    survivors: List[DoseEvent] = []
    losers: List[int] = []

    for group in group_duplicates(events):
        survivor = pick_survivor(group)
        survivors.append(survivor)
        if len(group) == 1:
            continue

        others = [e for e in group if e is not survivor]

        notes = None
        if not survivor.notes:
            notes = next((e.notes for e in others if e.notes), None)
        taken_time = None
        if survivor.status == "taken" and survivor.taken_time is None:
            taken_time = next((e.taken_time for e in others if e.taken_time), None)

        if notes is not None or taken_time is not None:
            await repo.update_event(survivor.id, notes=notes, taken_time=taken_time)  # type: ignore
            survivor.notes = notes or survivor.notes
            survivor.taken_time = taken_time or survivor.taken_time

        losers.extend(e.id for e in others if e.id is not None)
        logger.info(
            f"Merging {len(others)} duplicate(s) of {survivor.medication_id} at "
            f"{survivor.scheduled_time.isoformat()} into event {survivor.id} ({survivor.status})"
        )

    await repo.delete_events(losers)

    survivors.sort(key=lambda e: (e.scheduled_time, e.id or 0))
    return survivors, len(losers)


async def load_reconciled_events(
    repo: Repository,
    user_id: str,
    day: date,
    timezone: str,
    medication_id: str | None = None,
) -> List[DoseEvent]:
    """Reconcile a user's day and return its (deduplicated) events.

    Raises store errors to the caller.
    """
    start, end = day_bounds(day, timezone)
    events = await repo.query_events(user_id, start, end)
    survivors, _ = await reconcile_events(repo, events)

    if medication_id:
        return [e for e in survivors if e.medication_id == medication_id]
    return survivors


async def reconcile_duplicates(
    repo: Repository, user_id: str, day: date, timezone: str
) -> int:
    """Collapse near-duplicate dose rows for a user's local day.

    Args:
        repo: Event store
        user_id: User whose log to clean
        day: Local calendar day
        timezone: User's IANA timezone

    Returns:
        Number of rows removed (0 on failure)
    """
    try:
        start, end = day_bounds(day, timezone)
        events = await repo.query_events(user_id, start, end)
        _, removed = await reconcile_events(repo, events)
        return removed
    except Exception as e:
        logger.error(f"Error reconciling duplicate doses for user {user_id}: {e}")
        return 0
