"""Tests for adherence aggregation."""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from dosetrack.db.models import DoseEvent
from dosetrack.engine.aggregator import (
    get_adherence_history,
    get_adherence_stats,
    get_dose_timeline,
    get_todays_adherence_status,
    resolve_statuses,
)
from dosetrack.engine.doses import mark_taken

UTC = ZoneInfo("UTC")
EIGHT_AM = datetime(2026, 3, 2, 8, 0, tzinfo=UTC)  # Monday


def at(day: int, hour: int, minute: int = 0, second: int = 0) -> datetime:
    return datetime(2026, 3, day, hour, minute, second, tzinfo=UTC)


async def insert(repo, status, scheduled_time, medication_id="med-1", **kwargs):
    return await repo.insert_event(
        DoseEvent(
            user_id="user-1",
            medication_id=medication_id,
            scheduled_time=scheduled_time,
            status=status,
            **kwargs,
        )
    )


def test_resolve_statuses_uses_precedence():
    """Test exact duplicates resolve to the strongest status."""
    events = [
        DoseEvent("user-1", "med-1", EIGHT_AM, "scheduled"),
        DoseEvent("user-1", "med-1", EIGHT_AM, "taken"),
        DoseEvent("user-1", "med-1", EIGHT_AM, "missed"),
    ]

    assert resolve_statuses(events) == {("med-1", EIGHT_AM): "taken"}


@pytest.mark.asyncio
async def test_todays_counts(repo, add_reminder):
    """Test totals come from reminders and statuses from the log."""
    await add_reminder("08:00")
    await add_reminder("12:00")
    await add_reminder("20:00")
    await add_reminder("09:00", medication_id="med-2")
    await mark_taken(repo, "user-1", "med-1", "08:00", "UTC", now=EIGHT_AM)
    await insert(repo, "missed", at(2, 12))

    summary = await get_todays_adherence_status(repo, "user-1", "UTC", now=at(2, 13))

    assert summary.total_today == 4
    assert summary.completed_today == 1
    assert summary.missed_today == 1
    assert summary.pending_today == 2
    assert not summary.inconsistent


@pytest.mark.asyncio
async def test_duplicates_are_counted_once(repo, add_reminder):
    """Test near-duplicate taken rows count as one completed dose."""
    await add_reminder("08:00")
    await insert(repo, "taken", EIGHT_AM, taken_time=EIGHT_AM)
    await insert(repo, "taken", EIGHT_AM + timedelta(seconds=20), taken_time=EIGHT_AM)

    summary = await get_todays_adherence_status(repo, "user-1", "UTC", now=at(2, 9))

    assert summary.completed_today == 1
    assert summary.pending_today == 0


@pytest.mark.asyncio
async def test_pending_is_clamped(repo, add_reminder):
    """Test stray logged doses never make pending negative."""
    await add_reminder("08:00")
    await insert(repo, "taken", EIGHT_AM, taken_time=EIGHT_AM)
    await insert(repo, "taken", at(2, 14), taken_time=at(2, 14))

    summary = await get_todays_adherence_status(repo, "user-1", "UTC", now=at(2, 15))

    assert summary.total_today == 1
    assert summary.completed_today == 2
    assert summary.pending_today == 0
    assert summary.inconsistent


@pytest.mark.asyncio
async def test_other_days_are_ignored(repo, add_reminder):
    """Test yesterday's doses never count toward today."""
    await add_reminder("08:00")
    await insert(repo, "taken", at(1, 8), taken_time=at(1, 8))
    await insert(repo, "missed", at(3, 8))

    summary = await get_todays_adherence_status(repo, "user-1", "UTC", now=at(2, 7))

    assert summary.total_today == 1
    assert summary.completed_today == 0
    assert summary.missed_today == 0
    assert summary.pending_today == 1


@pytest.mark.asyncio
async def test_todays_counts_store_failure(disconnected_repo):
    """Test zeros on store failure."""
    summary = await get_todays_adherence_status(disconnected_repo, "user-1", "UTC", now=EIGHT_AM)

    assert summary.total_today == 0
    assert summary.pending_today == 0


@pytest.mark.asyncio
async def test_adherence_stats(repo):
    """Test rate, streak and last taken over a history window."""
    feb_27 = datetime(2026, 2, 27, 8, 0, tzinfo=UTC)
    await insert(repo, "taken", feb_27, taken_time=feb_27)
    await insert(repo, "missed", datetime(2026, 2, 28, 8, 0, tzinfo=UTC))
    await insert(repo, "taken", at(1, 8), taken_time=at(1, 8, 5))
    await insert(repo, "taken", at(2, 8), taken_time=at(2, 7, 55))
    await insert(repo, "scheduled", at(2, 10))
    await insert(repo, "scheduled", at(2, 20))  # still ahead, not counted

    stats = await get_adherence_stats(repo, "user-1", "med-1", "UTC", now=at(2, 12))

    assert stats.total_doses == 5
    assert stats.taken_doses == 3
    assert stats.missed_doses == 1
    assert stats.pending_doses == 1
    assert stats.adherence_rate == 75.0
    assert stats.streak == 2
    assert stats.last_taken == at(2, 7, 55)


@pytest.mark.asyncio
async def test_adherence_stats_window(repo):
    """Test the window is measured in local days."""
    await insert(repo, "missed", datetime(2026, 2, 28, 8, 0, tzinfo=UTC))
    await insert(repo, "taken", at(1, 8), taken_time=at(1, 8))

    stats = await get_adherence_stats(repo, "user-1", "med-1", "UTC", days=2, now=at(2, 12))

    assert stats.total_doses == 1
    assert stats.adherence_rate == 100.0
    assert stats.streak == 1


@pytest.mark.asyncio
async def test_adherence_stats_empty(repo):
    """Test stats without any history."""
    stats = await get_adherence_stats(repo, "user-1", "med-1", "UTC", now=at(2, 12))

    assert stats.total_doses == 0
    assert stats.adherence_rate == 0.0
    assert stats.last_taken is None


@pytest.mark.asyncio
async def test_dose_timeline(repo, add_reminder):
    """Test timeline statuses are read from the log and the clock."""
    await add_reminder("08:00")
    await add_reminder("12:00")
    await add_reminder("20:00")
    await add_reminder("09:00", medication_id="med-2")
    await add_reminder("10:00", medication_id="med-2")
    await insert(repo, "taken", at(2, 8), taken_time=at(2, 8))
    await insert(repo, "missed", at(2, 10), medication_id="med-2")

    timeline = await get_dose_timeline(repo, "user-1", "UTC", now=at(2, 12, 5))

    assert [(e.medication_id, e.reminder_time, e.status) for e in timeline] == [
        ("med-1", "08:00", "completed"),
        ("med-2", "09:00", "overdue"),
        ("med-2", "10:00", "missed"),
        ("med-1", "12:00", "pending"),
        ("med-1", "20:00", "upcoming"),
    ]
    assert timeline[0].scheduled_time == at(2, 8)


@pytest.mark.asyncio
async def test_dose_timeline_store_failure(disconnected_repo):
    """Test an empty timeline on store failure."""
    assert await get_dose_timeline(disconnected_repo, "user-1", "UTC", now=EIGHT_AM) == []


@pytest.mark.asyncio
async def test_adherence_history_most_recent_first(repo):
    """Test history is one row per dose, newest first, up to now."""
    await insert(repo, "taken", at(1, 8), taken_time=at(1, 8))
    await insert(repo, "taken", at(1, 8, 0, 30), taken_time=at(1, 8))
    await insert(repo, "missed", at(2, 8))
    await insert(repo, "scheduled", at(2, 20))
    await insert(repo, "taken", at(2, 8), medication_id="med-2", taken_time=at(2, 8))

    history = await get_adherence_history(repo, "user-1", "med-1", "UTC", now=at(2, 12))

    assert [(e.scheduled_time.day, e.status) for e in history] == [(2, "missed"), (1, "taken")]


@pytest.mark.asyncio
async def test_adherence_history_store_failure(disconnected_repo):
    """Test an empty history on store failure."""
    assert await get_adherence_history(disconnected_repo, "user-1", "med-1", "UTC", now=at(2, 12)) == []


@pytest.mark.asyncio
async def test_dose_timeline_accepts_naive_now(repo, add_reminder):
    """Test a naive current time is read as UTC."""
    await add_reminder("08:00")
    await add_reminder("20:00")

    timeline = await get_dose_timeline(repo, "user-1", "UTC", now=datetime(2026, 3, 2, 8, 5))

    assert [e.status for e in timeline] == ["pending", "upcoming"]


@pytest.mark.asyncio
async def test_dose_timeline_matches_row_before_the_minute(repo, add_reminder):
    """Test a dose logged seconds before its reminder minute counts as completed."""
    await add_reminder("08:00")
    await insert(repo, "taken", at(2, 7, 59, 50), taken_time=at(2, 7, 59, 50))

    timeline = await get_dose_timeline(repo, "user-1", "UTC", now=at(2, 9))

    assert [e.status for e in timeline] == ["completed"]
