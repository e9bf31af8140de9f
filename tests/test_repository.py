"""Tests for the SQLite repository."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from dosetrack.db.models import DoseEvent

UTC = ZoneInfo("UTC")
EIGHT_AM = datetime(2026, 3, 2, 8, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_user_timezone(repo):
    """Test profile timezone upsert."""
    assert await repo.get_user_timezone("user-1") is None

    await repo.set_user_timezone("user-1", "Europe/London")
    await repo.set_user_timezone("user-1", "America/New_York")

    assert await repo.get_user_timezone("user-1") == "America/New_York"


@pytest.mark.asyncio
async def test_reminders(repo, add_reminder):
    """Test reminder storage and the active-only query."""
    created = await add_reminder("20:00", weekdays=[5, 1])
    await add_reminder("08:00")
    await add_reminder("09:00", medication_id="med-2", user_id="user-2")

    assert created.id is not None
    assert created.active_weekdays == {1, 5}

    reminders = await repo.query_reminders("user-1")
    assert [r.time_of_day for r in reminders] == ["08:00", "20:00"]

    await repo.set_reminder_active(created.id, False)

    assert [r.time_of_day for r in await repo.query_reminders("user-1", "med-1")] == ["08:00"]
    assert await repo.get_users_with_active_reminders() == ["user-1", "user-2"]


@pytest.mark.asyncio
async def test_event_lifecycle(repo):
    """Test insert, partial update and delete of dose events."""
    event = await repo.insert_event(
        DoseEvent(user_id="user-1", medication_id="med-1", scheduled_time=EIGHT_AM, status="scheduled")
    )

    assert event.id is not None
    assert event.scheduled_time == EIGHT_AM
    assert event.created_at is not None

    await repo.update_event(event.id, status="taken", taken_time=EIGHT_AM)
    updated = await repo.get_event(event.id)
    assert updated.status == "taken"
    assert updated.taken_time == EIGHT_AM
    assert updated.notes is None

    await repo.delete_events([event.id])
    assert await repo.get_event(event.id) is None


@pytest.mark.asyncio
async def test_query_events_range_is_half_open(repo):
    """Test the end bound is exclusive."""
    for hour in (0, 8, 23):
        await repo.insert_event(
            DoseEvent(
                user_id="user-1",
                medication_id="med-1",
                scheduled_time=datetime(2026, 3, 2, hour, 0, tzinfo=UTC),
                status="scheduled",
            )
        )

    events = await repo.query_events(
        "user-1",
        datetime(2026, 3, 2, 0, 0, tzinfo=UTC),
        datetime(2026, 3, 2, 23, 0, tzinfo=UTC),
    )

    assert [e.scheduled_time.hour for e in events] == [0, 8]


@pytest.mark.asyncio
async def test_disconnected_repository_raises(disconnected_repo):
    """Test queries fail loudly before connect."""
    with pytest.raises(RuntimeError):
        await disconnected_repo.query_reminders("user-1")
