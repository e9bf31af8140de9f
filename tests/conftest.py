"""Shared fixtures for dosetrack tests."""

from typing import Iterable

import pytest
import pytest_asyncio

from dosetrack.db.migrations import run_migrations
from dosetrack.db.models import ReminderDefinition
from dosetrack.db.repository import Repository
from dosetrack.utils.constants import ALL_WEEKDAYS


@pytest_asyncio.fixture
async def repo(tmp_path):
    """Repository backed by a fresh SQLite file."""
    db_path = tmp_path / "dosetrack-test.db"
    await run_migrations(db_path)

    repository = Repository(db_path)
    await repository.connect()
    yield repository
    await repository.close()


@pytest.fixture
def disconnected_repo(tmp_path):
    """Repository whose every query fails."""
    return Repository(tmp_path / "never-opened.db")


@pytest.fixture
def add_reminder(repo):
    """Factory for active reminder definitions."""

    async def _add(
        time_of_day: str = "08:00",
        medication_id: str = "med-1",
        weekdays: Iterable[int] = ALL_WEEKDAYS,
        user_id: str = "user-1",
        is_active: bool = True,
    ) -> ReminderDefinition:
        return await repo.create_reminder(
            ReminderDefinition(
                user_id=user_id,
                medication_id=medication_id,
                time_of_day=time_of_day,
                active_weekdays=set(weekdays),
                is_active=is_active,
            )
        )

    return _add
