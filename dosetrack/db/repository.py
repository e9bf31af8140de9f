"""Database repository - all SQL queries."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, List

import aiosqlite

from dosetrack.db.models import DoseEvent, ReminderDefinition
from dosetrack.utils.time_utils import from_iso, to_iso

logger = logging.getLogger(__name__)


class Repository:
    """Event store and reminder store backed by SQLite."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open database connection."""
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        logger.info(f"Connected to database at {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Database connection closed")

    @property
    def db(self) -> aiosqlite.Connection:
        """Get the database connection."""
        if self._db is None:
            raise RuntimeError("Database not connected")
        return self._db

    # Profile operations

    async def get_user_timezone(self, user_id: str) -> str | None:
        """Get the user's configured IANA timezone, if any."""
        async with self.db.execute(
            "SELECT timezone FROM profiles WHERE id = ?", (user_id,)
        ) as cursor:
            row = await cursor.fetchone()
            return row["timezone"] if row else None

    async def set_user_timezone(self, user_id: str, timezone: str) -> None:
        """Create or update the user's profile timezone."""
        await self.db.execute(
            """
            INSERT INTO profiles (id, timezone) VALUES (?, ?)
            ON CONFLICT (id) DO UPDATE SET timezone = excluded.timezone
            """,
            (user_id, timezone),
        )
        await self.db.commit()

    # Reminder operations

    async def create_reminder(self, reminder: ReminderDefinition) -> ReminderDefinition:
        """Create a new reminder definition."""
        async with self.db.execute(
            """
            INSERT INTO medication_reminders (
                user_id, medication_id, reminder_time, days_of_week, is_active
            ) VALUES (?, ?, ?, ?, ?)
            RETURNING *
            """,
            (
                reminder.user_id,
                reminder.medication_id,
                reminder.time_of_day,
                json.dumps(sorted(reminder.active_weekdays)),
                1 if reminder.is_active else 0,
            ),
        ) as cursor:
            row = await cursor.fetchone()
            await self.db.commit()
            return self._row_to_reminder(row)

    async def set_reminder_active(self, reminder_id: int, is_active: bool) -> None:
        """Enable or disable a reminder."""
        await self.db.execute(
            """
            UPDATE medication_reminders
            SET is_active = ?, updated_at = datetime('now')
            WHERE id = ?
            """,
            (1 if is_active else 0, reminder_id),
        )
        await self.db.commit()

    async def query_reminders(
        self, user_id: str, medication_id: str | None = None
    ) -> List[ReminderDefinition]:
        """Get a user's active reminders, ordered by time of day."""
        if medication_id:
            query = """
                SELECT * FROM medication_reminders
                WHERE user_id = ? AND medication_id = ? AND is_active = 1
                ORDER BY reminder_time, id
            """
            params: tuple = (user_id, medication_id)
        else:
            query = """
                SELECT * FROM medication_reminders
                WHERE user_id = ? AND is_active = 1
                ORDER BY reminder_time, id
            """
            params = (user_id,)

        async with self.db.execute(query, params) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_reminder(row) for row in rows]

    async def get_users_with_active_reminders(self) -> List[str]:
        """Get every user that has at least one active reminder (heartbeat query)."""
        async with self.db.execute(
            "SELECT DISTINCT user_id FROM medication_reminders WHERE is_active = 1 ORDER BY user_id"
        ) as cursor:
            rows = await cursor.fetchall()
            return [row["user_id"] for row in rows]

    # Dose event operations

    async def insert_event(self, event: DoseEvent) -> DoseEvent:
        """Insert a dose event into the adherence log."""
        async with self.db.execute(
            """
            INSERT INTO medication_adherence_log (
                user_id, medication_id, scheduled_time, taken_time, status, notes
            ) VALUES (?, ?, ?, ?, ?, ?)
            RETURNING *
            """,
            (
                event.user_id,
                event.medication_id,
                to_iso(event.scheduled_time),
                to_iso(event.taken_time) if event.taken_time else None,
                event.status,
                event.notes,
            ),
        ) as cursor:
            row = await cursor.fetchone()
            await self.db.commit()
            return self._row_to_event(row)

    async def update_event(
        self,
        event_id: int,
        status: str | None = None,
        taken_time: datetime | None = None,
        notes: str | None = None,
    ) -> None:
        """Update selected fields of a single dose event."""
        updates = []
        params: list = []

        if status is not None:
            updates.append("status = ?")
            params.append(status)
        if taken_time is not None:
            updates.append("taken_time = ?")
            params.append(to_iso(taken_time))
        if notes is not None:
            updates.append("notes = ?")
            params.append(notes)

        if updates:
            params.append(event_id)
            await self.db.execute(
                f"UPDATE medication_adherence_log SET {', '.join(updates)} WHERE id = ?",
                params,
            )
            await self.db.commit()

    async def delete_events(self, event_ids: Iterable[int]) -> None:
        """Delete dose events by ID."""
        ids = list(event_ids)
        if not ids:
            return

        placeholders = ", ".join("?" for _ in ids)
        await self.db.execute(
            f"DELETE FROM medication_adherence_log WHERE id IN ({placeholders})", ids
        )
        await self.db.commit()

    async def get_event(self, event_id: int) -> DoseEvent | None:
        """Get a dose event by ID."""
        async with self.db.execute(
            "SELECT * FROM medication_adherence_log WHERE id = ?", (event_id,)
        ) as cursor:
            row = await cursor.fetchone()
            if row:
                return self._row_to_event(row)
            return None

    async def query_events(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        medication_id: str | None = None,
        status: str | None = None,
    ) -> List[DoseEvent]:
        """Get a user's dose events scheduled in ``[start, end)``, oldest first."""
        conditions = ["user_id = ?", "scheduled_time >= ?", "scheduled_time < ?"]
        params: list = [user_id, to_iso(start), to_iso(end)]

        if medication_id:
            conditions.append("medication_id = ?")
            params.append(medication_id)
        if status:
            conditions.append("status = ?")
            params.append(status)

        query = (
            "SELECT * FROM medication_adherence_log "
            f"WHERE {' AND '.join(conditions)} "
            "ORDER BY scheduled_time, id"
        )

        async with self.db.execute(query, params) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_event(row) for row in rows]

    # Helper methods

    def _row_to_reminder(self, row: aiosqlite.Row) -> ReminderDefinition:
        """Convert a database row to a ReminderDefinition object."""
        return ReminderDefinition(
            id=row["id"],
            user_id=row["user_id"],
            medication_id=row["medication_id"],
            time_of_day=row["reminder_time"],
            active_weekdays={int(day) for day in json.loads(row["days_of_week"])},
            is_active=bool(row["is_active"]),
        )

    def _row_to_event(self, row: aiosqlite.Row) -> DoseEvent:
        """Convert a database row to a DoseEvent object."""
        return DoseEvent(
            id=row["id"],
            user_id=row["user_id"],
            medication_id=row["medication_id"],
            scheduled_time=from_iso(row["scheduled_time"]),
            taken_time=from_iso(row["taken_time"]) if row["taken_time"] else None,
            status=row["status"],  # type: ignore
            notes=row["notes"],
            created_at=from_iso(row["created_at"]) if row["created_at"] else None,
        )
