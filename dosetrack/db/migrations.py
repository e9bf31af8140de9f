"""Database migration runner."""

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"


async def init_database(db_path: Path) -> None:
    """Create the profile, reminder and adherence log tables."""
    async with aiosqlite.connect(db_path) as db:
        with open(SCHEMA_PATH) as f:
            schema_sql = f.read()

        await db.executescript(schema_sql)
        await db.commit()

        logger.info(f"Database initialized at {db_path}")


async def run_migrations(db_path: Path) -> None:
    """Run any pending migrations.

    The schema is idempotent (CREATE ... IF NOT EXISTS), so this only
    ensures the database is initialized.
    """
    await init_database(db_path)
