"""Main entry point for the dosetrack missed-dose worker."""

import asyncio
import logging
import sys

from dosetrack.config import Config
from dosetrack.db.migrations import run_migrations
from dosetrack.db.repository import Repository
from dosetrack.engine.monitor import heartbeat

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, Config.LOG_LEVEL),
    stream=sys.stdout,
)

logger = logging.getLogger(__name__)


async def run() -> None:
    """Initialize the store and run the heartbeat until cancelled."""
    await run_migrations(Config.DATABASE_PATH)

    repo = Repository(Config.DATABASE_PATH)
    await repo.connect()

    logger.info(f"Heartbeat scheduled (interval: {Config.HEARTBEAT_INTERVAL}s)")

    try:
        while True:
            await heartbeat(repo, grace_minutes=Config.GRACE_MINUTES)
            await asyncio.sleep(Config.HEARTBEAT_INTERVAL)
    finally:
        await repo.close()
        logger.info("dosetrack worker shut down")


def main() -> None:
    """Start the worker."""
    # Validate configuration
    try:
        Config.validate()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    logger.info("Starting dosetrack worker...")
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
