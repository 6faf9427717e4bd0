# file: scripts/reminder_scheduler.py
#
# Standalone polling loop. Run from the project root with:
#     python -m scripts.reminder_scheduler

import asyncio
import logging

from app import config
from app.database.connection import get_db_session, init_db
from app.services.reminder_processor import process_pending_reminders

logger = logging.getLogger("reminder_scheduler")


async def run_cycle() -> int:
    """Runs one reminder check and returns how many reminders were delivered."""
    async with get_db_session() as db:
        result = await process_pending_reminders(db)
    for failure in result.failures:
        logger.warning(" -> Reminder %s failed: %s", failure.reminder_id, failure.error)
    return result.processed


async def main_scheduler_loop():
    """The main event loop for the scheduler daemon."""
    await init_db()
    while True:
        logger.info("--- Starting reminder cycle ---")
        try:
            await run_cycle()
        except Exception:
            logger.exception("An error occurred in the scheduler loop")

        logger.info("--- Cycle finished. Waiting for %d seconds. ---", config.REMINDER_INTERVAL_SECONDS)
        await asyncio.sleep(config.REMINDER_INTERVAL_SECONDS)


if __name__ == "__main__":
    logging.basicConfig(level=config.LOG_LEVEL)
    logger.info("Starting reminder scheduler...")
    asyncio.run(main_scheduler_loop())
