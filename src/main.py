"""
Main entry point for Chime Reminder Engine.
Handles CLI arguments, environment setup, and application lifecycle.
"""

import asyncio
import signal
import sys
import argparse
from pathlib import Path
from dotenv import load_dotenv
import os

from config.logging_config import setup_logging
from src.core.coordinator import Coordinator
from src.reminder.errors import ReminderError
from src.reminder.repository import ReminderRepository, SQLiteReminderStore
from src.reminder.service import next_wake

# Setup logging first
logger = setup_logging("chime")


def parse_arguments():
    """
    Parse command line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="Chime Reminder Engine - recurring reminders with continuous alerts"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )

    parser.add_argument(
        "--db",
        default=None,
        help="SQLite database path (default: CHIME_DB_PATH or data/reminders.db)"
    )

    parser.add_argument(
        "--list",
        action="store_true",
        help="List stored reminders and exit"
    )

    return parser.parse_args()


def load_environment() -> None:
    """Load environment variables from .env file, if present."""
    env_path = Path(__file__).parent.parent / ".env"

    if env_path.exists():
        load_dotenv(env_path)
        logger.info(f"Loaded environment from {env_path}")
    else:
        logger.debug(f".env file not found at {env_path}")


def list_reminders(db_path: str) -> int:
    """Print stored reminders and exit."""
    from datetime import datetime

    reminders = ReminderRepository(SQLiteReminderStore(db_path)).load_all()
    if not reminders:
        logger.info("No reminders stored")
        return 0

    for reminder in reminders:
        logger.info(f"  {reminder}")

    wake = next_wake(reminders, datetime.now())
    logger.info(f"Next wake: {wake.strftime('%Y-%m-%d %H:%M:%S') if wake else 'none'}")
    return 0


async def main():
    """Main application entry point."""
    args = parse_arguments()

    if args.debug:
        logger.setLevel("DEBUG")
        for handler in logger.handlers:
            handler.setLevel("DEBUG")
        logger.info("Debug logging enabled")

    load_environment()
    db_path = args.db or os.getenv("CHIME_DB_PATH")

    if args.list:
        return list_reminders(db_path)

    logger.info("=" * 60)
    logger.info("Chime Reminder Engine")
    logger.info("=" * 60)

    coordinator = Coordinator()

    shutdown_event = asyncio.Event()

    def signal_handler(sig, frame):
        """Handle shutdown signals."""
        logger.info(f"Received signal {sig}, shutting down...")
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        if not coordinator.initialize(db_path=db_path):
            logger.error("Failed to initialize application")
            return 1

        await coordinator.start()

        logger.info("Application started successfully")
        logger.info("Press Ctrl+C to stop")

        await shutdown_event.wait()

    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")

    except ReminderError as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1

    finally:
        logger.info("Shutting down...")
        await coordinator.stop()

    logger.info("Application stopped")
    return 0


def run() -> None:
    """Console script entry point."""
    try:
        exit_code = asyncio.run(main())
        sys.exit(exit_code)

    except Exception as e:
        logger.error(f"Unhandled exception: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    run()
