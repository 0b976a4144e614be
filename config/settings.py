"""
Configuration settings for Chime Reminder Engine.
All constants and configuration values centralized here.
"""

from enum import Enum
from pathlib import Path
import os

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("CHIME_DATA_DIR", PROJECT_ROOT / "data"))
LOGS_DIR = Path(os.getenv("CHIME_LOGS_DIR", PROJECT_ROOT / "logs"))
DB_PATH = Path(os.getenv("CHIME_DB_PATH", DATA_DIR / "reminders.db"))

# Ensure directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
LOGS_DIR.mkdir(parents=True, exist_ok=True)

# Storage Configuration
STORAGE_KEY = "reminders"  # Whole collection lives under this key

# Recurrence Configuration
WEEKDAY_SCAN_DAYS = 8  # Today plus one full week

# Continuous Alert Configuration
ESCALATION_INTERVAL_MINUTES = 5  # Cadence of repeated alerts
ESCALATION_BUDGET_MINUTES = 30  # 6 alerts at most per occurrence
ESCALATION_GRACE_MINUTES = 34  # Absorbs late background wake-ups
ESCALATION_MIN_LEAD_MINUTES = 1  # Never schedule an alert in the past

# Notification Configuration
NOTIFICATION_TITLE = "Reminder"

# Scheduler Configuration
SCHEDULER_MISFIRE_GRACE_TIME = 300  # Seconds (5 minutes)
SCHEDULER_COALESCE = True  # Merge multiple pending executions
SCHEDULER_MAX_INSTANCES = 1  # Trigger batches must not overlap
WAKE_JOB_ID = "chime_background_wake"
WAKE_RETRY_SECONDS = 60  # Re-arm delay after a failed trigger batch

# Logging Configuration
LOG_FILE = LOGS_DIR / "chime.log"
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB per file
LOG_BACKUP_COUNT = 5
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
QUIET_LOGGERS = ("apscheduler", "tzlocal")  # Scheduler internals log every job run

# System Configuration
DEBUG_MODE = os.getenv("DEBUG", "false").lower() == "true"


class EventType(Enum):
    """Event bus event types."""
    REMINDERS_UPDATED = "reminders_updated"
    REMINDER_TRIGGERED = "reminder_triggered"
    NEXT_WAKE_CHANGED = "next_wake_changed"
    ERROR_OCCURRED = "error_occurred"
