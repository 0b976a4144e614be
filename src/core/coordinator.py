"""
Main application coordinator.
Wires storage, dispatcher, waker and service together and handles the
application lifecycle (start, foreground transitions, shutdown).
"""

from typing import Optional
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config.logging_config import get_logger
from config import settings
from config.settings import EventType
from src.core.event_bus import EventBus, Event
from src.reminder.dispatcher import NotificationDispatcher, SchedulerNotificationDispatcher
from src.reminder.repository import ReminderRepository, ReminderStore, SQLiteReminderStore
from src.reminder.service import ReminderService
from src.reminder.waker import BackgroundWaker

logger = get_logger(__name__)


class Coordinator:
    """
    Main application coordinator.
    Initializes components in dependency order and manages their lifecycle.
    """

    def __init__(self):
        """Initialize coordinator."""
        logger.info("Initializing Coordinator")

        self.event_bus: Optional[EventBus] = None
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.store: Optional[ReminderStore] = None
        self.dispatcher: Optional[NotificationDispatcher] = None
        self.waker: Optional[BackgroundWaker] = None
        self.service: Optional[ReminderService] = None

        self.running = False

    def initialize(self, store: Optional[ReminderStore] = None,
                   dispatcher: Optional[NotificationDispatcher] = None,
                   db_path: Optional[str] = None) -> bool:
        """
        Initialize all components in dependency order.

        Args:
            store: Collection store (SQLite at ``db_path`` if omitted)
            dispatcher: Notification dispatcher (scheduler-backed if omitted)
            db_path: SQLite database path

        Returns:
            True if all components initialized successfully
        """
        try:
            logger.info("Initializing components...")

            # 1. Event bus
            self.event_bus = EventBus()
            self.event_bus.subscribe(self._on_reminder_triggered, EventType.REMINDER_TRIGGERED)

            # 2. Scheduler
            self.scheduler = AsyncIOScheduler(
                job_defaults={
                    'coalesce': settings.SCHEDULER_COALESCE,
                    'max_instances': settings.SCHEDULER_MAX_INSTANCES,
                    'misfire_grace_time': settings.SCHEDULER_MISFIRE_GRACE_TIME
                }
            )

            # 3. Storage
            self.store = store or SQLiteReminderStore(db_path)

            # 4. Notifications
            self.dispatcher = dispatcher or SchedulerNotificationDispatcher(self.scheduler)

            # 5. Service and background waker
            self.service = ReminderService(
                repository=ReminderRepository(self.store),
                dispatcher=self.dispatcher,
                event_bus=self.event_bus,
            )
            self.waker = BackgroundWaker(self.scheduler, callback=self.service.execute_triggers)
            self.service.set_waker(self.waker)

            logger.info("All components initialized successfully")
            return True

        except Exception as e:
            logger.error(f"Initialization failed: {e}", exc_info=True)
            return False

    async def start(self) -> None:
        """Start the scheduler and catch up on anything that came due."""
        if self.running:
            logger.warning("Coordinator already running")
            return

        self.scheduler.start()
        self.running = True
        logger.info("Coordinator started")

        await self.on_foreground()

    async def on_foreground(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """
        Handle the app coming to the foreground.

        Tombstones are purged here and only here, so undo stays available
        for the whole session. Notifications lost with a previous scheduler
        are rescheduled before the waker is armed.

        Returns:
            The instant the waker was armed for
        """
        now = now or datetime.now()

        await self.service.purge_deleted(now)
        await self.service.disable_lapsed_one_time(now)

        next_wake = await self.service.execute_triggers(now)
        await self.service.restore_notifications(now)
        self.waker.arm(next_wake)
        return next_wake

    async def stop(self) -> None:
        """Stop the coordinator."""
        logger.info("Stopping coordinator...")

        self.running = False

        if self.waker:
            self.waker.disarm()

        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)

        if self.event_bus:
            self.event_bus.clear_all()

        logger.info("Coordinator stopped")

    async def _on_reminder_triggered(self, event: Event) -> None:
        reminder = event.data
        logger.debug(f"Reminder fired: {reminder.title} (next trigger {reminder.next_trigger_date})")
