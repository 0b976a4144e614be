"""
Notification dispatching.
APScheduler-backed dispatcher that delivers reminder notifications at
their fire instant.
"""

import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Dict, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.date import DateTrigger

from config.logging_config import get_logger
from config import settings
from src.reminder.errors import DispatchError
from src.reminder.models import NotificationContent

logger = get_logger(__name__)

Presenter = Callable[[str, NotificationContent], None]


class NotificationDispatcher(ABC):
    """Schedules, cancels and dismisses platform notifications."""

    @abstractmethod
    def schedule(self, content: NotificationContent,
                 fire_at: Optional[datetime] = None) -> str:
        """
        Schedule a notification.

        Args:
            content: Title/body to show
            fire_at: When to show it (None = immediately)

        Returns:
            Opaque handle for later cancel/dismiss

        Raises:
            DispatchError: If the notification cannot be scheduled
        """

    @abstractmethod
    def cancel(self, handle: str) -> None:
        """Cancel a notification that has not fired yet."""

    @abstractmethod
    def dismiss(self, handle: str) -> None:
        """Remove a delivered notification from view."""

    @abstractmethod
    def cancel_all(self) -> None:
        """Cancel every scheduled notification."""

    @abstractmethod
    def is_pending(self, handle: str) -> bool:
        """Whether ``handle`` is scheduled and has not fired yet."""


def log_presenter(handle: str, content: NotificationContent) -> None:
    """Default presenter: write the notification to the log."""
    logger.info(f"🔔 {content.title}: {content.body}")


class SchedulerNotificationDispatcher(NotificationDispatcher):
    """
    Delivers notifications through APScheduler date jobs.
    Delivered notifications stay "presented" until dismissed.
    """

    JOB_PREFIX = "notification_"

    def __init__(self, scheduler: BaseScheduler, presenter: Optional[Presenter] = None):
        """
        Initialize dispatcher.

        Args:
            scheduler: APScheduler instance that runs delivery jobs
            presenter: Callable that actually shows a notification
        """
        self.scheduler = scheduler
        self.presenter = presenter or log_presenter
        self.presented: Dict[str, NotificationContent] = {}

        logger.info("SchedulerNotificationDispatcher initialized")

    def schedule(self, content: NotificationContent,
                 fire_at: Optional[datetime] = None) -> str:
        handle = f"{self.JOB_PREFIX}{uuid.uuid4().hex}"

        if fire_at is None or fire_at <= datetime.now():
            self._present(handle, content)
            return handle

        try:
            self.scheduler.add_job(
                func=self._present,
                trigger=DateTrigger(run_date=fire_at),
                id=handle,
                args=[handle, content],
                misfire_grace_time=settings.SCHEDULER_MISFIRE_GRACE_TIME,
                replace_existing=True
            )
        except Exception as e:
            raise DispatchError(f"Failed to schedule notification for {fire_at}: {e}") from e

        logger.info(
            f"Scheduled notification {handle} for "
            f"{fire_at.strftime('%Y-%m-%d %H:%M:%S')}"
        )
        return handle

    def cancel(self, handle: str) -> None:
        try:
            self.scheduler.remove_job(handle)
            logger.info(f"Cancelled notification {handle}")

        except JobLookupError:
            # Already delivered or never scheduled
            logger.debug(f"No pending notification {handle}")

        except Exception as e:
            raise DispatchError(f"Failed to cancel notification {handle}: {e}") from e

    def dismiss(self, handle: str) -> None:
        if self.presented.pop(handle, None) is not None:
            logger.debug(f"Dismissed notification {handle}")

    def cancel_all(self) -> None:
        try:
            for job in self.scheduler.get_jobs():
                if job.id.startswith(self.JOB_PREFIX):
                    job.remove()
        except Exception as e:
            raise DispatchError(f"Failed to cancel notifications: {e}") from e

        logger.info("All scheduled notifications cancelled")

    def is_pending(self, handle: str) -> bool:
        return self.scheduler.get_job(handle) is not None

    def _present(self, handle: str, content: NotificationContent) -> None:
        """Show a notification (internal)."""
        self.presented[handle] = content
        try:
            self.presenter(handle, content)
        except Exception as e:
            logger.error(f"Presenter failed for {handle}: {e}", exc_info=True)
