"""
Background wake-ups.
Arms a single APScheduler date job at the next trigger instant; when it
fires it runs the trigger batch and re-arms itself from the result.
"""

from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.date import DateTrigger

from config.logging_config import get_logger
from config import settings

logger = get_logger(__name__)

WakeCallback = Callable[[datetime], Awaitable[Optional[datetime]]]


class BackgroundWaker:
    """
    One-shot wake scheduler for trigger execution.
    """

    def __init__(self, scheduler: BaseScheduler, callback: Optional[WakeCallback] = None,
                 job_id: str = settings.WAKE_JOB_ID):
        """
        Initialize waker.

        Args:
            scheduler: APScheduler instance (AsyncIOScheduler for coroutine callbacks)
            callback: Async function run on wake-up
                     Signature: async def callback(now: datetime) -> Optional[datetime]
                     returning the next instant to wake at
            job_id: Scheduler job id used for the wake job
        """
        self.scheduler = scheduler
        self.callback = callback
        self.job_id = job_id
        self.next_wake: Optional[datetime] = None

    def set_callback(self, callback: WakeCallback) -> None:
        """
        Set or update the wake callback.

        Args:
            callback: Async function to run when the process wakes
        """
        self.callback = callback
        logger.debug("Wake callback set")

    def arm(self, when: Optional[datetime]) -> None:
        """
        Arm the wake-up at ``when``, replacing any earlier arming.

        Args:
            when: Instant to wake at (None = disarm)
        """
        if when is None:
            self.disarm()
            return

        # replace_existing is not honoured for jobs queued before start()
        self._remove_job()
        self.scheduler.add_job(
            func=self._wake,
            trigger=DateTrigger(run_date=when),
            id=self.job_id,
            replace_existing=True,
            misfire_grace_time=None,  # A late wake-up still has to run
            coalesce=True,
            max_instances=settings.SCHEDULER_MAX_INSTANCES
        )
        self.next_wake = when

        logger.info(f"Background wake armed for {when.strftime('%Y-%m-%d %H:%M:%S')}")

    def disarm(self) -> None:
        """Remove any pending wake-up."""
        if self._remove_job():
            logger.info("Background wake disarmed")
        self.next_wake = None

    def _remove_job(self) -> bool:
        try:
            self.scheduler.remove_job(self.job_id)
            return True
        except JobLookupError:
            return False

    def is_armed(self) -> bool:
        return self.scheduler.get_job(self.job_id) is not None

    async def _wake(self) -> None:
        """
        Run the wake callback and re-arm (internal).
        """
        self.next_wake = None
        if not self.callback:
            logger.warning("Background wake fired without a callback")
            return

        now = datetime.now()
        logger.debug(f"Background wake at {now}")

        try:
            next_wake = await self.callback(now)
        except Exception as e:
            # The wake job is consumed, so every failure re-arms
            retry_at = now + timedelta(seconds=settings.WAKE_RETRY_SECONDS)
            logger.error(f"Trigger execution failed, retrying at {retry_at}: {e}", exc_info=True)
            self.arm(retry_at)
            return

        self.arm(next_wake)
