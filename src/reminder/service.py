"""
Reminder service.
Orchestrates create/edit, enable/disable, soft-delete with undo and batch
trigger execution against the stored reminder collection.
"""

import asyncio
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from config.logging_config import get_logger
from config import settings
from config.settings import EventType
from src.core.event_bus import EventBus, Listener
from src.core.state_machine import LifecycleTracker
from src.reminder.dispatcher import NotificationDispatcher
from src.reminder.errors import DispatchError, StorageError, ValidationError
from src.reminder.models import OneTimeRule, Reminder
from src.reminder.repository import ReminderRepository
from src.reminder.triggers import update_reminder_trigger
from src.reminder.waker import BackgroundWaker

logger = get_logger(__name__)

Ids = Union[str, Iterable[str]]
Change = Tuple[Optional[Reminder], Optional[Reminder]]


def _as_id_set(ids: Ids) -> set:
    if isinstance(ids, str):
        return {ids}
    return set(ids)


def _new_notifications(changes: Iterable[Change]) -> List[Reminder]:
    """Changed reminders that now hold a handle they did not hold before."""
    return [
        after for before, after in changes
        if after is not None and after.notification_id
        and (before is None or after.notification_id != before.notification_id)
    ]


def _dispatcher_owns_trigger(reminder: Reminder, now: datetime) -> bool:
    """Whether the upcoming trigger was handed to the dispatcher ahead of time."""
    return (
        reminder.next_trigger_date is not None
        and reminder.next_trigger_date > now
        and reminder.last_trigger_date is not None
        and reminder.last_trigger_date >= reminder.next_trigger_date
    )


def next_wake(reminders: Iterable[Reminder], now: datetime) -> Optional[datetime]:
    """Earliest strictly future trigger among live, enabled reminders."""
    upcoming = [
        r.next_trigger_date for r in reminders
        if r.enabled and not r.is_deleted
        and r.next_trigger_date is not None and r.next_trigger_date > now
    ]
    return min(upcoming, default=None)


class ReminderService:
    """
    Owns every mutation of the reminder collection.

    Mutating operations are serialized through one lock per service, since
    the store only supports whole-collection read/rewrite. Notification
    failures are logged and never block persisting computed state.
    """

    def __init__(self, repository: ReminderRepository, dispatcher: NotificationDispatcher,
                 event_bus: Optional[EventBus] = None,
                 waker: Optional[BackgroundWaker] = None,
                 notification_title: str = settings.NOTIFICATION_TITLE):
        """
        Initialize service.

        Args:
            repository: Collection storage
            dispatcher: Notification dispatcher
            event_bus: Bus for change events (a private one is created if omitted)
            waker: Optional BackgroundWaker re-armed after every mutation
            notification_title: Title used for every notification
        """
        self.repository = repository
        self.dispatcher = dispatcher
        self.event_bus = event_bus or EventBus()
        self.waker = waker
        self.notification_title = notification_title
        self.lifecycle = LifecycleTracker()
        self._lock: Optional[asyncio.Lock] = None

    @property
    def lock(self) -> asyncio.Lock:
        # Created on first use so it binds to the loop that runs the service
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def set_waker(self, waker: BackgroundWaker) -> None:
        self.waker = waker

    def subscribe(self, listener: Listener) -> Listener:
        """Listen for full-collection updates."""
        return self.event_bus.subscribe(listener, EventType.REMINDERS_UPDATED)

    def unsubscribe(self, listener: Listener) -> None:
        self.event_bus.unsubscribe(listener, EventType.REMINDERS_UPDATED)

    # ------------------------------------------------------------------
    # Reads

    def get_reminders(self) -> List[Reminder]:
        """All stored reminders, tombstones included."""
        return self.repository.load_all()

    def get_reminder(self, reminder_id: str) -> Optional[Reminder]:
        for reminder in self.repository.load_all():
            if reminder.id == reminder_id:
                return reminder
        return None

    def compute_next_wake(self, now: Optional[datetime] = None,
                          reminders: Optional[Sequence[Reminder]] = None) -> Optional[datetime]:
        """
        Earliest future trigger across the collection.

        Returns:
            Next instant the process must wake at, or None if nothing is due
        """
        now = now or datetime.now()
        if reminders is None:
            reminders = self.repository.load_all()
        return next_wake(reminders, now)

    # ------------------------------------------------------------------
    # Mutations

    async def save(self, reminder: Reminder, now: Optional[datetime] = None) -> Reminder:
        """
        Create or edit a reminder and schedule its first notification.

        Trigger state is recomputed from scratch, so edits never inherit
        stale escalation history.

        Args:
            reminder: Reminder to store (``id`` None = new)
            now: Reference instant

        Returns:
            The stored reminder

        Raises:
            ValidationError: If the reminder has no future trigger
            StorageError: If the collection cannot be read or written
        """
        now = now or datetime.now()

        draft = replace(reminder.clear_triggers(), enabled=True, deleted_action_id=None)
        computed = update_reminder_trigger(draft, now)

        if computed.next_trigger_date is None or computed.next_trigger_date <= now:
            raise ValidationError(
                f"Reminder {reminder.title!r} has no future trigger "
                f"(next occurrence: {computed.next_reminder_date}); not saved"
            )

        async with self.lock:
            reminders = self.repository.load_all()

            if computed.id is None:
                computed = replace(computed, id=str(uuid.uuid4()))

            before = next((r for r in reminders if r.id == computed.id), None)
            if before is not None and before.notification_id not in (None, computed.notification_id):
                self._release(before)

            computed = self._notify(computed, computed.next_trigger_date)
            # The dispatcher now owns this trigger; execute_triggers must not re-fire it
            computed = replace(computed, last_trigger_date=computed.next_trigger_date)

            updated = [r for r in reminders if r.id != computed.id] + [computed]
            await self._commit(updated, [(before, computed)], now)

        logger.info(f"Saved reminder {computed.id}: {computed}")
        return computed

    async def toggle_enabled(self, ids: Ids, enable: bool,
                             now: Optional[datetime] = None) -> List[Reminder]:
        """
        Enable or disable reminders.

        Re-enabling a lapsed one-time reminder moves it to the same time on
        the following day. Disabling cancels the pending notification and
        leaves the computed trigger fields as they are.

        Returns:
            Reminders whose enabled flag changed
        """
        now = now or datetime.now()
        targets = _as_id_set(ids)

        async with self.lock:
            reminders = self.repository.load_all()
            updated: List[Reminder] = []
            changes: List[Change] = []

            for reminder in reminders:
                if reminder.id not in targets or reminder.enabled == enable:
                    updated.append(reminder)
                    continue
                if reminder.is_deleted:
                    logger.warning(f"Not toggling deleted reminder {reminder.id}")
                    updated.append(reminder)
                    continue

                after = self._enable(reminder, now) if enable else self._disable(reminder)
                updated.append(after)
                changes.append((reminder, after))

            await self._commit(updated, changes, now)

        logger.info(f"{'Enabled' if enable else 'Disabled'} {len(changes)} reminder(s)")
        return [after for _, after in changes]

    async def soft_delete(self, ids: Ids, action_id: Optional[str] = None,
                          now: Optional[datetime] = None) -> str:
        """
        Tombstone reminders under one shared undo token.

        Args:
            ids: Reminder id or ids
            action_id: Undo token (generated if omitted)

        Returns:
            The undo token
        """
        now = now or datetime.now()
        targets = _as_id_set(ids)
        action_id = action_id or str(uuid.uuid4())

        async with self.lock:
            reminders = self.repository.load_all()
            updated: List[Reminder] = []
            changes: List[Change] = []

            for reminder in reminders:
                if reminder.id in targets and not reminder.is_deleted:
                    if reminder.notification_id:
                        self._cancel(reminder.notification_id)
                    after = replace(reminder, deleted_action_id=action_id)
                    updated.append(after)
                    changes.append((reminder, after))
                else:
                    updated.append(reminder)

            await self._commit(updated, changes, now)

        logger.info(f"Deleted {len(changes)} reminder(s) under action {action_id}")
        return action_id

    async def undo_delete(self, action_id: str, now: Optional[datetime] = None) -> List[Reminder]:
        """
        Restore every reminder tombstoned under ``action_id``.

        Enabled reminders get their trigger recomputed and a notification
        scheduled when it is still in the future; a restored reminder with
        nothing left to fire simply ends up without a trigger.

        Returns:
            Restored reminders
        """
        now = now or datetime.now()

        async with self.lock:
            reminders = self.repository.load_all()
            updated: List[Reminder] = []
            changes: List[Change] = []

            for reminder in reminders:
                if reminder.deleted_action_id != action_id:
                    updated.append(reminder)
                    continue

                after = replace(reminder, deleted_action_id=None)
                if after.enabled:
                    after = update_reminder_trigger(after, now)
                    if after.next_trigger_date is not None and after.next_trigger_date > now:
                        after = self._notify(after, after.next_trigger_date)
                        after = replace(after, last_trigger_date=after.next_trigger_date)
                    else:
                        logger.warning(f"Restored reminder {after.id} has no future trigger")

                updated.append(after)
                changes.append((reminder, after))

            await self._commit(updated, changes, now)

        logger.info(f"Restored {len(changes)} reminder(s) from action {action_id}")
        return [after for _, after in changes]

    async def purge_deleted(self, now: Optional[datetime] = None) -> int:
        """
        Permanently drop every tombstoned reminder.

        Returns:
            Number of reminders purged
        """
        now = now or datetime.now()

        async with self.lock:
            reminders = self.repository.load_all()
            kept = [r for r in reminders if not r.is_deleted]
            changes = [(r, None) for r in reminders if r.is_deleted]

            await self._commit(kept, changes, now)

        if changes:
            logger.info(f"Purged {len(changes)} deleted reminder(s)")
        return len(changes)

    async def acknowledge(self, ids: Ids, now: Optional[datetime] = None) -> List[Reminder]:
        """
        Record that the user saw the current alert, ending any escalation.

        Returns:
            Acknowledged reminders
        """
        now = now or datetime.now()
        targets = _as_id_set(ids)

        async with self.lock:
            reminders = self.repository.load_all()
            updated: List[Reminder] = []
            changes: List[Change] = []

            for reminder in reminders:
                if reminder.id not in targets or reminder.is_deleted:
                    updated.append(reminder)
                    continue

                after = replace(reminder, last_acknowledged=now)
                # A notification handed over for a future trigger has not been shown yet
                if not _dispatcher_owns_trigger(after, now):
                    after = self._release(after)
                after = update_reminder_trigger(after, now)
                updated.append(after)
                changes.append((reminder, after))

            await self._commit(updated, changes, now)

        logger.info(f"Acknowledged {len(changes)} reminder(s)")
        return [after for _, after in changes]

    async def disable_lapsed_one_time(self, now: Optional[datetime] = None) -> List[Reminder]:
        """
        Switch off enabled one-time reminders that have nothing left to fire.

        A one-time reminder still inside its alert cycle is left alone.

        Returns:
            Reminders that were disabled
        """
        now = now or datetime.now()

        async with self.lock:
            reminders = self.repository.load_all()
            updated: List[Reminder] = []
            changes: List[Change] = []

            for reminder in reminders:
                lapsed = (
                    reminder.enabled
                    and not reminder.is_deleted
                    and isinstance(reminder.rule, OneTimeRule)
                    and (reminder.next_reminder_date is None or reminder.next_reminder_date < now)
                    and (reminder.next_trigger_date is None or reminder.next_trigger_date <= now)
                )
                if lapsed:
                    after = replace(reminder, enabled=False)
                    updated.append(after)
                    changes.append((reminder, after))
                else:
                    updated.append(reminder)

            if changes:
                await self._commit(updated, changes, now)
                logger.info(f"Disabled {len(changes)} lapsed one-time reminder(s)")

        return [after for _, after in changes]

    async def execute_triggers(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """
        Fire every due reminder and roll it forward.

        A reminder whose last dispatched trigger already covers its due
        trigger is rolled forward without firing again, so repeated runs for
        the same (or an earlier) ``now`` never double-fire.

        Args:
            now: Reference instant

        Returns:
            The next instant to wake at, or None
        """
        now = now or datetime.now()

        async with self.lock:
            reminders = self.repository.load_all()
            updated: List[Reminder] = []
            changes: List[Change] = []
            fired: List[Reminder] = []

            for reminder in reminders:
                due = (
                    reminder.enabled
                    and not reminder.is_deleted
                    and reminder.next_trigger_date is not None
                    and reminder.next_trigger_date <= now
                )
                if not due:
                    updated.append(reminder)
                    continue

                after = reminder
                last = reminder.last_trigger_date
                if last is None or last < reminder.next_trigger_date:
                    after = self._notify(after, None)
                    after = replace(after, last_trigger_date=now)
                    fired.append(after)
                    logger.info(f"Triggered reminder {reminder.id} ({reminder.title})")
                else:
                    logger.debug(f"Reminder {reminder.id} already dispatched for {last}")

                after = update_reminder_trigger(after, now)
                updated.append(after)
                changes.append((reminder, after))

            if changes:
                await self._commit(updated, changes, now, rearm=False)
                for reminder in fired:
                    await self.event_bus.publish(EventType.REMINDER_TRIGGERED, reminder)

        result = next_wake(updated, now)
        logger.debug(f"Trigger batch at {now}: {len(fired)} fired, next wake {result}")
        return result

    async def restore_notifications(self, now: Optional[datetime] = None) -> List[Reminder]:
        """
        Reschedule notifications the dispatcher no longer holds.

        Triggers handed to the dispatcher ahead of time are skipped by
        ``execute_triggers``, so a handle lost with a restarted scheduler
        must be replaced here or that occurrence never fires.

        Returns:
            Reminders that got a new notification
        """
        now = now or datetime.now()

        async with self.lock:
            reminders = self.repository.load_all()
            updated: List[Reminder] = []
            changes: List[Change] = []

            for reminder in reminders:
                lost = (
                    reminder.enabled
                    and not reminder.is_deleted
                    and _dispatcher_owns_trigger(reminder, now)
                    and not (reminder.notification_id
                             and self.dispatcher.is_pending(reminder.notification_id))
                )
                if not lost:
                    updated.append(reminder)
                    continue

                after = self._notify(reminder, reminder.next_trigger_date)
                updated.append(after)
                changes.append((reminder, after))

            if changes:
                await self._commit(updated, changes, now)
                logger.info(f"Restored {len(changes)} scheduled notification(s)")

        return [after for _, after in changes]

    def cancel_all_notifications(self) -> None:
        """Cancel every scheduled notification; failures are only logged."""
        try:
            self.dispatcher.cancel_all()
        except DispatchError as e:
            logger.error(f"Failed to cancel all notifications: {e}")

    # ------------------------------------------------------------------
    # Internals

    def _enable(self, reminder: Reminder, now: datetime) -> Reminder:
        rule = reminder.rule
        if (isinstance(rule, OneTimeRule)
                and reminder.next_reminder_date is not None
                and reminder.next_reminder_date < now):
            rule = replace(rule, date=rule.date + timedelta(days=1))
            logger.info(f"Reminder {reminder.id} lapsed; moved to {rule.date}")

        after = update_reminder_trigger(replace(reminder, rule=rule, enabled=True), now)
        if after.next_trigger_date is not None:
            after = self._notify(after, after.next_trigger_date)
            after = replace(after, last_trigger_date=after.next_trigger_date)
        return after

    def _disable(self, reminder: Reminder) -> Reminder:
        if reminder.notification_id:
            self._cancel(reminder.notification_id)
        return replace(reminder, enabled=False, notification_id=None)

    def _notify(self, reminder: Reminder, fire_at: Optional[datetime]) -> Reminder:
        """Replace the reminder's notification with a new one at ``fire_at``."""
        reminder = self._release(reminder)
        content = reminder.notification_content(self.notification_title)
        try:
            handle = self.dispatcher.schedule(content, fire_at)
        except DispatchError as e:
            logger.warning(f"Could not schedule notification for {reminder.id}: {e}")
            handle = None
        return replace(reminder, notification_id=handle)

    def _release(self, reminder: Reminder) -> Reminder:
        """Cancel and dismiss the reminder's current notification, if any."""
        handle = reminder.notification_id
        if not handle:
            return reminder
        self._cancel(handle)
        try:
            self.dispatcher.dismiss(handle)
        except DispatchError as e:
            logger.warning(f"Could not dismiss notification {handle}: {e}")
        return replace(reminder, notification_id=None)

    def _cancel(self, handle: str) -> None:
        try:
            self.dispatcher.cancel(handle)
        except DispatchError as e:
            logger.warning(f"Could not cancel notification {handle}: {e}")

    async def _commit(self, reminders: List[Reminder], changes: List[Change],
                      now: datetime, rearm: bool = True) -> None:
        """
        Persist the collection, then record, publish and re-arm.

        Notifications scheduled by the operation are released again when the
        collection cannot be written, since no stored record holds them.
        """
        try:
            self.repository.save_all(reminders)
        except StorageError:
            for reminder in _new_notifications(changes):
                self._release(reminder)
            raise

        for before, after in changes:
            self.lifecycle.record(before, after, now)

        await self.event_bus.publish(EventType.REMINDERS_UPDATED, list(reminders))

        if rearm and self.waker is not None:
            wake_at = next_wake(reminders, now)
            self.waker.arm(wake_at)
            await self.event_bus.publish(EventType.NEXT_WAKE_CHANGED, wake_at)
