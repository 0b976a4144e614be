"""
Reminder lifecycle state machine.
Classifies reminders into lifecycle states and validates observed transitions.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple
from config.logging_config import get_logger
from src.reminder.models import Reminder
from src.reminder.triggers import EscalationState, escalation_state

logger = get_logger(__name__)


class ReminderState(Enum):
    """Reminder lifecycle states."""
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    ESCALATING = "escalating"
    EXPIRED = "expired"  # enabled, but nothing left to fire
    DISABLED = "disabled"
    DELETED = "deleted"
    PURGED = "purged"


# Valid state transitions (from_state -> list of valid to_states)
VALID_TRANSITIONS = {
    ReminderState.DRAFT: [ReminderState.SCHEDULED, ReminderState.ESCALATING],
    ReminderState.SCHEDULED: [
        ReminderState.ESCALATING, ReminderState.EXPIRED,
        ReminderState.DISABLED, ReminderState.DELETED,
    ],
    ReminderState.ESCALATING: [
        ReminderState.SCHEDULED, ReminderState.EXPIRED,
        ReminderState.DISABLED, ReminderState.DELETED,
    ],
    ReminderState.EXPIRED: [
        ReminderState.SCHEDULED, ReminderState.ESCALATING,
        ReminderState.DISABLED, ReminderState.DELETED,
    ],
    ReminderState.DISABLED: [
        ReminderState.SCHEDULED, ReminderState.ESCALATING,
        ReminderState.EXPIRED, ReminderState.DELETED,
    ],
    ReminderState.DELETED: [
        ReminderState.SCHEDULED, ReminderState.ESCALATING,
        ReminderState.EXPIRED, ReminderState.DISABLED, ReminderState.PURGED,
    ],
    ReminderState.PURGED: [],
}


def classify(reminder: Optional[Reminder], now: datetime) -> ReminderState:
    """
    Determine the lifecycle state of a reminder.

    Args:
        reminder: Reminder to classify (None = never stored)
        now: Reference instant

    Returns:
        Lifecycle state
    """
    if reminder is None or reminder.id is None:
        return ReminderState.DRAFT
    if reminder.is_deleted:
        return ReminderState.DELETED
    if not reminder.enabled:
        return ReminderState.DISABLED
    if reminder.next_trigger_date is None or reminder.next_trigger_date <= now:
        return ReminderState.EXPIRED
    if escalation_state(reminder, now) is EscalationState.ESCALATING:
        return ReminderState.ESCALATING
    return ReminderState.SCHEDULED


class LifecycleTracker:
    """
    Records reminder state transitions with validation and history.
    Invalid transitions are logged, never blocked: the engine's computation
    is authoritative and the tracker only observes it.
    """

    def __init__(self, max_history: int = 100):
        # (reminder_id, from_state, to_state, timestamp)
        self.history: List[Tuple[str, ReminderState, ReminderState, datetime]] = []
        self.max_history = max_history
        self.invalid_count = 0

    def record(self, before: Optional[Reminder], after: Optional[Reminder],
               now: datetime) -> Optional[ReminderState]:
        """
        Record the transition between two versions of one reminder.

        Args:
            before: Version prior to the operation (None = new)
            after: Version after the operation (None = purged)
            now: Reference instant

        Returns:
            New state, or None if the state did not change
        """
        old_state = classify(before, now)
        new_state = ReminderState.PURGED if after is None else classify(after, now)
        reminder_id = (after or before).id

        if old_state == new_state:
            return None

        if new_state not in VALID_TRANSITIONS[old_state]:
            self.invalid_count += 1
            logger.warning(
                f"Unexpected transition for {reminder_id}: "
                f"{old_state.value} -> {new_state.value}"
            )

        self.history.append((reminder_id, old_state, new_state, now))
        if len(self.history) > self.max_history:
            self.history.pop(0)

        logger.debug(f"Reminder {reminder_id}: {old_state.value} -> {new_state.value}")
        return new_state

    def get_history(self, reminder_id: Optional[str] = None,
                    limit: int = 10) -> List[Tuple[str, ReminderState, ReminderState, datetime]]:
        """
        Get recent transition history.

        Args:
            reminder_id: Only transitions of this reminder (None = all)
            limit: Number of recent transitions to return
        """
        entries = self.history
        if reminder_id is not None:
            entries = [entry for entry in entries if entry[0] == reminder_id]
        return entries[-limit:]

    def last_states(self) -> Dict[str, ReminderState]:
        """Most recent state seen per reminder."""
        return {entry[0]: entry[2] for entry in self.history}
