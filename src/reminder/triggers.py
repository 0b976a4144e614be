"""
Trigger scheduling with continuous-alert escalation.

The next trigger is normally the next natural occurrence. When continuous
alerts are on and an occurrence has just been reached without being
acknowledged, the reminder re-fires every few minutes until the alert
budget is spent.
"""

from dataclasses import replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from config.logging_config import get_logger
from config.settings import (
    ESCALATION_BUDGET_MINUTES,
    ESCALATION_GRACE_MINUTES,
    ESCALATION_INTERVAL_MINUTES,
    ESCALATION_MIN_LEAD_MINUTES,
)
from src.reminder.models import Reminder
from src.reminder.recurrence import advance_occurrence

logger = get_logger(__name__)

ESCALATION_INTERVAL = timedelta(minutes=ESCALATION_INTERVAL_MINUTES)
ESCALATION_BUDGET = timedelta(minutes=ESCALATION_BUDGET_MINUTES)
ESCALATION_GRACE = timedelta(minutes=ESCALATION_GRACE_MINUTES)
MIN_LEAD = timedelta(minutes=ESCALATION_MIN_LEAD_MINUTES)


class EscalationState(Enum):
    """Where a reminder stands in its alert cycle."""
    IDLE = "idle"
    ESCALATING = "escalating"
    SETTLED = "settled"


def _future_or_none(value: Optional[datetime], now: datetime) -> Optional[datetime]:
    return value if value is not None and value > now else None


def _awaiting_acknowledgement(reminder: Reminder, now: datetime) -> bool:
    prev = reminder.prev_reminder_date
    acknowledged = reminder.last_acknowledged
    return (
        now - prev <= ESCALATION_GRACE
        and (acknowledged is None or acknowledged < prev)
    )


def _within_budget(reminder: Reminder) -> bool:
    prev = reminder.prev_reminder_date
    last = reminder.last_trigger_date
    return last is not None and last >= prev and last - prev < ESCALATION_BUDGET


def escalation_state(reminder: Reminder, now: datetime) -> EscalationState:
    """Classify ``reminder`` against ``now`` without changing it."""
    if not reminder.enabled:
        return EscalationState.SETTLED
    if reminder.prev_reminder_date is None or not reminder.continuous_alert:
        return EscalationState.IDLE if reminder.last_trigger_date is None else EscalationState.SETTLED
    if _awaiting_acknowledgement(reminder, now) and _within_budget(reminder):
        return EscalationState.ESCALATING
    return EscalationState.SETTLED


def compute_next_trigger(reminder: Reminder, now: datetime) -> Optional[datetime]:
    """
    Decide the next instant a notification must fire.

    ``reminder.next_reminder_date`` must already be up to date (see
    ``advance_occurrence``).

    Args:
        reminder: Reminder with current trigger state
        now: Reference instant

    Returns:
        A strictly future instant, or None when nothing is due
    """
    upcoming = reminder.next_reminder_date

    if not reminder.enabled:
        return None

    if reminder.prev_reminder_date is None or not reminder.continuous_alert:
        return _future_or_none(upcoming, now)

    if _awaiting_acknowledgement(reminder, now):
        if _within_budget(reminder):
            step = reminder.last_trigger_date + ESCALATION_INTERVAL
            return max(step, now + MIN_LEAD)
        logger.debug(f"Reminder {reminder.id}: alert budget spent")

    return _future_or_none(upcoming, now)


def update_reminder_trigger(reminder: Reminder, now: Optional[datetime] = None) -> Reminder:
    """
    Return a copy of ``reminder`` with its occurrence and trigger recomputed.

    Args:
        reminder: Reminder to roll forward
        now: Reference instant (defaults to the current time)

    Returns:
        New Reminder instance; the input is left untouched
    """
    now = now or datetime.now()
    advanced = advance_occurrence(reminder, now)
    next_trigger = compute_next_trigger(advanced, now)

    logger.debug(
        f"Reminder {reminder.id}: next trigger {next_trigger} "
        f"(occurrence {advanced.next_reminder_date}, previous {advanced.prev_reminder_date})"
    )

    return replace(advanced, next_trigger_date=next_trigger)
