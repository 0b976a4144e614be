"""
Recurrence calculation.
Pure functions that resolve a rule to its next natural occurrence.
"""

import calendar
from dataclasses import replace
from datetime import date, datetime, time, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from config.logging_config import get_logger
from config.settings import WEEKDAY_SCAN_DAYS
from src.reminder.models import (
    MonthlyRule,
    OneTimeRule,
    Reminder,
    Rule,
    Weekday,
    WeekdaysRule,
    YearlyRule,
)

logger = get_logger(__name__)


def days_in_month(year: int, month: int) -> int:
    """Number of days in ``month`` (1-12) of ``year``."""
    return calendar.monthrange(year, month)[1]


def _at(day: date, hour: int, minute: int) -> datetime:
    return datetime.combine(day, time(hour, minute))


def _clamped(year: int, month: int, day: int, hour: int, minute: int) -> datetime:
    return datetime(year, month, min(day, days_in_month(year, month)), hour, minute)


def _next_one_time(rule: OneTimeRule, now: datetime) -> datetime:
    # May be in the past; callers decide whether that is acceptable
    return _at(rule.date, rule.hour, rule.minute)


def _next_weekday(rule: WeekdaysRule, now: datetime) -> Optional[datetime]:
    if not rule.weekdays:
        return None

    day = now.date()
    for _ in range(WEEKDAY_SCAN_DAYS):
        if Weekday(day.weekday()) in rule.weekdays:
            candidate = _at(day, rule.hour, rule.minute)
            if candidate > now:
                return candidate
        day += timedelta(days=1)

    return None


def _next_monthly(rule: MonthlyRule, now: datetime) -> datetime:
    candidate = _clamped(now.year, now.month, rule.day, rule.hour, rule.minute)
    if candidate <= now:
        following = date(now.year, now.month, 1) + relativedelta(months=1)
        candidate = _clamped(following.year, following.month, rule.day, rule.hour, rule.minute)
    return candidate


def _next_yearly(rule: YearlyRule, now: datetime) -> datetime:
    month = rule.month + 1
    candidate = _clamped(now.year, month, rule.day, rule.hour, rule.minute)
    if candidate <= now:
        following = date(now.year, month, 1) + relativedelta(years=1)
        candidate = _clamped(following.year, month, rule.day, rule.hour, rule.minute)
    return candidate


_CALCULATORS = {
    OneTimeRule: _next_one_time,
    WeekdaysRule: _next_weekday,
    MonthlyRule: _next_monthly,
    YearlyRule: _next_yearly,
}


def next_occurrence(rule: Rule, now: datetime) -> Optional[datetime]:
    """
    Resolve the next natural occurrence of ``rule`` relative to ``now``.

    Args:
        rule: Recurrence rule
        now: Reference instant (local wall-clock)

    Returns:
        Occurrence instant, or None when the rule can never fire
        (a Weekdays rule with no days selected). One-time rules always
        resolve to their fixed instant, even when it has passed.
    """
    try:
        calculate = _CALCULATORS[type(rule)]
    except KeyError:
        raise TypeError(f"Unsupported rule type: {type(rule).__name__}") from None
    return calculate(rule, now)


def advance_occurrence(reminder: Reminder, now: datetime) -> Reminder:
    """
    Roll ``next_reminder_date`` forward if it is unset or has elapsed.

    A future ``next_reminder_date`` is kept as is, so repeated calls
    against the same ``now`` are stable. An elapsed value is first moved
    to ``prev_reminder_date``.
    """
    current = reminder.next_reminder_date
    if current is not None and current > now:
        return reminder

    prev = reminder.prev_reminder_date
    if current is not None:
        prev = current
        logger.debug(f"Reminder {reminder.id}: occurrence {current} reached")

    upcoming = next_occurrence(reminder.rule, now)
    logger.debug(f"Reminder {reminder.id}: next occurrence {upcoming}")

    return replace(reminder, next_reminder_date=upcoming, prev_reminder_date=prev)
