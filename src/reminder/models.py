"""
Data models for reminders.

A reminder's recurrence rule is one of four frozen rule types; the
``Reminder`` record itself is immutable and is rolled forward by building
new instances with ``dataclasses.replace``.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import FrozenSet, Optional, Union

from src.reminder.errors import ValidationError


class Periodicity(Enum):
    """Wire tags for the recurrence rule variants."""
    ONE_TIME = "One-time"
    WEEKDAYS = "Weekdays"
    MONTHLY = "Monthly"
    YEARLY = "Yearly"


class Weekday(Enum):
    """Days of the week, valued as ``datetime.weekday()``."""
    MON = 0
    TUE = 1
    WED = 2
    THU = 3
    FRI = 4
    SAT = 5
    SUN = 6

    @property
    def label(self) -> str:
        """Three-letter label used in stored records ("Mon", "Tue", ...)."""
        return self.name.capitalize()

    @classmethod
    def from_label(cls, label: str) -> 'Weekday':
        try:
            return cls[label.upper()]
        except KeyError:
            raise ValidationError(f"Unknown weekday: {label!r}") from None


def _check_time(hour: int, minute: int) -> None:
    if not 0 <= hour <= 23:
        raise ValidationError(f"hour must be in 0..23, got {hour}")
    if not 0 <= minute <= 59:
        raise ValidationError(f"minute must be in 0..59, got {minute}")


def _check_day(day: int) -> None:
    if not 1 <= day <= 31:
        raise ValidationError(f"day must be in 1..31, got {day}")


@dataclass(frozen=True)
class OneTimeRule:
    """Fires once, on ``date`` at ``hour:minute``."""
    date: date
    hour: int
    minute: int
    periodicity = Periodicity.ONE_TIME

    def __post_init__(self):
        if self.date is None:
            raise ValidationError("One-time rule requires a date")
        # Stored dates come back as datetimes; only the calendar day matters
        if isinstance(self.date, datetime):
            object.__setattr__(self, 'date', self.date.date())
        _check_time(self.hour, self.minute)


@dataclass(frozen=True)
class WeekdaysRule:
    """Fires on each listed weekday at ``hour:minute``."""
    weekdays: FrozenSet[Weekday]
    hour: int
    minute: int
    periodicity = Periodicity.WEEKDAYS

    def __post_init__(self):
        object.__setattr__(self, 'weekdays', frozenset(self.weekdays or ()))
        _check_time(self.hour, self.minute)


@dataclass(frozen=True)
class MonthlyRule:
    """Fires on ``day`` of every month, clamped to the month's length."""
    day: int
    hour: int
    minute: int
    periodicity = Periodicity.MONTHLY

    def __post_init__(self):
        _check_day(self.day)
        _check_time(self.hour, self.minute)


@dataclass(frozen=True)
class YearlyRule:
    """Fires every year on ``month`` (0 = January) / ``day``."""
    month: int
    day: int
    hour: int
    minute: int
    periodicity = Periodicity.YEARLY

    def __post_init__(self):
        if not 0 <= self.month <= 11:
            raise ValidationError(f"month must be in 0..11, got {self.month}")
        _check_day(self.day)
        _check_time(self.hour, self.minute)


Rule = Union[OneTimeRule, WeekdaysRule, MonthlyRule, YearlyRule]


@dataclass(frozen=True)
class NotificationContent:
    """Payload handed to the notification dispatcher."""
    title: str
    body: str
    reminder_id: Optional[str] = None


@dataclass(frozen=True)
class Reminder:
    """Reminder record: identity, rule, flags and computed trigger state."""

    title: str
    rule: Rule
    id: Optional[str] = None
    continuous_alert: bool = False
    enabled: bool = True

    # Computed trigger state
    next_reminder_date: Optional[datetime] = None
    prev_reminder_date: Optional[datetime] = None
    next_trigger_date: Optional[datetime] = None
    last_trigger_date: Optional[datetime] = None
    last_acknowledged: Optional[datetime] = None

    notification_id: Optional[str] = None
    deleted_action_id: Optional[str] = None

    # Wire fields carried for variants that do not use them
    extras: dict = field(default_factory=dict, compare=False, repr=False)

    @property
    def periodicity(self) -> Periodicity:
        return self.rule.periodicity

    @property
    def is_deleted(self) -> bool:
        return self.deleted_action_id is not None

    def clear_triggers(self) -> 'Reminder':
        """Return a copy with every computed trigger field unset."""
        return replace(
            self,
            next_reminder_date=None,
            prev_reminder_date=None,
            next_trigger_date=None,
            last_trigger_date=None,
            last_acknowledged=None,
        )

    def notification_content(self, title: str) -> NotificationContent:
        return NotificationContent(title=title, body=self.title, reminder_id=self.id)

    def __str__(self) -> str:
        """String representation."""
        if self.is_deleted:
            status = "✗"
        else:
            status = "●" if self.enabled else "○"
        when = (
            self.next_trigger_date.strftime("%Y-%m-%d %H:%M")
            if self.next_trigger_date else "--"
        )
        return f"{status} {self.title} [{self.periodicity.value}] @ {when}"
