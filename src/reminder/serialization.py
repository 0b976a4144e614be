"""
Storage serialization for the reminder collection.

Records use the camelCase wire shape shared with the stored collection;
every date-valued field is an ISO-8601 string. Timestamps carrying an
offset (e.g. a trailing ``Z``) are converted to local wall-clock time.
"""

import json
from datetime import datetime, time
from typing import Any, Dict, Iterable, List, Optional

from dateutil.parser import isoparse

from src.reminder.errors import StorageError, ValidationError
from src.reminder.models import (
    MonthlyRule,
    OneTimeRule,
    Periodicity,
    Reminder,
    Rule,
    Weekday,
    WeekdaysRule,
    YearlyRule,
)

# Record key -> Reminder attribute
_DATE_FIELDS = {
    'nextReminderDate': 'next_reminder_date',
    'prevReminderDate': 'prev_reminder_date',
    'nextTriggerDate': 'next_trigger_date',
    'lastTriggerDate': 'last_trigger_date',
    'lastAcknowledged': 'last_acknowledged',
}

# Rule payload fields every record carries, with their defaults
_RULE_DEFAULTS = {
    'date': None,
    'weekdays': [],
    'day': 1,
    'month': 0,
}


def format_instant(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_instant(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = isoparse(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _rule_payload(rule: Rule) -> Dict[str, Any]:
    if isinstance(rule, OneTimeRule):
        return {'date': format_instant(datetime.combine(rule.date, time(rule.hour, rule.minute)))}
    if isinstance(rule, WeekdaysRule):
        ordered = sorted(rule.weekdays, key=lambda d: d.value)
        return {'weekdays': [d.label for d in ordered]}
    if isinstance(rule, MonthlyRule):
        return {'day': rule.day}
    if isinstance(rule, YearlyRule):
        return {'month': rule.month, 'day': rule.day}
    raise TypeError(f"Unsupported rule type: {type(rule).__name__}")


def _rule_from_record(data: Dict[str, Any]) -> Rule:
    periodicity = Periodicity(data['periodicity'])
    hour = int(data['hour'])
    minute = int(data['minute'])

    if periodicity is Periodicity.ONE_TIME:
        when = parse_instant(data.get('date'))
        return OneTimeRule(date=when.date() if when else None, hour=hour, minute=minute)
    if periodicity is Periodicity.WEEKDAYS:
        days = frozenset(Weekday.from_label(d) for d in data.get('weekdays') or [])
        return WeekdaysRule(weekdays=days, hour=hour, minute=minute)
    if periodicity is Periodicity.MONTHLY:
        return MonthlyRule(day=int(data['day']), hour=hour, minute=minute)
    return YearlyRule(month=int(data['month']), day=int(data['day']), hour=hour, minute=minute)


def reminder_to_record(reminder: Reminder) -> Dict[str, Any]:
    """Convert a Reminder to its stored record."""
    record = {'id': reminder.id, 'title': reminder.title, 'periodicity': reminder.periodicity.value}

    # Unused payload fields keep whatever the record last held
    for key, default in _RULE_DEFAULTS.items():
        record[key] = reminder.extras.get(key, default)
    record.update(_rule_payload(reminder.rule))

    record.update({
        'hour': reminder.rule.hour,
        'minute': reminder.rule.minute,
        'continuousAlert': reminder.continuous_alert,
        'enabled': reminder.enabled,
        'notificationId': reminder.notification_id,
        'deletedActionId': reminder.deleted_action_id,
    })
    for key, attr in _DATE_FIELDS.items():
        record[key] = format_instant(getattr(reminder, attr))

    return record


def reminder_from_record(data: Dict[str, Any]) -> Reminder:
    """
    Build a Reminder from a stored record.

    Raises:
        StorageError: If the record is malformed
    """
    try:
        rule = _rule_from_record(data)
        used = _rule_payload(rule)
        extras = {
            key: data[key] for key in _RULE_DEFAULTS
            if key in data and key not in used
        }
        return Reminder(
            id=data.get('id'),
            title=data.get('title', ''),
            rule=rule,
            continuous_alert=bool(data.get('continuousAlert', False)),
            enabled=bool(data.get('enabled', True)),
            notification_id=data.get('notificationId'),
            deleted_action_id=data.get('deletedActionId'),
            extras=extras,
            **{attr: parse_instant(data.get(key)) for key, attr in _DATE_FIELDS.items()},
        )
    except (KeyError, TypeError, ValueError, ValidationError) as e:
        raise StorageError(f"Malformed reminder record {data.get('id')!r}: {e}") from e


def encode_collection(reminders: Iterable[Reminder]) -> bytes:
    """Serialize the whole collection to a JSON array."""
    return json.dumps([reminder_to_record(r) for r in reminders]).encode('utf-8')


def decode_collection(blob: Optional[bytes]) -> List[Reminder]:
    """
    Deserialize a stored collection; a missing blob is an empty collection.

    Raises:
        StorageError: If the blob is not a JSON array of valid records
    """
    if not blob:
        return []

    try:
        records = json.loads(blob)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise StorageError(f"Stored reminder collection is not valid JSON: {e}") from e

    if not isinstance(records, list):
        raise StorageError("Stored reminder collection is not a JSON array")

    for record in records:
        if not isinstance(record, dict):
            raise StorageError(f"Stored reminder record is not a JSON object: {record!r}")

    return [reminder_from_record(record) for record in records]
