import json
from datetime import date, datetime, timezone

import pytest

from src.reminder.errors import StorageError
from src.reminder.models import (
    MonthlyRule,
    OneTimeRule,
    Periodicity,
    Reminder,
    Weekday,
    WeekdaysRule,
    YearlyRule,
)
from src.reminder.serialization import (
    decode_collection,
    encode_collection,
    parse_instant,
    reminder_from_record,
    reminder_to_record,
)

RECORD_KEYS = {
    'id', 'title', 'periodicity', 'date', 'weekdays', 'day', 'month', 'hour',
    'minute', 'continuousAlert', 'enabled', 'notificationId', 'lastTriggerDate',
    'nextTriggerDate', 'nextReminderDate', 'prevReminderDate', 'lastAcknowledged',
    'deletedActionId',
}


def test_record_has_full_wire_shape():
    reminder = Reminder(
        id="r1",
        title="Stand-up",
        rule=WeekdaysRule(weekdays={Weekday.WED, Weekday.MON}, hour=9, minute=15),
        continuous_alert=True,
        next_reminder_date=datetime(2026, 10, 19, 9, 15),
        next_trigger_date=datetime(2026, 10, 19, 9, 15),
        notification_id="n1",
    )
    record = reminder_to_record(reminder)

    assert set(record) == RECORD_KEYS
    assert record['periodicity'] == "Weekdays"
    assert record['weekdays'] == ["Mon", "Wed"]
    assert record['date'] is None
    assert record['hour'] == 9 and record['minute'] == 15
    assert record['continuousAlert'] is True
    assert record['nextTriggerDate'] == "2026-10-19T09:15:00"
    assert record['lastAcknowledged'] is None
    assert record['deletedActionId'] is None


def test_one_time_date_carries_fire_time():
    reminder = Reminder(title="Dentist", rule=OneTimeRule(date=date(2026, 11, 3), hour=14, minute=30))
    assert reminder_to_record(reminder)['date'] == "2026-11-03T14:30:00"


def test_yearly_month_is_zero_based_on_the_wire():
    record = reminder_to_record(Reminder(title="Birthday", rule=YearlyRule(month=0, day=7, hour=8, minute=0)))
    assert record['periodicity'] == "Yearly"
    assert record['month'] == 0
    assert record['day'] == 7


def test_record_decodes_into_tagged_rule():
    record = {
        'id': "r2", 'title': "Rent", 'periodicity': "Monthly", 'date': None,
        'weekdays': [], 'day': 31, 'month': 0, 'hour': 9, 'minute': 0,
        'continuousAlert': False, 'enabled': True, 'notificationId': None,
        'nextReminderDate': "2026-10-31T09:00:00", 'prevReminderDate': None,
        'nextTriggerDate': "2026-10-31T09:00:00", 'lastTriggerDate': None,
        'lastAcknowledged': None, 'deletedActionId': None,
    }
    reminder = reminder_from_record(record)

    assert reminder.rule == MonthlyRule(day=31, hour=9, minute=0)
    assert reminder.periodicity is Periodicity.MONTHLY
    assert reminder.next_trigger_date == datetime(2026, 10, 31, 9, 0)
    assert reminder_to_record(reminder) == record


def test_unused_payload_fields_survive_a_rewrite():
    record = reminder_to_record(Reminder(title="x", rule=MonthlyRule(day=3, hour=1, minute=2)))
    record['weekdays'] = ["Tue"]
    record['date'] = "2026-01-01T00:00:00"

    rewritten = reminder_to_record(reminder_from_record(record))
    assert rewritten['weekdays'] == ["Tue"]
    assert rewritten['date'] == "2026-01-01T00:00:00"


def test_utc_timestamps_become_local_wall_clock():
    parsed = parse_instant("2026-10-15T08:00:00.000Z")
    expected = datetime(2026, 10, 15, 8, 0, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
    assert parsed == expected
    assert parsed.tzinfo is None


def test_records_written_by_the_mobile_app_are_readable():
    record = {
        'id': "5b0c", 'title': "Water plants", 'periodicity': "Weekdays",
        'weekdays': ["Mon", "Thu"], 'hour': 18, 'minute': 0,
        'continuousAlert': True, 'enabled': True,
        'nextReminderDate': "2026-10-15T16:00:00.000Z",
        'lastTriggerDate': "2026-10-15T16:00:00.000Z",
    }
    reminder = reminder_from_record(record)
    assert reminder.rule.weekdays == frozenset({Weekday.MON, Weekday.THU})
    assert reminder.next_reminder_date is not None
    assert reminder.deleted_action_id is None


@pytest.mark.parametrize("record", [
    {'id': "a", 'title': "x", 'periodicity': "Hourly", 'hour': 1, 'minute': 0},
    {'id': "b", 'title': "x", 'periodicity': "Monthly", 'day': 40, 'hour': 1, 'minute': 0},
    {'id': "c", 'title': "x", 'periodicity': "One-time", 'date': None, 'hour': 1, 'minute': 0},
    {'id': "d", 'title': "x", 'periodicity': "Weekdays", 'weekdays': ["Funday"], 'hour': 1, 'minute': 0},
    {'id': "e", 'title': "x", 'periodicity': "Monthly", 'day': 1},
])
def test_malformed_records_raise_storage_error(record):
    with pytest.raises(StorageError):
        reminder_from_record(record)


def test_collection_encodes_to_json_array():
    reminders = [
        Reminder(id="a", title="A", rule=MonthlyRule(day=1, hour=9, minute=0)),
        Reminder(id="b", title="B", rule=YearlyRule(month=3, day=2, hour=9, minute=0)),
    ]
    blob = encode_collection(reminders)
    assert [r['id'] for r in json.loads(blob)] == ["a", "b"]
    assert decode_collection(blob) == reminders


def test_missing_collection_is_empty():
    assert decode_collection(None) == []
    assert decode_collection(b"") == []


@pytest.mark.parametrize("blob", [b"{not json", b'{"id": "a"}', b"\xff\xfe", b"[1]", b'["a", null]'])
def test_corrupt_collection_raises_storage_error(blob):
    with pytest.raises(StorageError):
        decode_collection(blob)
