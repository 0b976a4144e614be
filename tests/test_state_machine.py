from dataclasses import replace
from datetime import datetime, timedelta

from src.core.state_machine import LifecycleTracker, ReminderState, classify
from src.reminder.models import Reminder, Weekday, WeekdaysRule

NOW = datetime(2026, 10, 15, 18, 0)

BASE = Reminder(
    id="r1",
    title="Pills",
    rule=WeekdaysRule(weekdays=set(Weekday), hour=18, minute=0),
    continuous_alert=True,
    next_reminder_date=NOW + timedelta(days=1),
    next_trigger_date=NOW + timedelta(days=1),
)


def test_classify_states():
    assert classify(None, NOW) is ReminderState.DRAFT
    assert classify(replace(BASE, id=None), NOW) is ReminderState.DRAFT
    assert classify(BASE, NOW) is ReminderState.SCHEDULED
    assert classify(replace(BASE, enabled=False), NOW) is ReminderState.DISABLED
    assert classify(replace(BASE, deleted_action_id="x"), NOW) is ReminderState.DELETED
    assert classify(replace(BASE, next_trigger_date=None), NOW) is ReminderState.EXPIRED


def test_classify_escalating():
    escalating = replace(
        BASE,
        prev_reminder_date=NOW,
        last_trigger_date=NOW,
        next_trigger_date=NOW + timedelta(minutes=5),
    )
    assert classify(escalating, NOW + timedelta(minutes=1)) is ReminderState.ESCALATING


def test_tracker_records_valid_transition():
    tracker = LifecycleTracker()

    state = tracker.record(BASE, replace(BASE, enabled=False), NOW)

    assert state is ReminderState.DISABLED
    assert tracker.invalid_count == 0
    assert tracker.last_states() == {"r1": ReminderState.DISABLED}


def test_tracker_ignores_unchanged_state():
    tracker = LifecycleTracker()
    assert tracker.record(BASE, replace(BASE, title="Vitamins"), NOW) is None
    assert tracker.get_history() == []


def test_tracker_flags_invalid_transition():
    tracker = LifecycleTracker()

    tracker.record(BASE, None, NOW)

    assert tracker.invalid_count == 1
    assert tracker.get_history("r1")[0][1:3] == (ReminderState.SCHEDULED, ReminderState.PURGED)


def test_tracker_history_is_bounded():
    tracker = LifecycleTracker(max_history=3)
    disabled = replace(BASE, enabled=False)
    for _ in range(5):
        tracker.record(BASE, disabled, NOW)

    assert len(tracker.history) == 3
