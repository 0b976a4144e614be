from datetime import datetime, timedelta

import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from src.reminder.dispatcher import SchedulerNotificationDispatcher
from src.reminder.errors import DispatchError
from src.reminder.models import NotificationContent

CONTENT = NotificationContent(title="Reminder", body="Pills", reminder_id="r1")


@pytest.fixture
def scheduler():
    # Never started: jobs stay pending and can be inspected
    return BackgroundScheduler()


@pytest.fixture
def presented():
    return []


@pytest.fixture
def dispatcher(scheduler, presented):
    return SchedulerNotificationDispatcher(
        scheduler, presenter=lambda handle, content: presented.append((handle, content))
    )


def test_future_notification_becomes_pending_job(dispatcher, presented):
    handle = dispatcher.schedule(CONTENT, datetime.now() + timedelta(days=1))

    assert dispatcher.is_pending(handle)
    assert presented == []


def test_immediate_notification_is_presented(dispatcher, presented):
    handle = dispatcher.schedule(CONTENT)

    assert presented == [(handle, CONTENT)]
    assert handle in dispatcher.presented
    assert not dispatcher.is_pending(handle)


def test_past_fire_time_is_presented_immediately(dispatcher, presented):
    handle = dispatcher.schedule(CONTENT, datetime.now() - timedelta(minutes=1))
    assert presented == [(handle, CONTENT)]


def test_cancel_removes_pending_job(dispatcher):
    handle = dispatcher.schedule(CONTENT, datetime.now() + timedelta(days=1))

    dispatcher.cancel(handle)

    assert not dispatcher.is_pending(handle)


def test_cancel_of_unknown_handle_is_harmless(dispatcher):
    dispatcher.cancel("notification_missing")


def test_dismiss_clears_presented_notification(dispatcher):
    handle = dispatcher.schedule(CONTENT)

    dispatcher.dismiss(handle)
    dispatcher.dismiss(handle)

    assert handle not in dispatcher.presented


def test_cancel_all_only_touches_notification_jobs(dispatcher, scheduler):
    scheduler.add_job(print, "date", run_date=datetime.now() + timedelta(days=1), id="other")
    first = dispatcher.schedule(CONTENT, datetime.now() + timedelta(days=1))
    second = dispatcher.schedule(CONTENT, datetime.now() + timedelta(days=2))

    dispatcher.cancel_all()

    assert not dispatcher.is_pending(first)
    assert not dispatcher.is_pending(second)
    assert scheduler.get_job("other") is not None


def test_scheduler_failure_raises_dispatch_error(dispatcher, scheduler, monkeypatch):
    def fail(*args, **kwargs):
        raise RuntimeError("scheduler down")

    monkeypatch.setattr(scheduler, "add_job", fail)

    with pytest.raises(DispatchError):
        dispatcher.schedule(CONTENT, datetime.now() + timedelta(days=1))


def test_presenter_failure_is_contained(scheduler):
    def broken(handle, content):
        raise RuntimeError("no display")

    dispatcher = SchedulerNotificationDispatcher(scheduler, presenter=broken)
    handle = dispatcher.schedule(CONTENT)

    assert handle in dispatcher.presented
