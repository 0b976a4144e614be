import os
import tempfile
from datetime import datetime
from typing import List, Optional, Tuple

import pytest

# Keep data and log directories out of the working tree
_SCRATCH = tempfile.mkdtemp(prefix="chime-tests-")
os.environ.setdefault("CHIME_DATA_DIR", os.path.join(_SCRATCH, "data"))
os.environ.setdefault("CHIME_LOGS_DIR", os.path.join(_SCRATCH, "logs"))

from src.core.event_bus import EventBus  # noqa: E402
from src.reminder.dispatcher import NotificationDispatcher  # noqa: E402
from src.reminder.errors import DispatchError  # noqa: E402
from src.reminder.models import NotificationContent  # noqa: E402
from src.reminder.repository import InMemoryReminderStore, ReminderRepository  # noqa: E402
from src.reminder.service import ReminderService  # noqa: E402


class RecordingDispatcher(NotificationDispatcher):
    """Dispatcher double that records every call."""

    def __init__(self):
        self.scheduled: List[Tuple[str, NotificationContent, Optional[datetime]]] = []
        self.cancelled: List[str] = []
        self.dismissed: List[str] = []
        self.fail = False
        self.pending: set = set()
        self._counter = 0

    def schedule(self, content, fire_at=None):
        if self.fail:
            raise DispatchError("notifications unavailable")
        self._counter += 1
        handle = f"n{self._counter}"
        self.scheduled.append((handle, content, fire_at))
        if fire_at is not None:
            self.pending.add(handle)
        return handle

    def cancel(self, handle):
        if self.fail:
            raise DispatchError("notifications unavailable")
        self.cancelled.append(handle)
        self.pending.discard(handle)

    def dismiss(self, handle):
        if self.fail:
            raise DispatchError("notifications unavailable")
        self.dismissed.append(handle)

    def cancel_all(self):
        if self.fail:
            raise DispatchError("notifications unavailable")
        self.cancelled.extend(handle for handle, _, _ in self.scheduled)
        self.pending.clear()

    def is_pending(self, handle):
        return handle in self.pending

    def immediate(self):
        return [entry for entry in self.scheduled if entry[2] is None]

    def live(self):
        """Handles neither cancelled nor dismissed."""
        released = set(self.cancelled) | set(self.dismissed)
        return [handle for handle, _, _ in self.scheduled if handle not in released]


class RecordingWaker:
    """Waker double capturing every arming."""

    def __init__(self):
        self.armed: List[Optional[datetime]] = []

    def arm(self, when):
        self.armed.append(when)

    def disarm(self):
        self.armed.append(None)

    @property
    def next_wake(self):
        return self.armed[-1] if self.armed else None


@pytest.fixture
def now():
    # Thursday
    return datetime(2026, 10, 15, 10, 0)


@pytest.fixture
def store():
    return InMemoryReminderStore()


@pytest.fixture
def repository(store):
    return ReminderRepository(store)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def waker():
    return RecordingWaker()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def service(repository, dispatcher, event_bus, waker):
    return ReminderService(repository, dispatcher, event_bus=event_bus, waker=waker)
