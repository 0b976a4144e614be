"""
Exception hierarchy for the reminder engine.
"""


class ReminderError(Exception):
    """Base class for all reminder engine errors."""


class ValidationError(ReminderError):
    """A reminder or rule cannot be accepted as given."""


class StorageError(ReminderError):
    """Reading or writing the reminder collection failed."""


class DispatchError(ReminderError):
    """Scheduling, cancelling or dismissing a notification failed."""
