"""
Event bus for pub/sub messaging between components.
Each service owns its own bus, so independent engines never share listeners.
"""

import inspect
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass
from datetime import datetime
from config.logging_config import get_logger
from config.settings import EventType

logger = get_logger(__name__)


@dataclass
class Event:
    """Event data structure."""
    event_type: EventType
    data: Any
    timestamp: datetime = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now()


Listener = Callable[[Event], Any]


class EventBus:
    """
    Publish/subscribe bus with plain or coroutine listeners.
    A failing listener is logged and never aborts the publisher.
    """

    def __init__(self):
        """Initialize the event bus."""
        self.subscribers: Dict[EventType, List[Listener]] = {}
        self.all_subscribers: List[Listener] = []  # Subscribe to all events
        logger.debug("EventBus initialized")

    def subscribe(self, listener: Listener,
                  event_type: Optional[EventType] = None) -> Listener:
        """
        Subscribe to events.

        Args:
            listener: Callable (or coroutine function) taking an Event
            event_type: Specific event type to subscribe to (None = all events)

        Returns:
            The listener, so this can be used as a decorator
        """
        if event_type is None:
            self.all_subscribers.append(listener)
            logger.debug("New subscriber added for ALL events")
        else:
            self.subscribers.setdefault(event_type, []).append(listener)
            logger.debug(f"New subscriber added for {event_type.value}")

        return listener

    def unsubscribe(self, listener: Listener,
                    event_type: Optional[EventType] = None) -> None:
        """
        Unsubscribe from events.

        Args:
            listener: Listener to remove
            event_type: Event type to unsubscribe from (None = all)
        """
        if event_type is None:
            if listener in self.all_subscribers:
                self.all_subscribers.remove(listener)
                logger.debug("Subscriber removed from ALL events")
        else:
            listeners = self.subscribers.get(event_type, [])
            if listener in listeners:
                listeners.remove(listener)
                logger.debug(f"Subscriber removed from {event_type.value}")

    async def publish(self, event_type: EventType, data: Any = None) -> None:
        """
        Publish an event to all subscribers.

        Args:
            event_type: Type of event
            data: Event data payload
        """
        event = Event(event_type=event_type, data=data)

        logger.debug(f"Publishing event: {event_type.value}")

        # Snapshot so listeners may unsubscribe while being notified
        targets = list(self.subscribers.get(event_type, [])) + list(self.all_subscribers)

        for listener in targets:
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    f"Listener {getattr(listener, '__name__', listener)!r} failed "
                    f"on {event_type.value}: {e}",
                    exc_info=True
                )

    def subscriber_count(self) -> int:
        return len(self.all_subscribers) + sum(len(v) for v in self.subscribers.values())

    def clear_all(self) -> None:
        """Clear all subscribers (for cleanup)."""
        self.subscribers.clear()
        self.all_subscribers.clear()
        logger.info("All event bus subscribers cleared")
