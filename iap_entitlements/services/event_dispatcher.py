"""State change publishing to coordination-layer subscribers.

Responsibilities:
- Keep the subscriber list per state topic
- Deliver StateChangeEvent objects synchronously, in publication order
- Isolate the publisher from failing subscribers
"""

from threading import RLock
from typing import Any, Callable, Optional

from iap_entitlements.logging_config import get_logger
from iap_entitlements.models.events import StateChangeEvent, StateTopic
from iap_entitlements.utils.clock import system_clock

logger = get_logger(__name__)

Subscriber = Callable[[StateChangeEvent], None]


class StateEventDispatcher:
    """Dispatches state change events to subscribers.

    Each state bundle (catalog, entitlements, pending set, status, ledger)
    publishes through one dispatcher; subscribers register for a single topic
    or for all of them.

    Thread-safe.
    """

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        """Initialize event dispatcher.

        Args:
            clock: Callable returning current time in millis (defaults to wall clock)
        """
        self._lock = RLock()
        self._subscribers: list[tuple[Optional[StateTopic], Subscriber]] = []
        self._clock = clock or system_clock

    def subscribe(
        self, callback: Subscriber, topic: Optional[StateTopic] = None
    ) -> Callable[[], None]:
        """Register a subscriber.

        Args:
            callback: Called with every matching event
            topic: Topic to receive, or None for all topics

        Returns:
            Callable that removes the subscription
        """
        entry = (topic, callback)
        with self._lock:
            self._subscribers.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return unsubscribe

    def subscriber_count(self, topic: Optional[StateTopic] = None) -> int:
        """Number of subscribers that would receive an event for ``topic``."""
        with self._lock:
            if topic is None:
                return len(self._subscribers)
            return sum(1 for t, _ in self._subscribers if t is None or t == topic)

    def publish(self, topic: StateTopic, **payload: Any) -> bool:
        """Publish a state change event.

        Args:
            topic: State bundle that changed
            **payload: New value of the bundle

        Returns:
            True if every subscriber handled the event, False otherwise
        """
        event = StateChangeEvent(
            topic=topic,
            payload=payload,
            event_time_millis=self._clock(),
        )

        with self._lock:
            targets = [cb for t, cb in self._subscribers if t is None or t == topic]

        delivered = True
        for callback in targets:
            try:
                callback(event)
            except Exception as e:
                delivered = False
                logger.error(
                    "state_event_subscriber_failed",
                    topic=topic.value,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )

        logger.debug("state_event_published", topic=topic.value, subscribers=len(targets))
        return delivered
