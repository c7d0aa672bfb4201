"""
Topic-keyed publish/subscribe registry.

Lets application code react to data changes without polling. Delivery is
synchronous; a failing callback is logged and skipped.
"""

import logging
import threading
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

CONFLICT_TOPIC = "conflict"
INCONSISTENCY_TOPIC = "inconsistency"

Handler = Callable[[Any], None]


class NotificationBus:
    """Publish/subscribe registry keyed by topic."""

    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, topic: str, callback: Handler) -> Callable[[], None]:
        """
        Register a callback for a topic.

        Args:
            topic: Topic name, usually a resource type
            callback: Called with each published event

        Returns:
            A function that removes this subscription
        """
        with self._lock:
            self._subscribers.setdefault(topic, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(topic)
                if not callbacks or callback not in callbacks:
                    return
                callbacks.remove(callback)
                if not callbacks:
                    del self._subscribers[topic]

        return unsubscribe

    def publish(self, topic: str, event: Any) -> int:
        """
        Deliver an event to every callback subscribed to the topic.

        Subscriptions added while delivering are not called for this event.

        Args:
            topic: Topic name
            event: Event payload

        Returns:
            Number of callbacks that handled the event without raising
        """
        with self._lock:
            callbacks = list(self._subscribers.get(topic, ()))

        delivered = 0
        for callback in callbacks:
            try:
                callback(event)
                delivered += 1
            except Exception as e:
                logger.error(f"Subscriber callback error on '{topic}': {e}")
        return delivered

    def topics(self) -> List[str]:
        with self._lock:
            return list(self._subscribers.keys())

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, ()))

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()
