from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

logger = logging.getLogger(__name__)


class InvalidationTopic(str, Enum):
    INVENTORY_CHANGED = 'inventory-changed'
    LEDGER_CHANGED = 'ledger-changed'
    RETURNS_CHANGED = 'returns-changed'


Subscriber = Callable[[str], None]


def _topic_key(topic: InvalidationTopic | str) -> str:
    return topic.value if isinstance(topic, InvalidationTopic) else str(topic)


class InvalidationBus:
    """Named-topic publish/subscribe for cache invalidation. Publishing never waits for or reports on subscribers."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscriber]] = {}

    def subscribe(self, topic: InvalidationTopic | str, callback: Subscriber) -> Callable[[], None]:
        key = _topic_key(topic)
        self._subscribers.setdefault(key, []).append(callback)

        def _unsubscribe() -> None:
            callbacks = self._subscribers.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return _unsubscribe

    def publish(self, topic: InvalidationTopic | str) -> None:
        key = _topic_key(topic)
        for callback in list(self._subscribers.get(key, [])):
            try:
                callback(key)
            except Exception:
                logger.exception('Invalidation subscriber failed for topic %s', key)
