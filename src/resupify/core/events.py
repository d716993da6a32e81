from __future__ import annotations

import asyncio
import logging
import threading
from collections import OrderedDict, defaultdict
from collections.abc import AsyncIterator
from typing import Any

logger = logging.getLogger(__name__)

Subscriber = tuple[asyncio.AbstractEventLoop, "asyncio.Queue[dict[str, Any]]"]


class EventBus:
    """Progress events keyed by topic id (a batch sprint id).

    ``publish`` is synchronous and may be called from worker threads; subscribers get a
    replay of the topic's recent history before live events. History is kept for the
    ``max_topics`` most recently published topics; older topics without subscribers are evicted.
    """

    def __init__(self, history_limit: int = 200, max_topics: int = 256) -> None:
        self._subscribers: dict[int, list[Subscriber]] = defaultdict(list)
        self._history: OrderedDict[int, list[dict[str, Any]]] = OrderedDict()
        self._history_limit = history_limit
        self._max_topics = max_topics
        self._lock = threading.Lock()

    def publish(self, topic_id: int, event: dict[str, Any]) -> None:
        with self._lock:
            history = self._history.setdefault(topic_id, [])
            self._history.move_to_end(topic_id)
            history.append(event)
            del history[: -self._history_limit]
            self._evict_topics()
            targets = list(self._subscribers.get(topic_id, []))

        for loop, queue in targets:
            try:
                loop.call_soon_threadsafe(queue.put_nowait, event)
            except RuntimeError:
                logger.warning("Dropping subscriber on closed event loop topic=%s", topic_id)
                self._unsubscribe(topic_id, (loop, queue))

    async def subscribe(self, topic_id: int) -> AsyncIterator[dict[str, Any]]:
        subscriber: Subscriber = (asyncio.get_running_loop(), asyncio.Queue())
        with self._lock:
            backlog = list(self._history.get(topic_id, []))
            self._subscribers[topic_id].append(subscriber)

        try:
            for event in backlog:
                yield event
            while True:
                event = await subscriber[1].get()
                yield event
        finally:
            self._unsubscribe(topic_id, subscriber)

    def history(self, topic_id: int) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._history.get(topic_id, []))

    def clear(self) -> None:
        with self._lock:
            self._history.clear()
            self._subscribers.clear()

    def _evict_topics(self) -> None:
        for stale_id in list(self._history)[: max(0, len(self._history) - self._max_topics)]:
            if self._subscribers.get(stale_id):
                continue
            del self._history[stale_id]
            self._subscribers.pop(stale_id, None)

    def _unsubscribe(self, topic_id: int, subscriber: Subscriber) -> None:
        with self._lock:
            if subscriber in self._subscribers.get(topic_id, []):
                self._subscribers[topic_id].remove(subscriber)
            if not self._subscribers.get(topic_id):
                self._subscribers.pop(topic_id, None)
