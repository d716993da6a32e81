from __future__ import annotations

import math
import threading
import time
from collections import defaultdict, deque
from collections.abc import Callable

from resupify.errors import RateLimitError


class SlidingWindowRateLimiter:
    """In-process per-key sliding window; safe to share across request threads."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._hits: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def hit(self, key: str, *, limit: int, window_sec: float) -> int:
        """Record one call for ``key`` and return the calls left in the window."""
        now = self._clock()
        with self._lock:
            hits = self._hits[key]
            while hits and now - hits[0] >= window_sec:
                hits.popleft()

            if len(hits) >= limit:
                retry_after = max(1, math.ceil(window_sec - (now - hits[0])))
                raise RateLimitError(retry_after_seconds=retry_after)

            hits.append(now)
            return limit - len(hits)

    def remaining(self, key: str, *, limit: int, window_sec: float) -> int:
        now = self._clock()
        with self._lock:
            hits = self._hits.get(key)
            if not hits:
                return limit
            return max(0, limit - sum(1 for stamp in hits if now - stamp < window_sec))

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
