from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

from resupify.errors import ACTION_IN_PROGRESS, ConflictError

ActionStatus = Literal["started", "succeeded", "failed"]


@dataclass(slots=True)
class IdempotencyRecord:
    status: ActionStatus
    attempt: int
    expires_at: float
    result: Any = None


def build_action_key(user_id: int, operation: str, *parts: object, action_id: str) -> str:
    scope = ":".join("-" if part is None else str(part) for part in parts)
    return f"{user_id}:{operation}:{scope}:{action_id}"


class IdempotencyStore:
    def __init__(self, ttl_sec: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_sec = ttl_sec
        self._clock = clock
        self._records: dict[str, IdempotencyRecord] = {}
        self._lock = threading.Lock()

    def begin(self, key: str) -> IdempotencyRecord:
        """Claim ``key``; a succeeded record is returned as-is so the caller can replay its result."""
        now = self._clock()
        with self._lock:
            self._evict(now)
            record = self._records.get(key)
            if record is not None and record.status == "started":
                raise ConflictError("an identical action is already in progress", code=ACTION_IN_PROGRESS)
            if record is not None and record.status == "succeeded":
                return record

            attempt = record.attempt + 1 if record is not None else 1
            record = IdempotencyRecord(status="started", attempt=attempt, expires_at=now + self.ttl_sec)
            self._records[key] = record
            return record

    def succeed(self, key: str, result: Any) -> None:
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return
            record.status = "succeeded"
            record.result = result
            record.expires_at = self._clock() + self.ttl_sec

    def fail(self, key: str) -> None:
        with self._lock:
            record = self._records.get(key)
            if record is not None:
                record.status = "failed"

    def reset(self) -> None:
        with self._lock:
            self._records.clear()

    def _evict(self, now: float) -> None:
        expired = [key for key, record in self._records.items() if record.expires_at <= now]
        for key in expired:
            del self._records[key]
