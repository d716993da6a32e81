from __future__ import annotations

from resupify.config import get_settings
from resupify.core.events import EventBus
from resupify.core.idempotency import IdempotencyStore
from resupify.core.rate_limiter import SlidingWindowRateLimiter

_EVENT_BUS: EventBus | None = None
_RATE_LIMITER: SlidingWindowRateLimiter | None = None
_IDEMPOTENCY: IdempotencyStore | None = None


def get_event_bus() -> EventBus:
    global _EVENT_BUS
    if _EVENT_BUS is None:
        _EVENT_BUS = EventBus()
    return _EVENT_BUS


def get_rate_limiter() -> SlidingWindowRateLimiter:
    global _RATE_LIMITER
    if _RATE_LIMITER is None:
        _RATE_LIMITER = SlidingWindowRateLimiter()
    return _RATE_LIMITER


def get_idempotency_store() -> IdempotencyStore:
    global _IDEMPOTENCY
    if _IDEMPOTENCY is None:
        _IDEMPOTENCY = IdempotencyStore(ttl_sec=get_settings().idempotency_ttl_sec)
    return _IDEMPOTENCY


def reset_runtime_state() -> None:
    get_rate_limiter().reset()
    get_idempotency_store().reset()
    get_event_bus().clear()
