from __future__ import annotations

import pytest

from resupify.core.idempotency import IdempotencyStore, build_action_key
from resupify.errors import ConflictError


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_action_key_includes_scope() -> None:
    assert build_action_key(7, "evidence", 3, None, action_id="abc") == "7:evidence:3:-:abc"


def test_in_flight_action_is_rejected() -> None:
    store = IdempotencyStore(ttl_sec=300, clock=FakeClock())
    store.begin("key")

    with pytest.raises(ConflictError) as exc_info:
        store.begin("key")

    assert exc_info.value.code == "ACTION_IN_PROGRESS"


def test_succeeded_action_replays_result() -> None:
    store = IdempotencyStore(ttl_sec=300, clock=FakeClock())
    store.begin("key")
    store.succeed("key", {"run_id": 1})

    record = store.begin("key")

    assert record.status == "succeeded"
    assert record.result == {"run_id": 1}


def test_failed_action_can_retry_with_new_attempt() -> None:
    store = IdempotencyStore(ttl_sec=300, clock=FakeClock())
    assert store.begin("key").attempt == 1
    store.fail("key")

    assert store.begin("key").attempt == 2


def test_records_expire_after_ttl() -> None:
    clock = FakeClock()
    store = IdempotencyStore(ttl_sec=300, clock=clock)
    store.begin("key")
    store.succeed("key", "done")

    clock.now += 301
    record = store.begin("key")

    assert record.status == "started"
    assert record.attempt == 1
