from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from resupify.config import Settings, get_settings
from resupify.core.idempotency import IdempotencyStore, build_action_key
from resupify.core.rate_limiter import SlidingWindowRateLimiter
from resupify.core.runtime import get_idempotency_store, get_rate_limiter
from resupify.db.models import CreditLedgerEntry
from resupify.db.repositories import Repository, short_hash
from resupify.errors import RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class Charge:
    user_id: int
    operation: str
    cost: int
    ledger_entry_id: int | None = None
    refunded: int = 0


class CreditGate:
    """Wraps a metered operation: idempotency, rate limit, debit, then refund on any failure."""

    def __init__(
        self,
        repo: Repository,
        settings: Settings | None = None,
        *,
        limiter: SlidingWindowRateLimiter | None = None,
        idempotency: IdempotencyStore | None = None,
    ):
        self.repo = repo
        self.settings = settings or get_settings()
        self.limiter = limiter or get_rate_limiter()
        self.idempotency = idempotency or get_idempotency_store()

    def cost_of(self, operation: str) -> int:
        return int(getattr(self.settings, f"credit_cost_{operation}"))

    def run(
        self,
        *,
        user_id: int,
        operation: str,
        work: Callable[[Charge], T],
        reference_type: str = "",
        reference_id: str = "",
        scope: tuple[object, ...] = (),
        action_id: str | None = None,
        cost: int | None = None,
    ) -> T:
        amount = self.cost_of(operation) if cost is None else cost
        action_key = build_action_key(user_id, operation, *scope, action_id=action_id) if action_id else None

        attempt = 1
        if action_key:
            record = self.idempotency.begin(action_key)
            if record.status == "succeeded":
                logger.info("Replaying idempotent result operation=%s user=%s", operation, short_hash(user_id))
                return record.result
            attempt = record.attempt

        try:
            self._check_rate_limit(user_id, operation)
            charge = Charge(user_id=user_id, operation=operation, cost=amount)
            if amount > 0:
                entry = self.repo.spend_credits(
                    user_id,
                    amount,
                    reason=operation,
                    reference_type=reference_type,
                    reference_id=reference_id,
                    idempotency_key=f"debit:{action_key}:{attempt}" if action_key else None,
                )
                charge.ledger_entry_id = entry.id
        except Exception:
            if action_key:
                self.idempotency.fail(action_key)
            raise

        try:
            result = work(charge)
        except Exception:
            if action_key:
                self.idempotency.fail(action_key)
            self.refund(charge, charge.cost - charge.refunded)
            raise

        if action_key:
            self.idempotency.succeed(action_key, result)
        return result

    def refund(self, charge: Charge, amount: int) -> CreditLedgerEntry | None:
        if amount <= 0:
            return None

        self.repo.session.rollback()
        entry = self.repo.grant_credits(
            charge.user_id,
            amount,
            reason=f"{charge.operation}_refund",
            reference_type="refund",
            reference_id=str(charge.ledger_entry_id or ""),
        )
        charge.refunded += amount
        logger.warning(
            "Refunded %s credit(s) operation=%s user=%s",
            amount,
            charge.operation,
            short_hash(charge.user_id),
        )
        return entry

    def _check_rate_limit(self, user_id: int, family: str) -> None:
        try:
            self.limiter.hit(
                f"{user_id}:{family}",
                limit=self.settings.rate_limit_for(family),
                window_sec=self.settings.rate_limit_window_sec,
            )
        except RateLimitError:
            logger.warning("Rate limit hit family=%s user=%s", family, short_hash(user_id))
            raise
