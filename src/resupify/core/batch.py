from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed

from sqlalchemy.orm import Session

from resupify.config import Settings, get_settings
from resupify.core.events import EventBus
from resupify.core.evidence import EvidenceScorer
from resupify.core.gate import Charge, CreditGate
from resupify.core.runtime import get_event_bus
from resupify.db.models import BatchSprint
from resupify.db.repositories import Repository
from resupify.db.session import SessionLocal
from resupify.errors import NO_RESUME, NotFoundError, ResupifyError, ValidationError
from resupify.llm.router import CompletionClient, LLMRouter
from resupify.types import BatchItemResult, BatchSprintResult

logger = logging.getLogger(__name__)


def refund_for(policy: str, cost: int, failed: int, total: int) -> int:
    """Credits returned for a sprint block; a block where every item failed is always refunded in full."""
    if total <= 0 or failed <= 0 or cost <= 0:
        return 0
    if failed >= total:
        return cost
    if policy == "prorated":
        return cost * failed // total
    return 0


class BatchSprintOrchestrator:
    def __init__(
        self,
        repo: Repository,
        completion: CompletionClient | None = None,
        settings: Settings | None = None,
        gate: CreditGate | None = None,
        session_factory: Callable[[], Session] = SessionLocal,
        event_bus: EventBus | None = None,
    ):
        self.repo = repo
        self.settings = settings or get_settings()
        self.completion = completion or LLMRouter(self.settings)
        self.gate = gate or CreditGate(repo, self.settings)
        self.session_factory = session_factory
        self.event_bus = event_bus or get_event_bus()

    def start(
        self,
        job_card_ids: Sequence[int],
        resume_id: int,
        *,
        user_id: int,
        action_id: str | None = None,
    ) -> BatchSprintResult:
        ids = list(job_card_ids)
        if not 1 <= len(ids) <= self.settings.batch_max_job_cards:
            raise ValidationError(f"a batch sprint takes 1 to {self.settings.batch_max_job_cards} job cards")
        if len(set(ids)) != len(ids):
            raise ValidationError("job card ids in a batch sprint must be distinct")

        resume = self.repo.get_resume(resume_id, user_id)
        if resume is None or not resume.content.strip():
            raise ValidationError(f"resume {resume_id} not found or empty", code=NO_RESUME)

        def work(charge: Charge) -> BatchSprintResult:
            sprint = self.repo.create_batch_sprint(user_id=user_id, resume_id=resume_id, job_card_ids=ids)
            return self._run_items(sprint, ids, charge)

        return self.gate.run(
            user_id=user_id,
            operation="batch_sprint",
            work=work,
            reference_type="batch_sprint",
            reference_id=f"resume:{resume_id}",
            scope=(",".join(str(job_card_id) for job_card_id in ids), resume_id),
            action_id=action_id,
        )

    def retry_failed(self, sprint_id: int, *, user_id: int) -> BatchSprintResult:
        """Re-run only the failed items; succeeded items are neither re-run nor re-charged."""
        sprint = self.repo.get_batch_sprint(sprint_id, user_id)
        if sprint is None:
            raise NotFoundError(f"batch sprint {sprint_id} not found")

        failed = [item.job_card_id for item in self.repo.list_batch_items(sprint.id) if item.run_id is None]
        if not failed:
            return self.get(sprint.id, user_id=user_id)

        cost = min(self.settings.credit_cost_evidence * len(failed), self.settings.credit_cost_batch_sprint)
        return self.gate.run(
            user_id=user_id,
            operation="batch_sprint",
            work=lambda charge: self._run_items(sprint, failed, charge),
            reference_type="batch_sprint_retry",
            reference_id=f"sprint:{sprint.id}",
            cost=cost,
        )

    def get(self, sprint_id: int, *, user_id: int) -> BatchSprintResult:
        sprint = self.repo.get_batch_sprint(sprint_id, user_id)
        if sprint is None:
            raise NotFoundError(f"batch sprint {sprint_id} not found")
        return self._result(sprint)

    def _run_items(self, sprint: BatchSprint, job_card_ids: Sequence[int], charge: Charge) -> BatchSprintResult:
        outcomes = self._score_all(sprint.id, job_card_ids, resume_id=sprint.resume_id, user_id=sprint.user_id)
        for outcome in outcomes:
            self.repo.record_batch_item(
                sprint.id,
                outcome.job_card_id,
                run_id=outcome.run_id,
                score=outcome.score,
                error=outcome.error,
            )

        failed = sum(1 for outcome in outcomes if outcome.error is not None)
        refund = refund_for(self.settings.batch_refund_policy, charge.cost, failed, len(outcomes))
        if refund:
            self.gate.refund(charge, refund)

        items = self.repo.list_batch_items(sprint.id)
        succeeded = sum(1 for item in items if item.run_id is not None)
        if succeeded == len(items):
            status = "completed"
        elif succeeded == 0:
            status = "failed"
        else:
            status = "partial"

        finished = self.repo.finish_batch_sprint(
            sprint.id,
            status=status,
            charged=charge.cost,
            refunded=refund,
            success_rate=succeeded / len(items) if items else 0.0,
        )
        logger.info(
            "Batch sprint %s %s: %s/%s succeeded, charged=%s refunded=%s",
            sprint.id,
            status,
            succeeded,
            len(items),
            charge.cost,
            refund,
        )
        self.event_bus.publish(
            sprint.id,
            {"type": "sprint_completed", "sprint_id": sprint.id, "status": status, "succeeded": succeeded},
        )
        return self._result(finished)

    def _score_all(
        self,
        sprint_id: int,
        job_card_ids: Sequence[int],
        *,
        resume_id: int,
        user_id: int,
    ) -> list[BatchItemResult]:
        outcomes: dict[int, BatchItemResult] = {}
        workers = max(1, min(self.settings.batch_max_workers, len(job_card_ids)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="batch-sprint") as executor:
            futures = {
                executor.submit(self._score_one, job_card_id, resume_id, user_id): job_card_id
                for job_card_id in job_card_ids
            }
            for future in as_completed(futures):
                outcome = future.result()
                outcomes[futures[future]] = outcome
                self.event_bus.publish(sprint_id, {"type": "item_completed", "sprint_id": sprint_id, **outcome.model_dump()})
        return [outcomes[job_card_id] for job_card_id in job_card_ids]

    def _score_one(self, job_card_id: int, resume_id: int, user_id: int) -> BatchItemResult:
        with self.session_factory() as session:
            scorer = EvidenceScorer(Repository(session), completion=self.completion, settings=self.settings)
            try:
                context = scorer.prepare(job_card_id, resume_id, user_id=user_id)
                result = scorer.score(context)
            except ResupifyError as exc:
                return BatchItemResult(job_card_id=job_card_id, error=f"{exc.code}: {exc.message}")
            except Exception as exc:
                logger.exception("Batch item failed job_card=%s", job_card_id)
                return BatchItemResult(job_card_id=job_card_id, error=f"INTERNAL_ERROR: {exc}")
        return BatchItemResult(job_card_id=job_card_id, run_id=result.run_id, score=result.score)

    def _result(self, sprint: BatchSprint) -> BatchSprintResult:
        return BatchSprintResult(
            sprint_id=sprint.id,
            status=sprint.status,
            credits_charged=sprint.credits_charged,
            credits_refunded=sprint.credits_refunded,
            results=[
                BatchItemResult(job_card_id=item.job_card_id, run_id=item.run_id, score=item.score, error=item.error)
                for item in self.repo.list_batch_items(sprint.id)
            ],
        )
