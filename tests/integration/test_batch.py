from __future__ import annotations

import pytest

from conftest import FakeCompletion, evidence_reply
from resupify.config import Settings
from resupify.core.batch import BatchSprintOrchestrator
from resupify.core.events import EventBus
from resupify.errors import NO_RESUME, NotFoundError, UpstreamError, ValidationError


@pytest.fixture()
def funded(repo, user):
    repo.grant_credits(user.id, 10, reason="test_grant")
    return user


def test_sprint_scores_every_job_card(repo, funded, make_job, resume) -> None:
    jobs = [make_job(title=f"Role {index}") for index in range(3)]
    orchestrator = BatchSprintOrchestrator(repo, completion=FakeCompletion(score=evidence_reply()))

    result = orchestrator.start([job.id for job in jobs], resume.id, user_id=funded.id)

    assert result.status == "completed"
    assert [item.job_card_id for item in result.results] == [job.id for job in jobs]
    assert all(item.run_id is not None and item.score == 85 for item in result.results)
    assert result.credits_charged == 5
    assert result.credits_refunded == 0
    assert repo.get_balance(funded.id) == 8


def test_failed_items_do_not_block_the_rest(repo, funded, make_job, resume) -> None:
    good = [make_job(title=f"Role {index}") for index in range(3)]
    broken = make_job(title="No requirements", requirements=[])
    ids = [good[0].id, broken.id, good[1].id, good[2].id]

    result = BatchSprintOrchestrator(repo, completion=FakeCompletion(score=evidence_reply())).start(
        ids, resume.id, user_id=funded.id
    )

    assert result.status == "partial"
    failed = [item for item in result.results if item.error]
    assert [item.job_card_id for item in failed] == [broken.id]
    assert failed[0].error.startswith("NO_REQUIREMENTS")
    assert failed[0].run_id is None
    assert sum(1 for item in result.results if item.run_id) == 3


def test_prorated_refund(repo, funded, make_job, resume) -> None:
    good = [make_job(title=f"Role {index}") for index in range(2)]
    broken = [make_job(title=f"Empty {index}", requirements=[]) for index in range(2)]

    result = BatchSprintOrchestrator(repo, completion=FakeCompletion(score=evidence_reply())).start(
        [job.id for job in good + broken], resume.id, user_id=funded.id
    )

    assert result.credits_refunded == 2
    assert repo.get_balance(funded.id) == 13 - 5 + 2


def test_all_failed_sprint_is_refunded_in_full(repo, funded, make_job, resume) -> None:
    jobs = [make_job(title=f"Role {index}") for index in range(2)]
    orchestrator = BatchSprintOrchestrator(repo, completion=FakeCompletion(score=UpstreamError("down")))

    result = orchestrator.start([job.id for job in jobs], resume.id, user_id=funded.id)

    assert result.status == "failed"
    assert all(item.error.startswith("UPSTREAM_FAILED") for item in result.results)
    assert result.credits_refunded == 5
    assert repo.get_balance(funded.id) == 13


def test_refund_policy_none_keeps_partial_charge(repo, funded, make_job, resume) -> None:
    good = make_job(title="Role")
    broken = make_job(title="Empty", requirements=[])
    orchestrator = BatchSprintOrchestrator(
        repo,
        completion=FakeCompletion(score=evidence_reply()),
        settings=Settings(batch_refund_policy="none"),
    )

    result = orchestrator.start([good.id, broken.id], resume.id, user_id=funded.id)

    assert result.credits_refunded == 0
    assert repo.get_balance(funded.id) == 8


def test_retry_reruns_only_failed_items(repo, funded, make_job, resume) -> None:
    good = make_job(title="Role")
    broken = make_job(title="Empty", requirements=[])
    completion = FakeCompletion(score=evidence_reply())
    orchestrator = BatchSprintOrchestrator(repo, completion=completion)
    first = orchestrator.start([good.id, broken.id], resume.id, user_id=funded.id)
    assert first.status == "partial"
    balance = repo.get_balance(funded.id)
    calls = len(completion.calls)

    repo.replace_requirements(broken.id, None, [("skill", "Python")])
    retried = orchestrator.retry_failed(first.sprint_id, user_id=funded.id)

    assert retried.status == "completed"
    assert len(completion.calls) == calls + 1
    assert repo.get_balance(funded.id) == balance - 1
    assert retried.results[0].run_id == first.results[0].run_id
    assert retried.results[1].run_id is not None
    assert retried.results[1].error is None


def test_retry_with_nothing_failed_is_free(repo, funded, make_job, resume) -> None:
    job = make_job()
    orchestrator = BatchSprintOrchestrator(repo, completion=FakeCompletion(score=evidence_reply()))
    first = orchestrator.start([job.id], resume.id, user_id=funded.id)
    balance = repo.get_balance(funded.id)

    again = orchestrator.retry_failed(first.sprint_id, user_id=funded.id)

    assert again == first
    assert repo.get_balance(funded.id) == balance


def test_sprint_publishes_progress_events(repo, funded, make_job, resume) -> None:
    jobs = [make_job(title=f"Role {index}") for index in range(2)]
    bus = EventBus()
    orchestrator = BatchSprintOrchestrator(repo, completion=FakeCompletion(score=evidence_reply()), event_bus=bus)

    result = orchestrator.start([job.id for job in jobs], resume.id, user_id=funded.id)

    events = bus.history(result.sprint_id)
    assert [event["type"] for event in events] == ["item_completed", "item_completed", "sprint_completed"]
    assert {event["job_card_id"] for event in events[:2]} == {job.id for job in jobs}
    assert events[-1]["status"] == "completed"


@pytest.mark.parametrize("ids", [[], list(range(1, 12)), [1, 1]])
def test_sprint_input_is_validated(repo, funded, resume, ids) -> None:
    with pytest.raises(ValidationError):
        BatchSprintOrchestrator(repo, completion=FakeCompletion()).start(ids, resume.id, user_id=funded.id)

    assert repo.get_balance(funded.id) == 13


def test_sprint_requires_resume(repo, funded, make_job) -> None:
    job = make_job()

    with pytest.raises(ValidationError) as exc_info:
        BatchSprintOrchestrator(repo, completion=FakeCompletion()).start([job.id], 404, user_id=funded.id)

    assert exc_info.value.code == NO_RESUME


def test_unknown_sprint(repo, funded) -> None:
    with pytest.raises(NotFoundError):
        BatchSprintOrchestrator(repo, completion=FakeCompletion()).get(99, user_id=funded.id)
