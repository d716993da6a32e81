from __future__ import annotations

import json
import os
import re
import tempfile
import threading
from collections.abc import Callable
from pathlib import Path
from types import SimpleNamespace
from typing import Any

_TEST_DIR = Path(tempfile.mkdtemp(prefix="resupify-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR / 'test.db'}"
os.environ["DATA_DIR"] = str(_TEST_DIR)
os.environ["ARTIFACT_DIR"] = str(_TEST_DIR / "artifacts")
os.environ["APP_ENV"] = "test"
os.environ["OPENAI_API_KEY"] = ""
os.environ["LOCAL_LLM_ENABLED"] = "false"

import pytest  # noqa: E402

from resupify.core.runtime import reset_runtime_state  # noqa: E402
from resupify.db.base import Base  # noqa: E402
from resupify.db.repositories import Repository  # noqa: E402
from resupify.db.session import SessionLocal, engine  # noqa: E402
from resupify.errors import UpstreamError  # noqa: E402

Reply = str | dict | list | Exception | Callable[[str], Any]

REQUIREMENT_COUNT = re.compile(r"REQUIREMENTS \((\d+) items\)")
ITEM_IDS = re.compile(r"for exactly these item ids: \[([\d, ]*)\]")


class FakeCompletion:
    """Scripted completion client: replies are consumed per task, the last one repeats."""

    def __init__(self, **replies: Reply):
        self._replies: dict[str, list[Reply]] = {}
        self.calls: list[SimpleNamespace] = []
        self._lock = threading.Lock()
        for task, reply in replies.items():
            self.script(task, reply)

    def script(self, task: str, *replies: Reply) -> FakeCompletion:
        self._replies[task] = list(replies)
        return self

    def complete(self, *, task: str, prompt: str, system: str = "") -> str:
        with self._lock:
            self.calls.append(SimpleNamespace(task=task, prompt=prompt, system=system))
            queue = self._replies.get(task)
            if not queue:
                raise UpstreamError(f"no scripted reply for task {task}")
            reply = queue.pop(0) if len(queue) > 1 else queue[0]

        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(prompt)
        return reply if isinstance(reply, str) else json.dumps(reply)

    def prompts(self, task: str) -> list[str]:
        return [call.prompt for call in self.calls if call.task == task]


def breakdown(score: float = 70) -> dict[str, Any]:
    return {
        "evidence_strength": {"score": score, "explanation": "proof quality"},
        "keyword_coverage": {"score": score, "explanation": "keywords"},
        "formatting_ats": {"score": score, "explanation": "layout"},
        "role_fit": {"score": score, "explanation": "fit"},
    }


def evidence_item(status: str = "matched", group_type: str = "skill", proof: str | None = "Built Python APIs") -> dict:
    return {
        "status": status,
        "group_type": group_type,
        "resume_proof": proof,
        "fix": "Name the framework you used.",
        "rewrite_a": "Built Python APIs serving internal tools.",
        "rewrite_b": "Designed and shipped Python APIs.",
        "why_it_matters": "Core to the role.",
        "needs_confirmation": False,
    }


def evidence_reply(status: str = "matched", score: float = 70) -> Callable[[str], dict]:
    """Reply with one item per requirement listed in the prompt."""

    def reply(prompt: str) -> dict:
        match = REQUIREMENT_COUNT.search(prompt)
        count = int(match.group(1)) if match else 0
        return {
            "summary": "Solid match.",
            "items": [evidence_item(status=status) for _ in range(count)],
            "breakdown": breakdown(score),
            "flags": [],
            "work_auth_flags": [],
        }

    return reply


def kit_reply(prompt: str) -> dict:
    ids: list[int] = []
    for group in ITEM_IDS.findall(prompt):
        for part in group.split(","):
            if part.strip() and int(part) not in ids:
                ids.append(int(part))
    return {
        "top_changes": [{"item_id": item_id, "fix": f"Fix for item {item_id}"} for item_id in ids],
        "bullet_rewrites": [
            {"item_id": item_id, "rewrite_a": "Led a Python project.", "rewrite_b": "Shipped a Python tool."}
            for item_id in ids
        ],
        "cover_letter_text": "Dear Hiring Manager,\n\nI am excited to apply. I wanted to reiterate my fit.\n\nBest,",
    }


OUTREACH_REPLY = {
    "recruiter_email": "Hi Sam,\n\nI'm applying for the role. [Your Phone Number]\n\nThanks,\nAlex",
    "linkedin_dm": "Hello there, quick note about the role.",
    "follow_up_1": "Hi,\n\nI saw your recent post about hiring. Just checking in on my application.",
    "follow_up_2": "Dear Sam, I am writing again about the role. This is urgent.",
}

DEFAULT_REQUIREMENTS = [
    {"requirement_type": "skill", "requirement_text": "Python"},
    {"requirement_type": "tool", "requirement_text": "SQL"},
    {"requirement_type": "softskill", "requirement_text": "Communication"},
]


@pytest.fixture(autouse=True)
def reset_db() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    reset_runtime_state()
    yield
    reset_runtime_state()


@pytest.fixture()
def session():
    with SessionLocal() as db:
        yield db


@pytest.fixture()
def repo(session) -> Repository:
    return Repository(session)


@pytest.fixture()
def user(repo: Repository):
    return repo.create_user(name="Alex Chen", email="alex@example.com", starting_credits=3)


@pytest.fixture()
def make_job(repo: Repository, user) -> Callable[..., Any]:
    """Create a job card with a snapshot and (optionally) stored requirements."""

    def factory(
        *,
        title: str = "Software Engineer",
        company: str = "Acme",
        jd_text: str = "Looking for a Python developer with SQL skills and clear communication.",
        requirements: list[tuple[str, str]] | None = None,
        with_snapshot: bool = True,
    ):
        job_card = repo.create_job_card(user.id, title=title, company=company)
        snapshot = repo.add_jd_snapshot(job_card.id, jd_text) if with_snapshot else None
        reqs = (
            [(item["requirement_type"], item["requirement_text"]) for item in DEFAULT_REQUIREMENTS]
            if requirements is None
            else requirements
        )
        if reqs:
            repo.replace_requirements(job_card.id, snapshot.id if snapshot else None, reqs)
        return job_card

    return factory


@pytest.fixture()
def resume(repo: Repository, user):
    return repo.create_resume(
        user.id,
        content="Alex Chen\nBuilt Python APIs with Flask.\nWrote SQL reports for 3 teams.\nPresented demos weekly.",
        title="Main",
    )
