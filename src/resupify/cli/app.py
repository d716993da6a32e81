from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import typer
import uvicorn

from resupify.api.app import create_app
from resupify.config import get_settings
from resupify.core.batch import BatchSprintOrchestrator
from resupify.core.evidence import EvidenceScorer
from resupify.core.extractor import RequirementExtractor
from resupify.core.intake import capture_jd_snapshot
from resupify.core.kit import ApplicationKitGenerator
from resupify.core.outreach import OutreachGenerator
from resupify.db.init import init_database
from resupify.db.repositories import Repository
from resupify.db.session import SessionLocal
from resupify.errors import ResupifyError
from resupify.logging_config import configure_logging

app = typer.Typer(help="Resupify CLI")
users_app = typer.Typer(help="Users and job search profiles")
credits_app = typer.Typer(help="Credit balance and grants")
jobs_app = typer.Typer(help="Job cards")
jd_app = typer.Typer(help="Job description snapshots")
resume_app = typer.Typer(help="Resumes")
requirements_app = typer.Typer(help="Requirement extraction")
evidence_app = typer.Typer(help="Evidence scans and batch sprints")
kit_app = typer.Typer(help="Application kits")
outreach_app = typer.Typer(help="Outreach packs")

app.add_typer(users_app, name="users")
app.add_typer(credits_app, name="credits")
app.add_typer(jobs_app, name="jobs")
app.add_typer(jd_app, name="jd")
app.add_typer(resume_app, name="resume")
app.add_typer(requirements_app, name="requirements")
app.add_typer(evidence_app, name="evidence")
app.add_typer(kit_app, name="kit")
app.add_typer(outreach_app, name="outreach")

_INITIALIZED = False


def ensure_initialized() -> None:
    global _INITIALIZED
    if _INITIALIZED:
        return
    init_database()
    _INITIALIZED = True


def _echo(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


@contextmanager
def _repository() -> Iterator[Repository]:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        try:
            yield Repository(db)
        except ResupifyError as exc:
            typer.echo(json.dumps(exc.to_dict()), err=True)
            raise typer.Exit(code=1) from exc


@app.command("init")
def init_cmd() -> None:
    """Initialize database and data directories."""
    configure_logging()
    result = init_database()
    _echo({"ok": True, **result})


@users_app.command("create")
def users_create(
    name: str = typer.Option(..., "--name"),
    email: str = typer.Option("", "--email"),
    region: str = typer.Option("CA", "--region"),
    track: str = typer.Option("NEW_GRAD", "--track"),
) -> None:
    with _repository() as repo:
        user = repo.create_user(name=name, email=email, starting_credits=get_settings().starting_credits)
        repo.upsert_profile(user.id, {"region_code": region.upper(), "track_code": track.upper()})
        _echo({"id": user.id, "name": user.name, "balance": repo.get_balance(user.id)})


@credits_app.command("balance")
def credits_balance(
    user_id: int = typer.Option(..., "--user-id"),
    ledger: bool = typer.Option(False, "--ledger"),
) -> None:
    with _repository() as repo:
        data: dict[str, Any] = {"user_id": user_id, "balance": repo.get_balance(user_id)}
        if ledger:
            data["ledger"] = [
                {
                    "amount": entry.amount,
                    "reason": entry.reason,
                    "balance_after": entry.balance_after,
                    "created_at": entry.created_at,
                }
                for entry in repo.list_ledger(user_id)
            ]
        _echo(data)


@credits_app.command("grant")
def credits_grant(
    user_id: int = typer.Option(..., "--user-id"),
    amount: int = typer.Option(..., "--amount", min=1),
    reason: str = typer.Option("manual_grant", "--reason"),
) -> None:
    with _repository() as repo:
        entry = repo.grant_credits(user_id, amount, reason=reason, reference_type="cli")
        _echo({"user_id": user_id, "balance": entry.balance_after})


@jobs_app.command("create")
def jobs_create(
    user_id: int = typer.Option(..., "--user-id"),
    title: str = typer.Option("", "--title"),
    company: str = typer.Option("", "--company"),
) -> None:
    with _repository() as repo:
        job_card = repo.create_job_card(user_id, title=title, company=company)
        _echo({"id": job_card.id, "title": job_card.title, "company": job_card.company})


@jd_app.command("add")
def jd_add(
    user_id: int = typer.Option(..., "--user-id"),
    job_card_id: int = typer.Option(..., "--job-card-id"),
    file: Path | None = typer.Option(None, "--file", exists=True, readable=True),
    url: str = typer.Option("", "--url"),
) -> None:
    text = file.read_text(encoding="utf-8") if file else ""
    with _repository() as repo:
        snapshot = capture_jd_snapshot(repo, job_card_id, user_id=user_id, text=text, url=url)
        _echo({"id": snapshot.id, "job_card_id": snapshot.job_card_id, "version": snapshot.version})


@resume_app.command("add")
def resume_add(
    user_id: int = typer.Option(..., "--user-id"),
    file: Path = typer.Option(..., "--file", exists=True, readable=True),
    title: str = typer.Option("", "--title"),
) -> None:
    with _repository() as repo:
        resume = repo.create_resume(user_id, content=file.read_text(encoding="utf-8"), title=title or file.stem)
        _echo({"id": resume.id, "title": resume.title})


@requirements_app.command("extract")
def requirements_extract(
    user_id: int = typer.Option(..., "--user-id"),
    job_card_id: int = typer.Option(..., "--job-card-id"),
) -> None:
    with _repository() as repo:
        result = RequirementExtractor(repo).extract(job_card_id, user_id=user_id)
        _echo(
            {
                "job_card_id": result.job_card_id,
                "count": result.count,
                "filled_fields": result.filled_fields,
                "requirements": [{"type": kind, "text": text} for kind, text in result.requirements],
            }
        )


@evidence_app.command("run")
def evidence_run(
    user_id: int = typer.Option(..., "--user-id"),
    job_card_id: int = typer.Option(..., "--job-card-id"),
    resume_id: int = typer.Option(..., "--resume-id"),
    action_id: str | None = typer.Option(None, "--action-id"),
) -> None:
    with _repository() as repo:
        result = EvidenceScorer(repo).run(job_card_id, resume_id, user_id=user_id, action_id=action_id)
        _echo(result.model_dump())


@evidence_app.command("show")
def evidence_show(
    user_id: int = typer.Option(..., "--user-id"),
    run_id: int = typer.Option(..., "--run-id"),
) -> None:
    with _repository() as repo:
        _echo(EvidenceScorer(repo).get_run(run_id, user_id=user_id))


@evidence_app.command("sprint")
def evidence_sprint(
    user_id: int = typer.Option(..., "--user-id"),
    resume_id: int = typer.Option(..., "--resume-id"),
    job_card_ids: list[int] = typer.Option(..., "--job-card-id"),
    action_id: str | None = typer.Option(None, "--action-id"),
) -> None:
    with _repository() as repo:
        result = BatchSprintOrchestrator(repo).start(job_card_ids, resume_id, user_id=user_id, action_id=action_id)
        _echo(result.model_dump())


@evidence_app.command("retry")
def evidence_retry(
    user_id: int = typer.Option(..., "--user-id"),
    sprint_id: int = typer.Option(..., "--sprint-id"),
) -> None:
    with _repository() as repo:
        _echo(BatchSprintOrchestrator(repo).retry_failed(sprint_id, user_id=user_id).model_dump())


@kit_app.command("generate")
def kit_generate(
    user_id: int = typer.Option(..., "--user-id"),
    job_card_id: int = typer.Option(..., "--job-card-id"),
    resume_id: int = typer.Option(..., "--resume-id"),
    run_id: int = typer.Option(..., "--run-id"),
    tone: str = typer.Option("Human", "--tone"),
    overwrite: bool = typer.Option(False, "--overwrite"),
) -> None:
    with _repository() as repo:
        result = ApplicationKitGenerator(repo).generate(
            job_card_id,
            resume_id,
            run_id,
            user_id=user_id,
            tone=tone,
            confirm_overwrite=overwrite,
        )
        _echo(result.model_dump())


@outreach_app.command("generate")
def outreach_generate(
    user_id: int = typer.Option(..., "--user-id"),
    job_card_id: int = typer.Option(..., "--job-card-id"),
    contact_id: int | None = typer.Option(None, "--contact-id"),
    tone: str | None = typer.Option(None, "--tone"),
) -> None:
    with _repository() as repo:
        result = OutreachGenerator(repo).generate_pack(
            job_card_id,
            user_id=user_id,
            contact_id=contact_id,
            tone=tone,
        )
        _echo(result.model_dump())


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
) -> None:
    configure_logging()
    ensure_initialized()
    settings = get_settings()
    app_instance = create_app()
    uvicorn.run(app_instance, host=host or settings.app_host, port=port or settings.app_port)
