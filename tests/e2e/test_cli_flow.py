from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from conftest import DEFAULT_REQUIREMENTS, FakeCompletion, evidence_reply
from resupify.cli.app import app
from resupify.llm.router import LLMRouter

runner = CliRunner()


def _invoke(*args: str) -> dict:
    result = runner.invoke(app, list(args))
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


def test_cli_scan_flow(monkeypatch, tmp_path: Path) -> None:
    completion = FakeCompletion(extract=DEFAULT_REQUIREMENTS, score=evidence_reply())
    monkeypatch.setattr(LLMRouter, "complete", lambda self, **kwargs: completion.complete(**kwargs))
    jd_file = tmp_path / "jd.txt"
    jd_file.write_text("Data analyst: Python, SQL, communication.", encoding="utf-8")
    resume_file = tmp_path / "resume.txt"
    resume_file.write_text("Built Python APIs.\nWrote SQL reports.", encoding="utf-8")

    user = _invoke("users", "create", "--name", "Alex Chen", "--region", "ca", "--track", "coop")
    user_id = str(user["id"])
    job = _invoke("jobs", "create", "--user-id", user_id, "--title", "Data Analyst", "--company", "Acme")
    job_id = str(job["id"])

    snapshot = _invoke("jd", "add", "--user-id", user_id, "--job-card-id", job_id, "--file", str(jd_file))
    assert snapshot["version"] == 1
    resume = _invoke("resume", "add", "--user-id", user_id, "--file", str(resume_file))
    assert resume["title"] == "resume"

    extracted = _invoke("requirements", "extract", "--user-id", user_id, "--job-card-id", job_id)
    assert [item["type"] for item in extracted["requirements"]] == ["skill", "tool", "softskill"]

    run = _invoke(
        "evidence", "run", "--user-id", user_id, "--job-card-id", job_id, "--resume-id", str(resume["id"])
    )
    assert run["item_count"] == 3

    shown = _invoke("evidence", "show", "--user-id", user_id, "--run-id", str(run["run_id"]))
    assert shown["region_code"] == "CA"
    assert shown["track_code"] == "COOP"

    _invoke("credits", "grant", "--user-id", user_id, "--amount", "4")
    balance = _invoke("credits", "balance", "--user-id", user_id, "--ledger")
    assert balance["balance"] == 6
    assert [entry["reason"] for entry in balance["ledger"]] == ["manual_grant", "evidence", "starting_grant"]


def test_cli_reports_domain_errors_as_json(tmp_path: Path) -> None:
    user = _invoke("users", "create", "--name", "Alex Chen")
    job = _invoke("jobs", "create", "--user-id", str(user["id"]), "--title", "Data Analyst")

    result = runner.invoke(
        app,
        ["requirements", "extract", "--user-id", str(user["id"]), "--job-card-id", str(job["id"])],
    )

    assert result.exit_code == 1
    assert '"error": "NO_SNAPSHOT"' in result.output
