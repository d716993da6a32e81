from __future__ import annotations

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from conftest import DEFAULT_REQUIREMENTS, OUTREACH_REPLY, FakeCompletion, evidence_reply, kit_reply
from resupify.api.app import create_app
from resupify.core.runtime import get_rate_limiter
from resupify.llm.router import LLMRouter


@pytest.fixture()
def client():
    with TestClient(create_app()) as test_client:
        yield test_client


@pytest.fixture()
def fake_llm(monkeypatch) -> FakeCompletion:
    completion = FakeCompletion(extract=DEFAULT_REQUIREMENTS, score=evidence_reply(), writer=kit_reply)
    monkeypatch.setattr(LLMRouter, "complete", lambda self, **kwargs: completion.complete(**kwargs))
    return completion


def _headers(user_id: int) -> dict[str, str]:
    return {"X-User-Id": str(user_id)}


def _setup(client: TestClient, *, snapshot: bool = True) -> dict[str, int]:
    user_id = client.post("/api/users", json={"name": "Alex Chen", "email": "alex@example.com"}).json()["id"]
    headers = _headers(user_id)
    job_id = client.post("/api/job-cards", json={"title": "Data Analyst", "company": "Acme"}, headers=headers).json()[
        "id"
    ]
    resume_id = client.post(
        "/api/resumes",
        json={"content": "Built Python APIs with Flask.\nWrote SQL reports for 3 teams.", "title": "Main"},
        headers=headers,
    ).json()["id"]
    if snapshot:
        client.post(
            f"/api/job-cards/{job_id}/snapshots",
            json={"text": "Python and SQL analyst with strong communication."},
            headers=headers,
        )
    return {"user_id": user_id, "job_id": job_id, "resume_id": resume_id}


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "env": "test"}


def test_packs_are_listed(client) -> None:
    keys = {pack["key"] for pack in client.get("/api/packs").json()}

    assert keys == {"CA_COOP", "CA_NEW_GRAD", "GLOBAL_COOP", "GLOBAL_NEW_GRAD"}


@pytest.mark.parametrize("header", [None, "abc"])
def test_user_header_is_required(client, header) -> None:
    headers = {"X-User-Id": header} if header else {}

    response = client.post("/api/job-cards", json={"title": "Role"}, headers=headers)

    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_INPUT"


def test_missing_snapshot_maps_to_400(client, fake_llm) -> None:
    ids = _setup(client, snapshot=False)

    response = client.post(f"/api/job-cards/{ids['job_id']}/requirements/extract", headers=_headers(ids["user_id"]))

    assert response.status_code == 400
    assert response.json()["error"] == "NO_SNAPSHOT"


def test_other_users_job_card_is_not_found(client, fake_llm) -> None:
    ids = _setup(client)
    other = client.post("/api/users", json={"name": "Other"}).json()["id"]

    response = client.get(f"/api/job-cards/{ids['job_id']}/requirements", headers=_headers(other))

    assert response.status_code == 404
    assert response.json()["error"] == "NOT_FOUND"


def test_insufficient_credits_maps_to_402(client, fake_llm) -> None:
    ids = _setup(client)

    response = client.post(
        "/api/evidence/batch-sprints",
        json={"job_card_ids": [ids["job_id"]], "resume_id": ids["resume_id"]},
        headers=_headers(ids["user_id"]),
    )

    assert response.status_code == 402
    assert response.json()["error"] == "INSUFFICIENT_CREDITS"


def test_kit_regeneration_maps_to_409(client, fake_llm) -> None:
    ids = _setup(client)
    headers = _headers(ids["user_id"])
    client.post(f"/api/job-cards/{ids['job_id']}/requirements/extract", headers=headers)
    run = client.post(
        "/api/evidence/runs",
        json={"job_card_id": ids["job_id"], "resume_id": ids["resume_id"]},
        headers=headers,
    ).json()
    body = {"job_card_id": ids["job_id"], "resume_id": ids["resume_id"], "evidence_run_id": run["run_id"]}

    assert client.post("/api/application-kits", json=body, headers=headers).status_code == 200
    response = client.post("/api/application-kits", json=body, headers=headers)

    assert response.status_code == 409
    assert response.json()["error"] == "CONFIRMATION_REQUIRED"
    overwrite = client.post("/api/application-kits", json={**body, "confirm_overwrite": True}, headers=headers)
    assert overwrite.status_code == 200


def test_rate_limit_maps_to_429_with_retry_after(client, fake_llm) -> None:
    ids = _setup(client)
    limiter = get_rate_limiter()
    for _ in range(10):
        limiter.hit(f"{ids['user_id']}:outreach", limit=10, window_sec=600)

    response = client.post("/api/outreach/packs", json={"job_card_id": ids["job_id"]}, headers=_headers(ids["user_id"]))

    assert response.status_code == 429
    assert response.json()["error"] == "TOO_MANY_REQUESTS"
    assert int(response.headers["Retry-After"]) >= 1


def test_upstream_failure_maps_to_502(client) -> None:
    ids = _setup(client)

    response = client.post(f"/api/job-cards/{ids['job_id']}/requirements/extract", headers=_headers(ids["user_id"]))

    assert response.status_code == 502
    assert response.json()["error"] == "EXTRACTION_FAILED"


def test_failed_outreach_leaves_balance_untouched(client, fake_llm) -> None:
    ids = _setup(client)
    headers = _headers(ids["user_id"])
    fake_llm.script("writer", "not json at all")

    response = client.post("/api/outreach/packs", json={"job_card_id": ids["job_id"]}, headers=headers)

    assert response.status_code == 502
    assert client.get("/api/credits", headers=headers).json()["balance"] == 3


def test_personalization_sources_round_trip(client, fake_llm) -> None:
    ids = _setup(client)
    headers = _headers(ids["user_id"])
    url = f"/api/job-cards/{ids['job_id']}/personalization"

    created = client.post(url, json={"source_type": "company_news", "url": "https://acme.com/news"}, headers=headers)
    assert created.status_code == 200
    assert [source["url"] for source in client.get(url, headers=headers).json()] == ["https://acme.com/news"]

    source_id = created.json()["id"]
    assert client.delete(f"/api/personalization/{source_id}", headers=headers).json() == {"deleted": True}
    assert client.delete(f"/api/personalization/{source_id}", headers=headers).status_code == 404


def test_outreach_endpoint_uses_contact(client, fake_llm) -> None:
    ids = _setup(client)
    headers = _headers(ids["user_id"])
    contact_id = client.post(
        "/api/contacts",
        json={"name": "Sam Lee", "email": "sam@acme.com", "role": "Recruiter"},
        headers=headers,
    ).json()["id"]
    fake_llm.script("writer", OUTREACH_REPLY)

    pack = client.post(
        "/api/outreach/packs",
        json={"job_card_id": ids["job_id"], "contact_id": contact_id, "tone": "Warm"},
        headers=headers,
    ).json()

    assert pack["recruiter_email"].startswith("To: sam@acme.com")
    assert pack["contact_id"] == contact_id


def test_profile_reports_pack_and_missing_fields(client) -> None:
    user_id = client.post("/api/users", json={"name": "Alex"}).json()["id"]

    response = client.put(
        "/api/profile",
        json={"region_code": "ca", "track_code": "coop", "work_status": "citizen_pr"},
        headers=_headers(user_id),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["pack_key"] == "CA_COOP"
    assert data["region_code"] == "CA"
    assert data["missing_eligibility_fields"]


@pytest.mark.parametrize("with_header", [True, False])
def test_sprint_stream_rejects_unknown_or_anonymous_callers(client, with_header) -> None:
    user_id = client.post("/api/users", json={"name": "Alex"}).json()["id"]
    headers = _headers(user_id) if with_header else {}

    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/api/evidence/batch-sprints/999/stream", headers=headers):
            pass
