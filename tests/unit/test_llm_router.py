from __future__ import annotations

import pytest

from conftest import FakeCompletion
from resupify.config import Settings
from resupify.errors import ExtractionFailedError, UpstreamError
from resupify.llm.providers import parse_json
from resupify.llm.router import LLMRouter, complete_json, complete_structured
from resupify.types import OutreachPayload


def test_router_raises_when_no_provider_is_configured() -> None:
    router = LLMRouter(settings=Settings(openai_api_key="", local_llm_enabled=False))

    with pytest.raises(UpstreamError, match="no completion provider"):
        router.complete(task="extract", prompt="ping")


def test_router_falls_through_to_next_provider() -> None:
    router = LLMRouter(settings=Settings(openai_api_key="sk-test", local_llm_enabled=True))
    calls: list[str] = []

    class Failing:
        config = type("Config", (), {"name": "openai"})()
        is_configured = True

        def complete_text(self, **kwargs):
            calls.append("openai")
            raise RuntimeError("boom")

    class Working:
        config = type("Config", (), {"name": "local"})()
        is_configured = True

        def complete_text(self, **kwargs):
            calls.append(kwargs["model"])
            return type("Response", (), {"content": "ok"})()

    router._providers_for = lambda task: [Failing(), Working()]

    assert router.complete(task="writer", prompt="ping") == "ok"
    assert calls == ["openai", router.settings.local_llm_model]


@pytest.mark.parametrize(
    ("content", "expected"),
    [
        ('{"a": 1}', {"a": 1}),
        ('```json\n[{"requirement_type": "skill"}]\n```', [{"requirement_type": "skill"}]),
        ('Here you go: {"ok": true} hope it helps', {"ok": True}),
    ],
)
def test_parse_json_recovers_payloads(content: str, expected) -> None:
    assert parse_json(content) == expected


def test_parse_json_rejects_prose() -> None:
    with pytest.raises(ValueError):
        parse_json("I could not find any requirements.")


def test_complete_json_captures_unparseable_output() -> None:
    result = complete_json(FakeCompletion(extract="not json"), task="extract", prompt="p")

    assert result.ok is False
    assert result.raw_text == "not json"
    with pytest.raises(ExtractionFailedError):
        result.unwrap(ExtractionFailedError)


def test_complete_structured_rejects_schema_mismatch() -> None:
    result = complete_structured(
        FakeCompletion(writer={"recruiter_email": "hi"}),
        OutreachPayload,
        task="writer",
        prompt="p",
    )

    assert result.ok is False
    assert "OutreachPayload" in result.error


def test_complete_structured_validates_payload() -> None:
    reply = {"recruiter_email": "a", "linkedin_dm": "b", "follow_up_1": "c", "follow_up_2": "d"}

    value = complete_structured(FakeCompletion(writer=reply), OutreachPayload, task="writer", prompt="p").unwrap()

    assert value.linkedin_dm == "b"


def test_upstream_failure_becomes_result_error() -> None:
    result = complete_json(FakeCompletion(score=UpstreamError("timeout")), task="score", prompt="p")

    assert result.ok is False
    assert "timeout" in result.error
