from __future__ import annotations

from types import SimpleNamespace

import pytest

from resupify.core.extractor import job_card_autofill, normalize_requirements, parse_extraction_payload
from resupify.errors import ExtractionFailedError


def test_normalize_drops_unknown_types_and_blank_text() -> None:
    items = normalize_requirements(
        [
            {"requirement_type": "skill", "requirement_text": "Python"},
            {"requirement_type": "perk", "requirement_text": "Free lunch"},
            {"requirement_type": "tool", "requirement_text": "   "},
            "not a dict",
            {"requirement_type": " Tool ", "requirement_text": "Docker   and  Kubernetes"},
        ]
    )

    assert items == [("skill", "Python"), ("tool", "Docker and Kubernetes")]


def test_normalize_drops_repeats() -> None:
    items = normalize_requirements(
        [
            {"requirement_type": "skill", "requirement_text": "SQL"},
            {"requirement_type": "skill", "requirement_text": "sql"},
            {"requirement_type": "tool", "requirement_text": "SQL"},
        ]
    )

    assert items == [("skill", "SQL"), ("tool", "SQL")]


def test_payload_accepts_bare_array() -> None:
    payload = parse_extraction_payload([{"requirement_type": "skill", "requirement_text": "Go"}, 3])

    assert payload.requirements == [{"requirement_type": "skill", "requirement_text": "Go"}]


def test_payload_accepts_object_with_metadata() -> None:
    payload = parse_extraction_payload({"company_name": "Acme", "job_title": "Analyst", "requirements": []})

    assert payload.company_name == "Acme"
    assert payload.job_title == "Analyst"


def test_payload_rejects_scalars() -> None:
    with pytest.raises(ExtractionFailedError):
        parse_extraction_payload("requirements")


def test_autofill_only_fills_blank_fields() -> None:
    job_card = SimpleNamespace(title="Untitled Job", company="Acme", location="", job_type="")
    payload = parse_extraction_payload(
        {"job_title": "Data Analyst", "company_name": "Other Co", "location": "Toronto", "requirements": []}
    )

    assert job_card_autofill(job_card, payload) == {"title": "Data Analyst", "location": "Toronto"}
