from __future__ import annotations

from types import SimpleNamespace

import pytest

from resupify.core.outreach_helpers import (
    PERSONALIZATION_FOOTER,
    PERSONALIZATION_HEADER,
    build_contact_email_block,
    build_linkedin_block,
    build_personalization_block,
    compute_salutation,
    fix_contact_email,
    fix_linkedin_url,
    fix_salutation,
    select_personalization_sources,
    strip_personalization_from_follow_up,
    strip_placeholders,
    validate_personalization_source,
)
from resupify.errors import ValidationError


@pytest.mark.parametrize(
    ("name", "channel", "expected"),
    [
        ("Sam Lee", "email", "Dear Sam,"),
        ("Sam Lee", "linkedin", "Hi Sam,"),
        (None, "email", "Dear Hiring Manager,"),
        ("   ", "linkedin", "Hi there,"),
    ],
)
def test_compute_salutation(name: str | None, channel: str, expected: str) -> None:
    assert compute_salutation(name, channel) == expected


def test_fix_salutation_replaces_model_greeting() -> None:
    result = fix_salutation("Hi Sam,\n\nI am applying for the role.", "email", "Jordan Smith")

    assert result == "Dear Jordan,\n\nI am applying for the role."


def test_fix_salutation_repairs_broken_greeting() -> None:
    result = fix_salutation("Dear ,\nThanks for reading.", "email")

    assert result.startswith("Dear Hiring Manager,")
    assert "Dear ," not in result


def test_fix_salutation_prepends_when_missing() -> None:
    assert fix_salutation("Quick note about the role.", "linkedin") == "Hi there,\n\nQuick note about the role."


def test_fix_salutation_repairs_greeting_below_headers() -> None:
    text = "To: someone@example.com\nSubject: Application\n\nDear ,\n\nI applied last week."

    result = fix_salutation(text, "email", "Jane Smith")

    assert result == "To: someone@example.com\nSubject: Application\n\nDear Jane,\n\nI applied last week."


def test_fix_salutation_repairs_broken_greeting_anywhere() -> None:
    result = fix_salutation("Thanks for reading.\nMore detail.\nEven more.\nHi ,\nBye", "linkedin", "Sam Lee")

    assert "Hi ," not in result
    assert result.startswith("Hi Sam,\n\nThanks for reading.")


def test_fix_salutation_recognises_long_greeting() -> None:
    text = "Dear Hiring Manager at Acme Corporation Canada Inc.,\n\nI am applying."

    result = fix_salutation(text, "email")

    assert result == "Dear Hiring Manager,\n\nI am applying."


def test_strip_placeholders_removes_bracket_tokens() -> None:
    result = strip_placeholders("Call me any time.\n[Your Phone Number]\n[Your LinkedIn Profile URL]\nBest")

    assert "[" not in result
    assert result.endswith("Best")


def test_fix_contact_email_replaces_existing_to_line() -> None:
    result = fix_contact_email("Dear Sam,\nTo: old@example.com\nBody text", "sam@example.com")

    assert result.startswith("To: sam@example.com\n\n")
    assert result.count("To:") == 1
    assert "old@example.com" not in result


def test_fix_contact_email_without_email_strips_placeholder() -> None:
    result = fix_contact_email("To: [Recruiter Email]\nDear Sam,", None)

    assert "To:" not in result
    assert "[Recruiter Email]" not in result


def test_fix_linkedin_url_prepends_profile_line() -> None:
    result = fix_linkedin_url("Hi Sam,\nLinkedIn: [LinkedIn URL]\nQuick note", "https://linkedin.com/in/sam")

    assert result.startswith("LinkedIn: https://linkedin.com/in/sam\n\n")
    assert result.count("LinkedIn:") == 1


def test_contact_blocks_are_empty_without_values() -> None:
    assert build_contact_email_block(None) == ""
    assert build_linkedin_block("  ") == ""
    assert "To: sam@example.com" in build_contact_email_block("sam@example.com")


def test_personalization_block_caps_excerpt_length() -> None:
    source = SimpleNamespace(source_type="linkedin_post", url="https://example.com/post", pasted_text="x" * 2000)

    block = build_personalization_block([source], max_excerpt_chars=800)

    assert block.startswith(PERSONALIZATION_HEADER)
    assert block.endswith(PERSONALIZATION_FOOTER)
    assert "Source 1 (linkedin_post):" in block
    assert "URL: https://example.com/post" in block
    assert "x" * 800 in block
    assert "x" * 801 not in block
    assert "Never mention 'I saw your LinkedIn'" in block
    assert "Do NOT add personalization to follow-ups" in block


def test_personalization_block_empty_without_sources() -> None:
    assert build_personalization_block([]) == ""


def test_select_sources_prefers_pasted_text_and_limits() -> None:
    sources = [
        SimpleNamespace(id=1, pasted_text=""),
        SimpleNamespace(id=2, pasted_text="Announced a new payments team."),
        SimpleNamespace(id=3, pasted_text=""),
        SimpleNamespace(id=4, pasted_text="Talked about platform reliability."),
    ]

    selected = select_personalization_sources(sources, limit=3)

    assert [source.id for source in selected] == [2, 4, 1]


def test_follow_up_personalization_is_stripped() -> None:
    text = "Hi Sam,\nI saw your recent post about AI. Just following up on my application."

    result = strip_personalization_from_follow_up(text)

    assert result == "Hi Sam,\nJust following up on my application."


def test_validate_personalization_source() -> None:
    validate_personalization_source("company_news", "https://example.com/news", "")

    with pytest.raises(ValidationError):
        validate_personalization_source("tweet", "https://example.com", "")
    with pytest.raises(ValidationError):
        validate_personalization_source("other", "", "too short")
    with pytest.raises(ValidationError):
        validate_personalization_source("other", "ftp://example.com", "")
    with pytest.raises(ValidationError):
        validate_personalization_source("other", "", "")
