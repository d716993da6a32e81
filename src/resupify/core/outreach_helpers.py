from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from typing import Any, get_args

from resupify.errors import ValidationError
from resupify.types import OutreachChannel, PersonalizationSourceType

EMAIL_FALLBACK_SALUTATION = "Dear Hiring Manager,"
LINKEDIN_FALLBACK_SALUTATION = "Hi there,"

CONTACT_EMAIL_PLACEHOLDERS = ("[Recruiter Email]", "[Recruiter's Email]")
LINKEDIN_URL_PLACEHOLDERS = ("[LinkedIn Profile URL]", "[LinkedIn URL]", "[Your LinkedIn Profile URL]")
NAMED_PLACEHOLDERS = (
    "[Your Phone Number]",
    "[Your LinkedIn Profile URL]",
    "[Your LinkedIn URL]",
    "[LinkedIn Profile]",
    "[Phone]",
)

PERSONALIZATION_SIGNALS = (
    "i noticed",
    "i saw your",
    "i saw that",
    "your recent post",
    "your recent article",
    "your post about",
    "i read your",
    "i came across your",
    "congratulations on",
    "congrats on",
    "your linkedin",
)

PERSONALIZATION_HEADER = "=== PERSONALIZATION CONTEXT (USER-PROVIDED) ==="
PERSONALIZATION_FOOTER = "=== END PERSONALIZATION CONTEXT ==="

_GREETING = re.compile(r"^[ \t]*(?:dear|hi|hello|hey)\b[^,!:\n]{0,120}[,!:]", re.IGNORECASE)
_BROKEN_GREETING = re.compile(r"^[ \t]*(?:dear|hi)[ \t]*,", re.IGNORECASE | re.MULTILINE)
_HEADER_LINE = re.compile(r"^[ \t]*(?:to|cc|subject|re|linkedin):", re.IGNORECASE)
_GENERIC_PLACEHOLDER = re.compile(r"\[[^\]\n]{1,60}\]")
_TO_LINE = re.compile(r"^[ \t]*To:[^\n]*(?:\n|$)", re.IGNORECASE | re.MULTILINE)
_LINKEDIN_LINE = re.compile(r"^[ \t]*LinkedIn:[^\n]*(?:\n|$)", re.IGNORECASE | re.MULTILINE)
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


def _tidy(text: str) -> str:
    result = re.sub(r"[ \t]{2,}", " ", text)
    result = re.sub(r"[ \t]+\n", "\n", result)
    result = re.sub(r"\n{3,}", "\n\n", result)
    return result.strip()


def _remove_literals(text: str, literals: Iterable[str]) -> str:
    result = text
    for literal in literals:
        result = re.sub(re.escape(literal), "", result, flags=re.IGNORECASE)
    return result


def extract_first_name(full_name: str | None) -> str | None:
    if not full_name:
        return None
    parts = full_name.strip().split()
    return parts[0] if parts else None


def compute_salutation(contact_name: str | None, channel: OutreachChannel) -> str:
    first_name = extract_first_name(contact_name)
    if channel == "linkedin":
        return f"Hi {first_name}," if first_name else LINKEDIN_FALLBACK_SALUTATION
    return f"Dear {first_name}," if first_name else EMAIL_FALLBACK_SALUTATION


def fix_salutation(text: str, channel: OutreachChannel, contact_name: str | None = None) -> str:
    """Force the opening greeting to the computed salutation.

    Broken forms like ``Dear ,`` are repaired anywhere in the text. A greeting on one of
    the first three lines after any ``To:``/``Subject:`` headers is replaced in place;
    otherwise the salutation is prepended.
    """
    salutation = compute_salutation(contact_name, channel)
    if not text or not text.strip():
        return salutation

    repaired = _BROKEN_GREETING.sub(lambda _: salutation, text.strip())
    lines = repaired.split("\n")
    content_lines = 0
    for index, line in enumerate(lines):
        if not line.strip() or _HEADER_LINE.match(line):
            continue
        match = _GREETING.match(line)
        if match is not None:
            rest = line[match.end() :].strip()
            lines[index] = f"{salutation} {rest}" if rest else salutation
            return "\n".join(lines)
        content_lines += 1
        if content_lines >= 3:
            break

    return f"{salutation}\n\n{repaired}"


def strip_placeholders(text: str) -> str:
    if not text:
        return text
    result = _remove_literals(text, NAMED_PLACEHOLDERS)
    result = _GENERIC_PLACEHOLDER.sub("", result)
    return _tidy(result)


def fix_contact_email(text: str, email: str | None) -> str:
    cleaned = _TO_LINE.sub("", _remove_literals(text, CONTACT_EMAIL_PLACEHOLDERS))
    if cleaned != text:
        cleaned = _tidy(cleaned)

    email = (email or "").strip()
    if not email:
        return cleaned
    return f"To: {email}\n\n{cleaned}".rstrip()


def fix_linkedin_url(text: str, url: str | None) -> str:
    cleaned = _LINKEDIN_LINE.sub("", _remove_literals(text, LINKEDIN_URL_PLACEHOLDERS))
    if cleaned != text:
        cleaned = _tidy(cleaned)

    url = (url or "").strip()
    if not url:
        return cleaned
    return f"LinkedIn: {url}\n\n{cleaned}".rstrip()


def build_contact_email_block(email: str | None) -> str:
    email = (email or "").strip()
    if not email:
        return ""
    return (
        "=== CONTACT EMAIL ===\n"
        f"The recruiter's email is {email}.\n"
        f"Start recruiter_email with the line: To: {email}\n"
        "Do NOT add a To: line to linkedin_dm, follow_up_1, or follow_up_2."
    )


def build_linkedin_block(url: str | None) -> str:
    url = (url or "").strip()
    if not url:
        return ""
    return (
        "=== CONTACT LINKEDIN ===\n"
        f"The contact's LinkedIn profile is {url}.\n"
        f"Start linkedin_dm with the line: LinkedIn: {url}\n"
        "Do NOT add a LinkedIn: line to recruiter_email."
    )


def select_personalization_sources(sources: Sequence[Any], limit: int = 3) -> list[Any]:
    """Most relevant first: sources with pasted text, then the caller's (most recent first) order."""
    ranked = sorted(sources, key=lambda source: not (getattr(source, "pasted_text", "") or "").strip())
    return ranked[:limit]


def build_personalization_block(sources: Sequence[Any] | None, max_excerpt_chars: int = 800) -> str:
    if not sources:
        return ""

    lines = [
        PERSONALIZATION_HEADER,
        "Rules:",
        "- Use at most one light, specific reference in recruiter_email and linkedin_dm.",
        "- Never mention 'I saw your LinkedIn' or imply monitoring the contact.",
        "- Do NOT add personalization to follow-ups.",
        "- If the context is not relevant to the role, ignore it.",
        "",
    ]
    for index, source in enumerate(sources, start=1):
        lines.append(f"Source {index} ({getattr(source, 'source_type', 'other') or 'other'}):")
        url = (getattr(source, "url", "") or "").strip()
        if url:
            lines.append(f"URL: {url}")
        excerpt = (getattr(source, "pasted_text", "") or "").strip()[:max_excerpt_chars]
        if excerpt:
            lines.append(f"Excerpt: {excerpt}")
        lines.append("")
    lines.append(PERSONALIZATION_FOOTER)
    return "\n".join(lines)


def has_personalization_signal(text: str) -> bool:
    lower = (text or "").lower()
    return any(signal in lower for signal in PERSONALIZATION_SIGNALS)


def strip_personalization_from_follow_up(text: str) -> str:
    if not text or not has_personalization_signal(text):
        return text

    kept_lines: list[str] = []
    for line in text.split("\n"):
        if not has_personalization_signal(line):
            kept_lines.append(line)
            continue
        sentences = [sentence for sentence in _SENTENCE_SPLIT.split(line) if not has_personalization_signal(sentence)]
        if sentences:
            kept_lines.append(" ".join(sentences))
    return _tidy("\n".join(kept_lines))


def validate_personalization_source(
    source_type: str,
    url: str | None,
    pasted_text: str | None,
    *,
    min_text_chars: int = 50,
    max_text_chars: int = 5000,
) -> None:
    if source_type not in get_args(PersonalizationSourceType):
        raise ValidationError(f"unsupported personalization source type '{source_type}'")

    url = (url or "").strip()
    text = (pasted_text or "").strip()
    if url and not url.lower().startswith(("http://", "https://")):
        raise ValidationError("personalization url must start with http:// or https://")
    if len(text) > max_text_chars:
        raise ValidationError(f"pasted text must be at most {max_text_chars} characters")
    if text and len(text) < min_text_chars and not url:
        raise ValidationError(f"pasted text must be at least {min_text_chars} characters")
    if not url and not text:
        raise ValidationError("a personalization source needs a url or pasted text")
