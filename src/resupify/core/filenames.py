from __future__ import annotations

import re
from datetime import date as date_type

from resupify.types import ArtifactCategory

# Label and extension per category; labels are distinct so names never collide across categories.
CATEGORY_FORMATS: dict[str, tuple[str, str]] = {
    "cover_letter": ("Cover_Letter", "txt"),
    "resume_patch": ("Resume_Patch", "txt"),
    "top_changes": ("Top_Changes", "txt"),
    "application_kit": ("Application_Kit", "zip"),
    "outreach_pack": ("Outreach_Pack", "txt"),
}

_FORBIDDEN = re.compile(r'[/\\:*?"<>|]')


def sanitize_segment(segment: str) -> str:
    return re.sub(r"\s+", " ", _FORBIDDEN.sub("", segment or "")).strip()


def name_part(full_name: str | None) -> str:
    parts = sanitize_segment(full_name or "User").split()
    if not parts:
        return "User"
    if len(parts) == 1:
        return parts[0]
    return f"{parts[0]}_{parts[-1]}"


def build_artifact_filename(
    full_name: str | None,
    company: str | None,
    category: ArtifactCategory,
    on_date: date_type | None = None,
) -> str:
    """``First_Last - Label - Company - YYYY-MM-DD.ext`` with forbidden characters removed."""
    if category not in CATEGORY_FORMATS:
        raise ValueError(f"unknown artifact category '{category}'")

    label, extension = CATEGORY_FORMATS[category]
    company_part = sanitize_segment(company or "") or "Company"
    day = (on_date or date_type.today()).isoformat()
    return f"{name_part(full_name)} - {label} - {company_part} - {day}.{extension}"


def build_kit_filenames(full_name: str | None, company: str | None, on_date: date_type | None = None) -> dict[str, str]:
    return {
        category: build_artifact_filename(full_name, company, category, on_date)  # type: ignore[arg-type]
        for category in ("cover_letter", "resume_patch", "top_changes", "application_kit")
    }
