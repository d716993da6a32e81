from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError as SchemaValidationError

from resupify.config import Settings, get_settings
from resupify.db.models import JobCard
from resupify.db.repositories import Repository
from resupify.errors import NO_SNAPSHOT, ExtractionFailedError, ValidationError
from resupify.llm.prompts import EXTRACTION_PROMPT, EXTRACTION_SYSTEM_PROMPT
from resupify.llm.router import CompletionClient, LLMRouter, complete_json
from resupify.types import REQUIREMENT_TYPES, ExtractedRequirement, ExtractionPayload

logger = logging.getLogger(__name__)

PLACEHOLDER_TITLES = {"", "untitled job"}


@dataclass(slots=True)
class ExtractionResult:
    job_card_id: int
    count: int
    requirements: list[tuple[str, str]] = field(default_factory=list)
    filled_fields: dict[str, str] = field(default_factory=dict)


def normalize_requirements(raw_items: list[Any]) -> list[tuple[str, str]]:
    """Keep items with an in-vocabulary type and non-blank text, dropping exact repeats."""
    seen: set[tuple[str, str]] = set()
    items: list[tuple[str, str]] = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        try:
            item = ExtractedRequirement.model_validate(raw)
        except SchemaValidationError:
            continue

        requirement_type = item.requirement_type.strip().lower()
        requirement_text = " ".join(item.requirement_text.split())
        if requirement_type not in REQUIREMENT_TYPES or not requirement_text:
            continue

        key = (requirement_type, requirement_text.casefold())
        if key in seen:
            continue
        seen.add(key)
        items.append((requirement_type, requirement_text))
    return items


def parse_extraction_payload(data: Any) -> ExtractionPayload:
    if isinstance(data, list):
        return ExtractionPayload(requirements=[item for item in data if isinstance(item, dict)])
    if isinstance(data, dict):
        try:
            return ExtractionPayload.model_validate(data)
        except SchemaValidationError as exc:
            raise ExtractionFailedError("extraction payload has an unexpected shape") from exc
    raise ExtractionFailedError("extraction payload is neither a list nor an object")


def job_card_autofill(job_card: JobCard, payload: ExtractionPayload) -> dict[str, str]:
    fields: dict[str, str] = {}
    if job_card.title.strip().lower() in PLACEHOLDER_TITLES and payload.job_title.strip():
        fields["title"] = payload.job_title.strip()
    if not job_card.company.strip() and payload.company_name.strip():
        fields["company"] = payload.company_name.strip()
    if not job_card.location.strip() and payload.location.strip():
        fields["location"] = payload.location.strip()
    if not job_card.job_type.strip() and payload.job_type.strip():
        fields["job_type"] = payload.job_type.strip()
    return fields


class RequirementExtractor:
    def __init__(
        self,
        repo: Repository,
        completion: CompletionClient | None = None,
        settings: Settings | None = None,
    ):
        self.repo = repo
        self.settings = settings or get_settings()
        self.completion = completion or LLMRouter(self.settings)

    def extract(self, job_card_id: int, user_id: int | None = None) -> ExtractionResult:
        job_card = self.repo.require_job_card(job_card_id, user_id)
        snapshot = self.repo.latest_jd_snapshot(job_card.id)
        if snapshot is None:
            raise ValidationError("no JD snapshot found; paste a job description first", code=NO_SNAPSHOT)

        jd_text = snapshot.text[: self.settings.jd_max_extract_chars]
        result = complete_json(
            self.completion,
            task="extract",
            prompt=EXTRACTION_PROMPT.format(jd_text=jd_text),
            system=EXTRACTION_SYSTEM_PROMPT,
        )
        data = result.unwrap(ExtractionFailedError)

        payload = parse_extraction_payload(data)
        requirements = normalize_requirements(payload.requirements)
        if not requirements:
            raise ExtractionFailedError("no valid requirements in extraction output")

        filled = job_card_autofill(job_card, payload)
        self.repo.replace_requirements(job_card.id, snapshot.id, requirements, job_card_fields=filled)
        logger.info(
            "Extracted %s requirement(s) for job_card=%s snapshot_version=%s",
            len(requirements),
            job_card.id,
            snapshot.version,
        )
        return ExtractionResult(
            job_card_id=job_card.id,
            count=len(requirements),
            requirements=requirements,
            filled_fields=filled,
        )
