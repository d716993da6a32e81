from __future__ import annotations

import logging
from typing import Any

from resupify.config import Settings, get_settings
from resupify.core.gate import CreditGate
from resupify.core.outreach_helpers import (
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
from resupify.core.tone import build_tone_system_prompt, sanitize_tone
from resupify.db.models import OutreachPack, PersonalizationSource
from resupify.db.repositories import Repository
from resupify.errors import NotFoundError, ValidationError
from resupify.llm.prompts import OUTREACH_PROMPT, OUTREACH_SYSTEM_PROMPT
from resupify.llm.router import CompletionClient, LLMRouter, complete_structured
from resupify.packs import get_region_pack
from resupify.types import TONES, OutreachPayload, OutreachResult

logger = logging.getLogger(__name__)


def postprocess_outreach(
    payload: OutreachPayload,
    *,
    contact_name: str | None = None,
    contact_email: str | None = None,
    contact_linkedin_url: str | None = None,
) -> dict[str, str]:
    recruiter_email = fix_salutation(strip_placeholders(payload.recruiter_email), "email", contact_name)
    recruiter_email = fix_contact_email(sanitize_tone(recruiter_email), contact_email)

    linkedin_dm = fix_salutation(strip_placeholders(payload.linkedin_dm), "linkedin", contact_name)
    linkedin_dm = fix_linkedin_url(fix_contact_email(sanitize_tone(linkedin_dm), None), contact_linkedin_url)

    follow_ups = {}
    for key in ("follow_up_1", "follow_up_2"):
        text = strip_personalization_from_follow_up(strip_placeholders(getattr(payload, key)))
        text = fix_salutation(text, "email", contact_name)
        follow_ups[key] = sanitize_tone(fix_contact_email(text, None), is_follow_up=True)

    return {"recruiter_email": recruiter_email, "linkedin_dm": linkedin_dm, **follow_ups}


class OutreachGenerator:
    def __init__(
        self,
        repo: Repository,
        completion: CompletionClient | None = None,
        settings: Settings | None = None,
        gate: CreditGate | None = None,
    ):
        self.repo = repo
        self.settings = settings or get_settings()
        self.completion = completion or LLMRouter(self.settings)
        self.gate = gate

    def generate_pack(
        self,
        job_card_id: int,
        *,
        user_id: int,
        contact_id: int | None = None,
        tone: str | None = None,
        action_id: str | None = None,
    ) -> OutreachResult:
        if tone is not None and tone not in TONES:
            raise ValidationError(f"tone must be one of {list(TONES)}")

        job_card = self.repo.require_job_card(job_card_id, user_id)
        if contact_id is not None and self.repo.get_contact(contact_id, user_id) is None:
            raise NotFoundError(f"contact {contact_id} not found")

        gate = self.gate or CreditGate(self.repo, self.settings)
        return gate.run(
            user_id=user_id,
            operation="outreach",
            work=lambda charge: self._build(job_card.id, user_id=user_id, contact_id=contact_id, tone=tone),
            reference_type="outreach_pack",
            reference_id=f"job_card:{job_card.id}",
            scope=(job_card.id, contact_id),
            action_id=action_id,
        )

    def _build(self, job_card_id: int, *, user_id: int, contact_id: int | None, tone: str | None) -> OutreachResult:
        job_card = self.repo.require_job_card(job_card_id, user_id)
        contact = self.repo.get_contact(contact_id, user_id) if contact_id is not None else None
        user = self.repo.get_user(user_id)
        profile = self.repo.get_profile(user_id)
        pack = get_region_pack(
            profile.region_code if profile else self.settings.default_region_code,
            profile.track_code if profile else self.settings.default_track_code,
        )

        contact_name = contact.name if contact else None
        contact_email = contact.email if contact else None
        contact_linkedin = contact.linkedin_url if contact else None

        sources = select_personalization_sources(
            self.repo.list_personalization_sources(job_card.id),
            limit=self.settings.personalization_max_sources,
        )
        system = OUTREACH_SYSTEM_PROMPT.format(
            pack_label=pack.label,
            tone=tone or pack.templates.outreach_tone,
            tone_rules=build_tone_system_prompt(),
        )
        prompt = OUTREACH_PROMPT.format(
            email_salutation=compute_salutation(contact_name, "email"),
            linkedin_salutation=compute_salutation(contact_name, "linkedin"),
            job_title=job_card.title or "the role",
            company=job_card.company or "the company",
            contact_summary=_contact_summary(contact),
            signature=_signature_lines(user, profile),
            contact_email_block=build_contact_email_block(contact_email),
            linkedin_block=build_linkedin_block(contact_linkedin),
            personalization_block=build_personalization_block(
                sources,
                max_excerpt_chars=self.settings.personalization_excerpt_chars,
            ),
        )
        payload = complete_structured(
            self.completion,
            OutreachPayload,
            task="writer",
            prompt=prompt,
            system=system,
        ).unwrap()

        messages = postprocess_outreach(
            payload,
            contact_name=contact_name,
            contact_email=contact_email,
            contact_linkedin_url=contact_linkedin,
        )
        pack_row = self.repo.upsert_outreach_pack(
            user_id=user_id,
            job_card_id=job_card.id,
            contact_id=contact.id if contact else None,
            messages=messages,
        )
        logger.info(
            "Outreach pack %s generated job_card=%s personalization_sources=%s",
            pack_row.id,
            job_card.id,
            len(sources),
        )
        return serialize_outreach_pack(pack_row)

    def save_personalization_source(
        self,
        job_card_id: int,
        *,
        user_id: int,
        source_type: str,
        url: str = "",
        pasted_text: str = "",
        source_id: int | None = None,
    ) -> PersonalizationSource:
        self.repo.require_job_card(job_card_id, user_id)
        validate_personalization_source(
            source_type,
            url,
            pasted_text,
            min_text_chars=self.settings.personalization_min_text_chars,
            max_text_chars=self.settings.personalization_max_text_chars,
        )
        limit = self.settings.personalization_sources_per_job
        if source_id is None and self.repo.count_personalization_sources(job_card_id) >= limit:
            raise ValidationError(f"a job card can hold at most {limit} personalization sources")

        return self.repo.save_personalization_source(
            user_id=user_id,
            job_card_id=job_card_id,
            source_type=source_type,
            url=url.strip(),
            pasted_text=pasted_text.strip(),
            source_id=source_id,
        )


def _contact_summary(contact: Any) -> str:
    if contact is None:
        return "unknown (address the hiring team)"
    parts = [contact.name or "unnamed contact"]
    if contact.role:
        parts.append(contact.role)
    if contact.company:
        parts.append(contact.company)
    return ", ".join(parts)


def _signature_lines(user: Any, profile: Any) -> str:
    lines = []
    if user is not None and user.name:
        lines.append(user.name)
    if profile is not None and profile.phone:
        lines.append(profile.phone)
    if profile is not None and profile.linkedin_url:
        lines.append(profile.linkedin_url)
    return "\n".join(lines) or "(name only)"


def serialize_outreach_pack(pack: OutreachPack) -> OutreachResult:
    return OutreachResult(
        pack_id=pack.id,
        job_card_id=pack.job_card_id,
        contact_id=pack.contact_id,
        recruiter_email=pack.recruiter_email,
        linkedin_dm=pack.linkedin_dm,
        follow_up_1=pack.follow_up_1,
        follow_up_2=pack.follow_up_2,
    )
