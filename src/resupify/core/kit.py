from __future__ import annotations

import logging
from collections.abc import Sequence

from resupify.config import Settings, get_settings
from resupify.core.filenames import build_kit_filenames
from resupify.core.gate import CreditGate
from resupify.core.outreach_helpers import strip_placeholders
from resupify.core.scoring import rewrite_needs_confirmation
from resupify.core.tone import sanitize_tone
from resupify.db.models import ApplicationKit, EvidenceItem
from resupify.db.repositories import Repository
from resupify.errors import (
    CONFIRMATION_REQUIRED,
    NO_EVIDENCE_RUN,
    NO_REQUIREMENTS,
    ConflictError,
    UpstreamError,
    ValidationError,
)
from resupify.llm.prompts import KIT_PROMPT, KIT_SYSTEM_PROMPT
from resupify.llm.router import CompletionClient, LLMRouter, complete_structured
from resupify.packs import get_region_pack
from resupify.types import TONES, BulletRewrite, KitPayload, KitResult, TopChange

logger = logging.getLogger(__name__)

STATUS_PRIORITY = {"missing": 2, "partial": 1}
GROUP_PRIORITY = {"eligibility": 4, "tool": 3, "responsibility": 3, "skill": 2, "softskill": 1}
TOP_CHANGES_LIMIT = 5
BULLET_REWRITES_LIMIT = 15

TONE_INSTRUCTIONS = {
    "Human": "Write naturally and conversationally, like a real person. Avoid corporate buzzwords.",
    "Confident": "Write assertively. Lead with outcomes and own the accomplishments without hedging.",
    "Warm": "Write with warmth and enthusiasm. Show genuine interest in the team and mission.",
    "Direct": "Write concisely. No fluff. Short sentences that get to the point.",
}


def prioritize_gaps(items: Sequence[EvidenceItem]) -> list[EvidenceItem]:
    """Missing/partial items ordered by status weight times group weight; ties keep run order."""
    gaps = [item for item in items if item.status in STATUS_PRIORITY]
    return sorted(
        gaps,
        key=lambda item: -(STATUS_PRIORITY[item.status] * GROUP_PRIORITY.get(item.group_type, 1)),
    )


class ApplicationKitGenerator:
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

    def generate(
        self,
        job_card_id: int,
        resume_id: int,
        evidence_run_id: int,
        *,
        user_id: int,
        tone: str = "Human",
        confirm_overwrite: bool = False,
        action_id: str | None = None,
    ) -> KitResult:
        if tone not in TONES:
            raise ValidationError(f"tone must be one of {list(TONES)}")

        job_card = self.repo.require_job_card(job_card_id, user_id)
        run = self.repo.get_evidence_run(evidence_run_id, user_id)
        if (
            run is None
            or run.job_card_id != job_card.id
            or run.resume_id != resume_id
            or run.status != "completed"
        ):
            raise ValidationError(
                "a completed evidence scan for this job card and resume is required",
                code=NO_EVIDENCE_RUN,
            )
        if not self.repo.list_requirements(job_card.id):
            raise ValidationError(f"job card {job_card.id} has no requirements", code=NO_REQUIREMENTS)

        existing = self.repo.get_application_kit(job_card.id, resume_id, run.id)
        if existing is not None and not confirm_overwrite:
            raise ConflictError(
                "an application kit already exists for this scan; confirm to regenerate",
                code=CONFIRMATION_REQUIRED,
            )

        gate = self.gate or CreditGate(self.repo, self.settings)
        return gate.run(
            user_id=user_id,
            operation="kit",
            work=lambda charge: self._build(job_card_id=job_card.id, run_id=run.id, user_id=user_id, tone=tone),
            reference_type="application_kit",
            reference_id=f"evidence_run:{run.id}",
            scope=(job_card.id, resume_id, run.id),
            action_id=action_id,
        )

    def _build(self, *, job_card_id: int, run_id: int, user_id: int, tone: str) -> KitResult:
        job_card = self.repo.require_job_card(job_card_id, user_id)
        run = self.repo.get_evidence_run(run_id, user_id)
        resume = self.repo.get_resume(run.resume_id, user_id)
        user = self.repo.get_user(user_id)
        pack = get_region_pack(run.region_code, run.track_code)

        gaps = prioritize_gaps(self.repo.list_evidence_items(run.id))
        top_items = gaps[:TOP_CHANGES_LIMIT]
        rewrite_items = gaps[:BULLET_REWRITES_LIMIT]

        system = KIT_SYSTEM_PROMPT.format(
            pack_label=pack.label,
            tone_label=tone,
            tone_instruction=TONE_INSTRUCTIONS[tone],
            cover_letter_style=pack.templates.cover_letter_style,
        )
        prompt = KIT_PROMPT.format(
            top_change_ids=[item.id for item in top_items],
            rewrite_ids=[item.id for item in rewrite_items],
            job_title=job_card.title or "the role",
            company=job_card.company or "the company",
            gaps="\n".join(
                f"- item_id={item.id} [{item.status}/{item.group_type}] {item.jd_requirement}"
                f" | proof: {item.resume_proof or 'none'} | fix: {item.fix}"
                for item in rewrite_items
            )
            or "- none (every requirement is matched)",
            resume_text=(resume.content if resume else "")[: self.settings.resume_max_chars],
        )
        payload = complete_structured(
            self.completion,
            KitPayload,
            task="writer",
            prompt=prompt,
            system=system,
        ).unwrap()

        cover_letter = sanitize_tone(strip_placeholders(payload.cover_letter_text))
        if not cover_letter:
            raise UpstreamError("completion returned an empty cover letter")

        top_changes = self._merge_top_changes(top_items, payload)
        bullet_rewrites = self._merge_bullet_rewrites(rewrite_items, payload)
        kit = self.repo.upsert_application_kit(
            user_id=user_id,
            job_card_id=job_card.id,
            resume_id=run.resume_id,
            evidence_run_id=run.id,
            values={
                "region_code": pack.region_code,
                "track_code": pack.track_code,
                "tone": tone,
                "top_changes_json": [change.model_dump() for change in top_changes],
                "bullet_rewrites_json": [rewrite.model_dump() for rewrite in bullet_rewrites],
                "cover_letter_text": cover_letter,
            },
        )
        logger.info("Application kit %s generated job_card=%s run=%s tone=%s", kit.id, job_card.id, run.id, tone)
        return serialize_kit(kit, full_name=user.name if user else "", company=job_card.company)

    @staticmethod
    def _merge_top_changes(items: Sequence[EvidenceItem], payload: KitPayload) -> list[TopChange]:
        fixes = {change.item_id: change.fix.strip() for change in payload.top_changes}
        return [
            TopChange(
                item_id=item.id,
                requirement_id=item.requirement_id,
                requirement_type=item.group_type,
                requirement_text=item.jd_requirement,
                status=item.status,
                fix=fixes.get(item.id) or item.fix,
            )
            for item in items
        ]

    @staticmethod
    def _merge_bullet_rewrites(items: Sequence[EvidenceItem], payload: KitPayload) -> list[BulletRewrite]:
        rewrites = {rewrite.item_id: rewrite for rewrite in payload.bullet_rewrites}
        merged = []
        for item in items:
            generated = rewrites.get(item.id)
            rewrite_a = (generated.rewrite_a.strip() if generated else "") or item.rewrite_a
            rewrite_b = (generated.rewrite_b.strip() if generated else "") or item.rewrite_b
            needs_confirmation = (
                item.needs_confirmation
                or (generated is not None and generated.needs_confirmation)
                or rewrite_needs_confirmation(rewrite_a, item.resume_proof)
                or rewrite_needs_confirmation(rewrite_b, item.resume_proof)
            )
            merged.append(
                BulletRewrite(
                    item_id=item.id,
                    requirement_id=item.requirement_id,
                    requirement_text=item.jd_requirement,
                    resume_proof=item.resume_proof,
                    rewrite_a=rewrite_a,
                    rewrite_b=rewrite_b,
                    needs_confirmation=needs_confirmation,
                )
            )
        return merged


def serialize_kit(kit: ApplicationKit, *, full_name: str, company: str) -> KitResult:
    return KitResult(
        kit_id=kit.id,
        job_card_id=kit.job_card_id,
        resume_id=kit.resume_id,
        evidence_run_id=kit.evidence_run_id,
        tone=kit.tone,
        top_changes=[TopChange.model_validate(change) for change in kit.top_changes_json],
        bullet_rewrites=[BulletRewrite.model_validate(rewrite) for rewrite in kit.bullet_rewrites_json],
        cover_letter_text=kit.cover_letter_text,
        filenames=build_kit_filenames(full_name, company),
    )
