from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from resupify.config import Settings, get_settings
from resupify.core.eligibility import (
    build_eligibility_context,
    evaluate_work_auth_flags,
    merge_work_auth_flags,
)
from resupify.core.gate import CreditGate
from resupify.core.scoring import build_breakdown_json, compute_overall_score, rewrite_needs_confirmation
from resupify.db.models import EvidenceRun, JdSnapshot, JobCard, Profile, Requirement, Resume
from resupify.db.repositories import Repository
from resupify.errors import NO_REQUIREMENTS, NO_RESUME, NO_SNAPSHOT, NotFoundError, UpstreamError, ValidationError
from resupify.llm.prompts import EVIDENCE_PROMPT, EVIDENCE_SYSTEM_PROMPT
from resupify.llm.router import CompletionClient, LLMRouter, complete_structured
from resupify.packs import RegionPack, get_region_pack
from resupify.types import EvidencePayload, EvidenceRunResult

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ScanContext:
    user_id: int
    job_card: JobCard
    resume: Resume
    snapshot: JdSnapshot
    requirements: list[Requirement]
    profile: Profile | None
    pack: RegionPack


class EvidenceScorer:
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

    def run(
        self,
        job_card_id: int,
        resume_id: int,
        *,
        user_id: int,
        action_id: str | None = None,
    ) -> EvidenceRunResult:
        context = self.prepare(job_card_id, resume_id, user_id=user_id)
        gate = self.gate or CreditGate(self.repo, self.settings)
        return gate.run(
            user_id=user_id,
            operation="evidence",
            work=lambda charge: self.score(context),
            reference_type="evidence_scan",
            reference_id=f"job_card:{job_card_id}:resume:{resume_id}",
            scope=(job_card_id, resume_id),
            action_id=action_id,
        )

    def prepare(self, job_card_id: int, resume_id: int, *, user_id: int) -> ScanContext:
        job_card = self.repo.require_job_card(job_card_id, user_id)

        requirements = self.repo.list_requirements(job_card.id)
        if not requirements:
            raise ValidationError(
                f"job card {job_card.id} has no requirements; run extraction first",
                code=NO_REQUIREMENTS,
            )

        resume = self.repo.get_resume(resume_id, user_id)
        if resume is None or not resume.content.strip():
            raise ValidationError(f"resume {resume_id} not found or empty", code=NO_RESUME)

        snapshot = self.repo.latest_jd_snapshot(job_card.id)
        if snapshot is None:
            raise ValidationError(f"job card {job_card.id} has no JD snapshot", code=NO_SNAPSHOT)

        profile = self.repo.get_profile(user_id)
        pack = get_region_pack(
            profile.region_code if profile else self.settings.default_region_code,
            profile.track_code if profile else self.settings.default_track_code,
        )
        return ScanContext(
            user_id=user_id,
            job_card=job_card,
            resume=resume,
            snapshot=snapshot,
            requirements=requirements,
            profile=profile,
            pack=pack,
        )

    def score(self, context: ScanContext) -> EvidenceRunResult:
        run = self.repo.create_evidence_run(
            user_id=context.user_id,
            job_card_id=context.job_card.id,
            resume_id=context.resume.id,
            snapshot_id=context.snapshot.id,
            region_code=context.pack.region_code,
            track_code=context.pack.track_code,
            requirement_count=len(context.requirements),
        )

        try:
            completed = self._score_run(run, context)
        except Exception as exc:
            self.repo.fail_evidence_run(run.id, str(exc))
            logger.warning("Evidence run %s failed: %s", run.id, exc)
            raise

        logger.info(
            "Evidence run %s completed job_card=%s score=%s items=%s",
            completed.id,
            context.job_card.id,
            completed.overall_score,
            len(context.requirements),
        )
        return EvidenceRunResult(
            run_id=completed.id,
            score=int(completed.overall_score or 0),
            item_count=len(context.requirements),
        )

    def _score_run(self, run: EvidenceRun, context: ScanContext) -> EvidenceRun:
        pack = context.pack
        requirements = context.requirements
        system = EVIDENCE_SYSTEM_PROMPT.format(
            pack_label=pack.label,
            copy_rules=_copy_rules_text(pack),
            weights=json.dumps(pack.scoring_weights.model_dump()),
            eligibility_context=build_eligibility_context(context.profile, pack),
        )
        prompt = EVIDENCE_PROMPT.format(
            requirement_count=len(requirements),
            requirements_list="\n".join(
                f"{index}. [{requirement.requirement_type}] {requirement.requirement_text}"
                for index, requirement in enumerate(requirements, start=1)
            ),
            jd_text=context.snapshot.text[: self.settings.jd_max_extract_chars],
            resume_text=context.resume.content[: self.settings.resume_max_chars],
        )

        payload = complete_structured(
            self.completion,
            EvidencePayload,
            task="score",
            prompt=prompt,
            system=system,
        ).unwrap()
        if len(payload.items) != len(requirements):
            raise UpstreamError(
                f"completion returned {len(payload.items)} evidence items for {len(requirements)} requirements"
            )

        items = []
        for requirement, item in zip(requirements, payload.items):
            proof = (item.resume_proof or "").strip() or None
            needs_confirmation = (
                item.needs_confirmation
                or rewrite_needs_confirmation(item.rewrite_a, proof)
                or rewrite_needs_confirmation(item.rewrite_b, proof)
            )
            items.append(
                {
                    "requirement_id": requirement.id,
                    "group_type": requirement.requirement_type,
                    "jd_requirement": requirement.requirement_text,
                    "status": item.status,
                    "resume_proof": proof,
                    "fix": item.fix.strip(),
                    "rewrite_a": item.rewrite_a.strip(),
                    "rewrite_b": item.rewrite_b.strip(),
                    "why_it_matters": item.why_it_matters.strip(),
                    "needs_confirmation": needs_confirmation,
                }
            )

        flags = merge_work_auth_flags(
            evaluate_work_auth_flags(context.snapshot.text, context.profile, pack),
            payload.work_auth_flags,
        )
        scored_items = [(item["group_type"], item["status"]) for item in items]
        category_weights = self.settings.category_weights
        blend = self.settings.score_pack_blend
        computation = compute_overall_score(
            scored_items,
            payload.breakdown,
            pack_weights=pack.scoring_weights,
            category_weights=category_weights,
            blend=blend,
            flags=flags,
        )
        breakdown = build_breakdown_json(
            payload.breakdown,
            computation,
            statuses=[status for _, status in scored_items],
            pack_weights=pack.scoring_weights,
            category_weights=category_weights,
            blend=blend,
            flags=flags,
            model_flags=payload.flags,
        )
        return self.repo.complete_evidence_run(
            run.id,
            score=computation.overall,
            summary=payload.summary.strip(),
            breakdown=breakdown,
            items=items,
        )

    def get_run(self, run_id: int, *, user_id: int) -> dict[str, Any]:
        run = self.repo.get_evidence_run(run_id, user_id)
        if run is None:
            raise NotFoundError(f"evidence run {run_id} not found")
        return serialize_run(run, self.repo.list_evidence_items(run.id))

    def history(self, job_card_id: int, resume_id: int, *, user_id: int) -> list[dict[str, Any]]:
        self.repo.require_job_card(job_card_id, user_id)
        return [
            {
                "run_id": entry.run_id,
                "score": entry.score,
                "created_at": entry.created_at.isoformat() if entry.created_at else None,
            }
            for entry in self.repo.list_score_history(job_card_id, resume_id)
        ]


def _copy_rules_text(pack: RegionPack) -> str:
    rules = []
    if pack.copy_rules.no_invented_facts:
        rules.append("- NEVER invent facts not in the resume.")
    if pack.copy_rules.convert_projects_to_experience:
        rules.append("- If no direct experience, convert projects/clubs/volunteering into relevant bullets.")
    return "\n".join(rules)


def serialize_run(run: EvidenceRun, items: list[Any]) -> dict[str, Any]:
    return {
        "id": run.id,
        "job_card_id": run.job_card_id,
        "resume_id": run.resume_id,
        "status": run.status,
        "overall_score": run.overall_score,
        "summary": run.summary,
        "region_code": run.region_code,
        "track_code": run.track_code,
        "requirement_count": run.requirement_count,
        "score_breakdown": run.score_breakdown_json,
        "error": run.error or None,
        "completed_at": run.completed_at.isoformat() if run.completed_at else None,
        "items": [
            {
                "id": item.id,
                "requirement_id": item.requirement_id,
                "group_type": item.group_type,
                "jd_requirement": item.jd_requirement,
                "status": item.status,
                "resume_proof": item.resume_proof,
                "fix": item.fix,
                "rewrite_a": item.rewrite_a,
                "rewrite_b": item.rewrite_b,
                "why_it_matters": item.why_it_matters,
                "needs_confirmation": item.needs_confirmation,
            }
            for item in items
        ],
    }
