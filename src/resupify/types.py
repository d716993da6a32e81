from __future__ import annotations

from typing import Any, Literal, get_args

from pydantic import BaseModel, Field, field_validator

RequirementType = Literal["skill", "tool", "responsibility", "softskill", "eligibility"]
EvidenceStatus = Literal["matched", "partial", "missing"]
RunStatus = Literal["pending", "completed", "failed"]
Tone = Literal["Human", "Confident", "Warm", "Direct"]
OutreachChannel = Literal["email", "linkedin"]
WorkStatus = Literal["citizen_pr", "temporary_resident", "unknown"]
SponsorshipNeed = Literal["true", "false", "unknown"]
PersonalizationSourceType = Literal["linkedin_post", "linkedin_about", "company_news", "job_post", "other"]
ArtifactCategory = Literal["cover_letter", "resume_patch", "top_changes", "application_kit", "outreach_pack"]
PrecheckStatus = Literal["none", "recommended", "conflict"]
SprintStatus = Literal["running", "completed", "partial", "failed"]

REQUIREMENT_TYPES: tuple[str, ...] = get_args(RequirementType)
EVIDENCE_STATUSES: tuple[str, ...] = get_args(EvidenceStatus)
TONES: tuple[str, ...] = get_args(Tone)
SCORE_CATEGORIES = ("evidence_strength", "keyword_coverage", "formatting_ats", "role_fit")


class ModelResponse(BaseModel):
    content: str
    raw: dict[str, Any] = Field(default_factory=dict)


class ExtractedRequirement(BaseModel):
    requirement_type: str = ""
    requirement_text: str = ""


class ExtractionPayload(BaseModel):
    requirements: list[dict[str, Any]] = Field(default_factory=list)
    company_name: str = ""
    job_title: str = ""
    location: str = ""
    job_type: str = ""


class CategoryScore(BaseModel):
    score: float
    explanation: str = ""

    @field_validator("score")
    @classmethod
    def validate_score(cls, value: float) -> float:
        if value < 0 or value > 100:
            raise ValueError("category score must be between 0 and 100")
        return value


class EvidenceStrengthScore(CategoryScore):
    matched_count: int = 0
    partial_count: int = 0
    missing_count: int = 0


class ScoreBreakdownPayload(BaseModel):
    evidence_strength: EvidenceStrengthScore
    keyword_coverage: CategoryScore
    formatting_ats: CategoryScore
    role_fit: CategoryScore


class EvidenceItemPayload(BaseModel):
    status: EvidenceStatus
    group_type: RequirementType
    resume_proof: str | None = None
    fix: str = ""
    rewrite_a: str = ""
    rewrite_b: str = ""
    why_it_matters: str = ""
    needs_confirmation: bool = False


class WorkAuthFlag(BaseModel):
    rule_id: str
    title: str = ""
    guidance: str = ""
    penalty: int = 0


class EvidencePayload(BaseModel):
    summary: str = ""
    items: list[EvidenceItemPayload]
    breakdown: ScoreBreakdownPayload
    flags: list[str] = Field(default_factory=list)
    work_auth_flags: list[WorkAuthFlag] = Field(default_factory=list)


class TopChangePayload(BaseModel):
    item_id: int
    fix: str = ""


class BulletRewritePayload(BaseModel):
    item_id: int
    rewrite_a: str = ""
    rewrite_b: str = ""
    needs_confirmation: bool = False


class KitPayload(BaseModel):
    top_changes: list[TopChangePayload] = Field(default_factory=list)
    bullet_rewrites: list[BulletRewritePayload] = Field(default_factory=list)
    cover_letter_text: str = Field(min_length=1)


class OutreachPayload(BaseModel):
    recruiter_email: str
    linkedin_dm: str
    follow_up_1: str
    follow_up_2: str


class EvidenceRunResult(BaseModel):
    run_id: int
    score: int
    item_count: int


class TopChange(BaseModel):
    item_id: int
    requirement_id: int | None = None
    requirement_type: RequirementType
    requirement_text: str
    status: EvidenceStatus
    fix: str = ""


class BulletRewrite(BaseModel):
    item_id: int
    requirement_id: int | None = None
    requirement_text: str
    resume_proof: str | None = None
    rewrite_a: str = ""
    rewrite_b: str = ""
    needs_confirmation: bool = False


class KitResult(BaseModel):
    kit_id: int
    job_card_id: int
    resume_id: int
    evidence_run_id: int
    tone: Tone
    top_changes: list[TopChange] = Field(default_factory=list)
    bullet_rewrites: list[BulletRewrite] = Field(default_factory=list)
    cover_letter_text: str
    filenames: dict[str, str] = Field(default_factory=dict)


class OutreachResult(BaseModel):
    pack_id: int
    job_card_id: int
    contact_id: int | None = None
    recruiter_email: str
    linkedin_dm: str
    follow_up_1: str
    follow_up_2: str


class BatchItemResult(BaseModel):
    job_card_id: int
    run_id: int | None = None
    score: int | None = None
    error: str | None = None


class BatchSprintResult(BaseModel):
    sprint_id: int
    status: SprintStatus
    credits_charged: int
    credits_refunded: int
    results: list[BatchItemResult] = Field(default_factory=list)
