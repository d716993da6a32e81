from __future__ import annotations

from datetime import date
from typing import Any

from pydantic import BaseModel, Field

from resupify.types import PersonalizationSourceType, SponsorshipNeed, Tone, WorkStatus


class UserCreateRequest(BaseModel):
    name: str = ""
    email: str = ""


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    balance: int


class ProfileRequest(BaseModel):
    region_code: str = "CA"
    track_code: str = "NEW_GRAD"
    work_status: WorkStatus = "unknown"
    needs_sponsorship: SponsorshipNeed = "unknown"
    country_of_residence: str = ""
    currently_enrolled: bool | None = None
    school: str = ""
    program: str = ""
    graduation_date: date | None = None
    phone: str = ""
    linkedin_url: str = ""


class ProfileResponse(ProfileRequest):
    user_id: int
    pack_key: str
    missing_eligibility_fields: list[str] = Field(default_factory=list)


class JobCardCreateRequest(BaseModel):
    title: str = ""
    company: str = ""
    location: str = ""
    job_type: str = ""


class JobCardResponse(JobCardCreateRequest):
    id: int


class ResumeCreateRequest(BaseModel):
    content: str = Field(min_length=1)
    title: str = ""


class ResumeResponse(BaseModel):
    id: int
    title: str
    char_count: int


class ContactCreateRequest(BaseModel):
    name: str = ""
    email: str = ""
    linkedin_url: str = ""
    role: str = ""
    company: str = ""


class ContactResponse(ContactCreateRequest):
    id: int


class SnapshotCreateRequest(BaseModel):
    text: str = ""
    url: str = ""


class SnapshotResponse(BaseModel):
    id: int
    job_card_id: int
    version: int
    source_url: str
    text_hash: str
    char_count: int


class RequirementResponse(BaseModel):
    id: int
    requirement_type: str
    requirement_text: str


class ExtractionResponse(BaseModel):
    job_card_id: int
    count: int
    filled_fields: dict[str, str] = Field(default_factory=dict)
    requirements: list[RequirementResponse] = Field(default_factory=list)


class EvidenceRunRequest(BaseModel):
    job_card_id: int
    resume_id: int
    action_id: str | None = None


class BatchSprintRequest(BaseModel):
    job_card_ids: list[int] = Field(min_length=1)
    resume_id: int
    action_id: str | None = None


class ApplicationKitRequest(BaseModel):
    job_card_id: int
    resume_id: int
    evidence_run_id: int
    tone: Tone = "Human"
    confirm_overwrite: bool = False
    action_id: str | None = None


class OutreachPackRequest(BaseModel):
    job_card_id: int
    contact_id: int | None = None
    tone: Tone | None = None
    action_id: str | None = None


class PersonalizationSourceRequest(BaseModel):
    source_type: PersonalizationSourceType = "other"
    url: str = ""
    pasted_text: str = ""
    source_id: int | None = None


class PersonalizationSourceResponse(BaseModel):
    id: int
    job_card_id: int
    source_type: str
    url: str
    pasted_text: str
    updated_at: str | None = None


class LedgerEntryResponse(BaseModel):
    id: int
    amount: int
    reason: str
    reference_type: str
    reference_id: str
    balance_after: int
    created_at: str | None = None


class CreditsResponse(BaseModel):
    user_id: int
    balance: int
    ledger: list[LedgerEntryResponse] = Field(default_factory=list)


class PackResponse(BaseModel):
    key: str
    label: str


class ErrorResponse(BaseModel):
    error: str
    message: str
    retry_after_seconds: int | None = None
    details: dict[str, Any] | None = None
