from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session

from resupify.api.deps import get_db, get_user_id
from resupify.api.schemas import (
    ApplicationKitRequest,
    BatchSprintRequest,
    ContactCreateRequest,
    ContactResponse,
    CreditsResponse,
    EvidenceRunRequest,
    ExtractionResponse,
    JobCardCreateRequest,
    JobCardResponse,
    LedgerEntryResponse,
    OutreachPackRequest,
    PackResponse,
    PersonalizationSourceRequest,
    PersonalizationSourceResponse,
    ProfileRequest,
    ProfileResponse,
    RequirementResponse,
    ResumeCreateRequest,
    ResumeResponse,
    SnapshotCreateRequest,
    SnapshotResponse,
    UserCreateRequest,
    UserResponse,
)
from resupify.config import get_settings
from resupify.core.batch import BatchSprintOrchestrator
from resupify.core.eligibility import missing_eligibility_fields
from resupify.core.evidence import EvidenceScorer
from resupify.core.extractor import RequirementExtractor
from resupify.core.intake import capture_jd_snapshot
from resupify.core.kit import ApplicationKitGenerator
from resupify.core.outreach import OutreachGenerator
from resupify.core.runtime import get_event_bus
from resupify.db.models import PersonalizationSource, Profile
from resupify.db.repositories import Repository
from resupify.db.session import SessionLocal
from resupify.errors import NotFoundError
from resupify.packs import available_packs, get_region_pack
from resupify.types import BatchSprintResult, EvidenceRunResult, KitResult, OutreachResult

router = APIRouter(prefix="/api", tags=["api"])


def _profile_response(profile: Profile) -> ProfileResponse:
    pack = get_region_pack(profile.region_code, profile.track_code)
    return ProfileResponse(
        user_id=profile.user_id,
        region_code=profile.region_code,
        track_code=profile.track_code,
        work_status=profile.work_status,
        needs_sponsorship=profile.needs_sponsorship,
        country_of_residence=profile.country_of_residence,
        currently_enrolled=profile.currently_enrolled,
        school=profile.school,
        program=profile.program,
        graduation_date=profile.graduation_date,
        phone=profile.phone,
        linkedin_url=profile.linkedin_url,
        pack_key=pack.key,
        missing_eligibility_fields=missing_eligibility_fields(profile, pack),
    )


def _source_response(source: PersonalizationSource) -> PersonalizationSourceResponse:
    return PersonalizationSourceResponse(
        id=source.id,
        job_card_id=source.job_card_id,
        source_type=source.source_type,
        url=source.url,
        pasted_text=source.pasted_text,
        updated_at=source.updated_at.isoformat() if source.updated_at else None,
    )


@router.get("/packs", response_model=list[PackResponse])
def list_packs() -> list[PackResponse]:
    return [PackResponse(**pack) for pack in available_packs()]


@router.post("/users", response_model=UserResponse)
def create_user(payload: UserCreateRequest, db: Session = Depends(get_db)) -> UserResponse:
    repo = Repository(db)
    user = repo.create_user(name=payload.name, email=payload.email, starting_credits=get_settings().starting_credits)
    return UserResponse(id=user.id, name=user.name, email=user.email, balance=repo.get_balance(user.id))


@router.put("/profile", response_model=ProfileResponse)
def upsert_profile(
    payload: ProfileRequest,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> ProfileResponse:
    repo = Repository(db)
    if repo.get_user(user_id) is None:
        raise NotFoundError(f"user {user_id} not found")
    values = payload.model_dump()
    values["region_code"] = values["region_code"].upper()
    values["track_code"] = values["track_code"].upper()
    return _profile_response(repo.upsert_profile(user_id, values))


@router.post("/job-cards", response_model=JobCardResponse)
def create_job_card(
    payload: JobCardCreateRequest,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> JobCardResponse:
    job_card = Repository(db).create_job_card(user_id, **payload.model_dump())
    return JobCardResponse(
        id=job_card.id,
        title=job_card.title,
        company=job_card.company,
        location=job_card.location,
        job_type=job_card.job_type,
    )


@router.post("/resumes", response_model=ResumeResponse)
def create_resume(
    payload: ResumeCreateRequest,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> ResumeResponse:
    resume = Repository(db).create_resume(user_id, content=payload.content, title=payload.title)
    return ResumeResponse(id=resume.id, title=resume.title, char_count=len(resume.content))


@router.post("/contacts", response_model=ContactResponse)
def create_contact(
    payload: ContactCreateRequest,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> ContactResponse:
    contact = Repository(db).create_contact(user_id, **payload.model_dump())
    return ContactResponse(
        id=contact.id,
        name=contact.name,
        email=contact.email,
        linkedin_url=contact.linkedin_url,
        role=contact.role,
        company=contact.company,
    )


@router.post("/job-cards/{job_card_id}/snapshots", response_model=SnapshotResponse)
def add_snapshot(
    job_card_id: int,
    payload: SnapshotCreateRequest,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> SnapshotResponse:
    snapshot = capture_jd_snapshot(Repository(db), job_card_id, user_id=user_id, text=payload.text, url=payload.url)
    return SnapshotResponse(
        id=snapshot.id,
        job_card_id=snapshot.job_card_id,
        version=snapshot.version,
        source_url=snapshot.source_url,
        text_hash=snapshot.text_hash,
        char_count=len(snapshot.text),
    )


@router.post("/job-cards/{job_card_id}/requirements/extract", response_model=ExtractionResponse)
def extract_requirements(
    job_card_id: int,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> ExtractionResponse:
    repo = Repository(db)
    result = RequirementExtractor(repo).extract(job_card_id, user_id=user_id)
    return ExtractionResponse(
        job_card_id=result.job_card_id,
        count=result.count,
        filled_fields=result.filled_fields,
        requirements=_requirement_rows(repo, job_card_id),
    )


@router.get("/job-cards/{job_card_id}/requirements", response_model=list[RequirementResponse])
def list_requirements(
    job_card_id: int,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> list[RequirementResponse]:
    repo = Repository(db)
    repo.require_job_card(job_card_id, user_id)
    return _requirement_rows(repo, job_card_id)


def _requirement_rows(repo: Repository, job_card_id: int) -> list[RequirementResponse]:
    return [
        RequirementResponse(
            id=row.id,
            requirement_type=row.requirement_type,
            requirement_text=row.requirement_text,
        )
        for row in repo.list_requirements(job_card_id)
    ]


@router.post("/evidence/runs", response_model=EvidenceRunResult)
def run_evidence(
    payload: EvidenceRunRequest,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> EvidenceRunResult:
    return EvidenceScorer(Repository(db)).run(
        payload.job_card_id,
        payload.resume_id,
        user_id=user_id,
        action_id=payload.action_id,
    )


@router.get("/evidence/runs/{run_id}")
def get_evidence_run(
    run_id: int,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return EvidenceScorer(Repository(db)).get_run(run_id, user_id=user_id)


@router.get("/evidence/history")
def get_score_history(
    job_card_id: int = Query(...),
    resume_id: int = Query(...),
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> list[dict[str, Any]]:
    return EvidenceScorer(Repository(db)).history(job_card_id, resume_id, user_id=user_id)


@router.post("/evidence/batch-sprints", response_model=BatchSprintResult)
def start_batch_sprint(
    payload: BatchSprintRequest,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> BatchSprintResult:
    return BatchSprintOrchestrator(Repository(db)).start(
        payload.job_card_ids,
        payload.resume_id,
        user_id=user_id,
        action_id=payload.action_id,
    )


@router.get("/evidence/batch-sprints/{sprint_id}", response_model=BatchSprintResult)
def get_batch_sprint(
    sprint_id: int,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> BatchSprintResult:
    return BatchSprintOrchestrator(Repository(db)).get(sprint_id, user_id=user_id)


@router.post("/evidence/batch-sprints/{sprint_id}/retry", response_model=BatchSprintResult)
def retry_batch_sprint(
    sprint_id: int,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> BatchSprintResult:
    return BatchSprintOrchestrator(Repository(db)).retry_failed(sprint_id, user_id=user_id)


@router.websocket("/evidence/batch-sprints/{sprint_id}/stream")
async def stream_batch_sprint(websocket: WebSocket, sprint_id: int) -> None:
    raw_user_id = (websocket.headers.get("x-user-id") or "").strip()
    sprint = None
    if raw_user_id.isdigit():
        with SessionLocal() as db:
            sprint = Repository(db).get_batch_sprint(sprint_id, user_id=int(raw_user_id))
    if sprint is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    event_bus = get_event_bus()
    try:
        async for event in event_bus.subscribe(sprint_id):
            await websocket.send_json(event)
            if event.get("type") == "sprint_completed":
                break
    except WebSocketDisconnect:
        return
    await websocket.close()


@router.post("/application-kits", response_model=KitResult)
def generate_application_kit(
    payload: ApplicationKitRequest,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> KitResult:
    return ApplicationKitGenerator(Repository(db)).generate(
        payload.job_card_id,
        payload.resume_id,
        payload.evidence_run_id,
        user_id=user_id,
        tone=payload.tone,
        confirm_overwrite=payload.confirm_overwrite,
        action_id=payload.action_id,
    )


@router.post("/outreach/packs", response_model=OutreachResult)
def generate_outreach_pack(
    payload: OutreachPackRequest,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> OutreachResult:
    return OutreachGenerator(Repository(db)).generate_pack(
        payload.job_card_id,
        user_id=user_id,
        contact_id=payload.contact_id,
        tone=payload.tone,
        action_id=payload.action_id,
    )


@router.get("/job-cards/{job_card_id}/personalization", response_model=list[PersonalizationSourceResponse])
def list_personalization_sources(
    job_card_id: int,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> list[PersonalizationSourceResponse]:
    repo = Repository(db)
    repo.require_job_card(job_card_id, user_id)
    return [_source_response(source) for source in repo.list_personalization_sources(job_card_id)]


@router.post("/job-cards/{job_card_id}/personalization", response_model=PersonalizationSourceResponse)
def save_personalization_source(
    job_card_id: int,
    payload: PersonalizationSourceRequest,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> PersonalizationSourceResponse:
    source = OutreachGenerator(Repository(db)).save_personalization_source(
        job_card_id,
        user_id=user_id,
        source_type=payload.source_type,
        url=payload.url,
        pasted_text=payload.pasted_text,
        source_id=payload.source_id,
    )
    return _source_response(source)


@router.delete("/personalization/{source_id}")
def delete_personalization_source(
    source_id: int,
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> dict[str, bool]:
    if not Repository(db).delete_personalization_source(source_id, user_id):
        raise NotFoundError(f"personalization source {source_id} not found")
    return {"deleted": True}


@router.get("/credits", response_model=CreditsResponse)
def get_credits(
    limit: int = Query(default=50, ge=1, le=500),
    user_id: int = Depends(get_user_id),
    db: Session = Depends(get_db),
) -> CreditsResponse:
    repo = Repository(db)
    if repo.get_user(user_id) is None:
        raise NotFoundError(f"user {user_id} not found")
    return CreditsResponse(
        user_id=user_id,
        balance=repo.get_balance(user_id),
        ledger=[
            LedgerEntryResponse(
                id=entry.id,
                amount=entry.amount,
                reason=entry.reason,
                reference_type=entry.reference_type,
                reference_id=entry.reference_id,
                balance_after=entry.balance_after,
                created_at=entry.created_at.isoformat() if entry.created_at else None,
            )
            for entry in repo.list_ledger(user_id, limit=limit)
        ],
    )
