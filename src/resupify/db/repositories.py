from __future__ import annotations

import hashlib
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from resupify.db.base import utcnow
from resupify.db.models import (
    ApplicationKit,
    BatchSprint,
    BatchSprintItem,
    Contact,
    CreditBalance,
    CreditLedgerEntry,
    EvidenceItem,
    EvidenceRun,
    JdSnapshot,
    JobCard,
    OutreachPack,
    PersonalizationSource,
    Profile,
    Requirement,
    Resume,
    ScoreHistoryEntry,
    User,
)
from resupify.errors import NotFoundError, QuotaError


def hash_text(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def short_hash(value: Any) -> str:
    return hash_text(str(value))[:12]


class Repository:
    def __init__(self, session: Session):
        self.session = session

    # Users and profiles

    def create_user(self, name: str = "", email: str = "", starting_credits: int = 0) -> User:
        user = User(name=name, email=email)
        self.session.add(user)
        self.session.flush()

        self.session.add(CreditBalance(user_id=user.id, balance=starting_credits))
        if starting_credits:
            self.session.add(
                CreditLedgerEntry(
                    user_id=user.id,
                    amount=starting_credits,
                    reason="starting_grant",
                    reference_type="user",
                    reference_id=str(user.id),
                    balance_after=starting_credits,
                )
            )
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_user(self, user_id: int) -> User | None:
        return self.session.get(User, user_id)

    def get_profile(self, user_id: int) -> Profile | None:
        return self.session.scalar(select(Profile).where(Profile.user_id == user_id))

    def upsert_profile(self, user_id: int, values: dict[str, Any]) -> Profile:
        existing = self.get_profile(user_id)
        if existing:
            for key, value in values.items():
                setattr(existing, key, value)
            obj = existing
        else:
            obj = Profile(user_id=user_id, **values)
            self.session.add(obj)

        self.session.commit()
        self.session.refresh(obj)
        return obj

    # Job cards, snapshots and requirements

    def create_job_card(
        self,
        user_id: int,
        title: str = "",
        company: str = "",
        location: str = "",
        job_type: str = "",
    ) -> JobCard:
        job_card = JobCard(user_id=user_id, title=title, company=company, location=location, job_type=job_type)
        self.session.add(job_card)
        self.session.commit()
        self.session.refresh(job_card)
        return job_card

    def get_job_card(self, job_card_id: int, user_id: int | None = None) -> JobCard | None:
        job_card = self.session.get(JobCard, job_card_id)
        if job_card is None or (user_id is not None and job_card.user_id != user_id):
            return None
        return job_card

    def require_job_card(self, job_card_id: int, user_id: int | None = None) -> JobCard:
        job_card = self.get_job_card(job_card_id, user_id)
        if job_card is None:
            raise NotFoundError(f"job card {job_card_id} not found")
        return job_card

    def add_jd_snapshot(self, job_card_id: int, text: str, source_url: str = "") -> JdSnapshot:
        current = self.session.scalar(
            select(func.max(JdSnapshot.version)).where(JdSnapshot.job_card_id == job_card_id)
        )
        snapshot = JdSnapshot(
            job_card_id=job_card_id,
            version=(current or 0) + 1,
            source_url=source_url,
            text=text,
            text_hash=hash_text(text),
        )
        self.session.add(snapshot)
        self.session.commit()
        self.session.refresh(snapshot)
        return snapshot

    def latest_jd_snapshot(self, job_card_id: int) -> JdSnapshot | None:
        return self.session.scalar(
            select(JdSnapshot)
            .where(JdSnapshot.job_card_id == job_card_id)
            .order_by(JdSnapshot.version.desc())
            .limit(1)
        )

    def replace_requirements(
        self,
        job_card_id: int,
        snapshot_id: int | None,
        items: Iterable[tuple[str, str]],
        job_card_fields: dict[str, str] | None = None,
    ) -> list[Requirement]:
        self.session.execute(delete(Requirement).where(Requirement.job_card_id == job_card_id))

        rows = [
            Requirement(
                job_card_id=job_card_id,
                snapshot_id=snapshot_id,
                requirement_type=requirement_type,
                requirement_text=requirement_text,
                sort_order=index,
            )
            for index, (requirement_type, requirement_text) in enumerate(items)
        ]
        self.session.add_all(rows)

        if job_card_fields:
            job_card = self.session.get(JobCard, job_card_id)
            if job_card is not None:
                for key, value in job_card_fields.items():
                    setattr(job_card, key, value)

        self.session.commit()
        return rows

    def list_requirements(self, job_card_id: int) -> list[Requirement]:
        return list(
            self.session.scalars(
                select(Requirement)
                .where(Requirement.job_card_id == job_card_id)
                .order_by(Requirement.sort_order.asc(), Requirement.id.asc())
            ).all()
        )

    # Resumes and contacts

    def create_resume(self, user_id: int, content: str, title: str = "") -> Resume:
        resume = Resume(user_id=user_id, title=title, content=content)
        self.session.add(resume)
        self.session.commit()
        self.session.refresh(resume)
        return resume

    def get_resume(self, resume_id: int, user_id: int | None = None) -> Resume | None:
        resume = self.session.get(Resume, resume_id)
        if resume is None or (user_id is not None and resume.user_id != user_id):
            return None
        return resume

    def create_contact(
        self,
        user_id: int,
        name: str = "",
        email: str = "",
        linkedin_url: str = "",
        role: str = "",
        company: str = "",
    ) -> Contact:
        contact = Contact(
            user_id=user_id,
            name=name,
            email=email,
            linkedin_url=linkedin_url,
            role=role,
            company=company,
        )
        self.session.add(contact)
        self.session.commit()
        self.session.refresh(contact)
        return contact

    def get_contact(self, contact_id: int, user_id: int | None = None) -> Contact | None:
        contact = self.session.get(Contact, contact_id)
        if contact is None or (user_id is not None and contact.user_id != user_id):
            return None
        return contact

    # Evidence runs

    def create_evidence_run(
        self,
        *,
        user_id: int,
        job_card_id: int,
        resume_id: int,
        snapshot_id: int | None,
        region_code: str,
        track_code: str,
        requirement_count: int,
    ) -> EvidenceRun:
        run = EvidenceRun(
            user_id=user_id,
            job_card_id=job_card_id,
            resume_id=resume_id,
            snapshot_id=snapshot_id,
            region_code=region_code,
            track_code=track_code,
            status="pending",
            requirement_count=requirement_count,
        )
        self.session.add(run)
        self.session.commit()
        self.session.refresh(run)
        return run

    def get_evidence_run(self, run_id: int, user_id: int | None = None) -> EvidenceRun | None:
        run = self.session.get(EvidenceRun, run_id)
        if run is None or (user_id is not None and run.user_id != user_id):
            return None
        return run

    def complete_evidence_run(
        self,
        run_id: int,
        *,
        score: int,
        summary: str,
        breakdown: dict[str, Any],
        items: Sequence[dict[str, Any]],
    ) -> EvidenceRun:
        run = self.session.get(EvidenceRun, run_id)
        if run is None:
            raise NotFoundError(f"evidence run {run_id} not found")

        self.session.add_all(
            EvidenceItem(run_id=run_id, sort_order=index, **values) for index, values in enumerate(items)
        )
        run.status = "completed"
        run.overall_score = score
        run.summary = summary
        run.score_breakdown_json = breakdown
        run.completed_at = datetime.now(UTC)
        self.session.add(
            ScoreHistoryEntry(job_card_id=run.job_card_id, resume_id=run.resume_id, run_id=run.id, score=score)
        )
        self.session.commit()
        self.session.refresh(run)
        return run

    def fail_evidence_run(self, run_id: int, error: str) -> None:
        self.session.rollback()
        run = self.session.get(EvidenceRun, run_id)
        if run is None:
            return
        run.status = "failed"
        run.error = error[:2000]
        self.session.commit()

    def list_evidence_items(self, run_id: int) -> list[EvidenceItem]:
        return list(
            self.session.scalars(
                select(EvidenceItem).where(EvidenceItem.run_id == run_id).order_by(EvidenceItem.sort_order.asc())
            ).all()
        )

    def list_score_history(self, job_card_id: int, resume_id: int) -> list[ScoreHistoryEntry]:
        return list(
            self.session.scalars(
                select(ScoreHistoryEntry)
                .where(ScoreHistoryEntry.job_card_id == job_card_id, ScoreHistoryEntry.resume_id == resume_id)
                .order_by(ScoreHistoryEntry.id.asc())
            ).all()
        )

    # Application kits and outreach

    def get_application_kit(self, job_card_id: int, resume_id: int, evidence_run_id: int) -> ApplicationKit | None:
        return self.session.scalar(
            select(ApplicationKit).where(
                ApplicationKit.job_card_id == job_card_id,
                ApplicationKit.resume_id == resume_id,
                ApplicationKit.evidence_run_id == evidence_run_id,
            )
        )

    def upsert_application_kit(
        self,
        *,
        user_id: int,
        job_card_id: int,
        resume_id: int,
        evidence_run_id: int,
        values: dict[str, Any],
    ) -> ApplicationKit:
        kit = self.get_application_kit(job_card_id, resume_id, evidence_run_id)
        if kit is None:
            kit = ApplicationKit(
                user_id=user_id,
                job_card_id=job_card_id,
                resume_id=resume_id,
                evidence_run_id=evidence_run_id,
            )
            self.session.add(kit)
        for key, value in values.items():
            setattr(kit, key, value)

        self.session.commit()
        self.session.refresh(kit)
        return kit

    def get_outreach_pack(self, job_card_id: int) -> OutreachPack | None:
        return self.session.scalar(select(OutreachPack).where(OutreachPack.job_card_id == job_card_id))

    def upsert_outreach_pack(
        self,
        *,
        user_id: int,
        job_card_id: int,
        contact_id: int | None,
        messages: dict[str, str],
    ) -> OutreachPack:
        pack = self.get_outreach_pack(job_card_id)
        if pack is None:
            pack = OutreachPack(user_id=user_id, job_card_id=job_card_id)
            self.session.add(pack)
        pack.contact_id = contact_id
        for key, value in messages.items():
            setattr(pack, key, value)

        self.session.commit()
        self.session.refresh(pack)
        return pack

    # Personalization sources

    def list_personalization_sources(self, job_card_id: int) -> list[PersonalizationSource]:
        return list(
            self.session.scalars(
                select(PersonalizationSource)
                .where(PersonalizationSource.job_card_id == job_card_id)
                .order_by(PersonalizationSource.updated_at.desc(), PersonalizationSource.id.desc())
            ).all()
        )

    def count_personalization_sources(self, job_card_id: int) -> int:
        return int(
            self.session.scalar(
                select(func.count(PersonalizationSource.id)).where(PersonalizationSource.job_card_id == job_card_id)
            )
            or 0
        )

    def get_personalization_source(self, source_id: int, user_id: int | None = None) -> PersonalizationSource | None:
        source = self.session.get(PersonalizationSource, source_id)
        if source is None or (user_id is not None and source.user_id != user_id):
            return None
        return source

    def save_personalization_source(
        self,
        *,
        user_id: int,
        job_card_id: int,
        source_type: str,
        url: str,
        pasted_text: str,
        source_id: int | None = None,
    ) -> PersonalizationSource:
        source = self.get_personalization_source(source_id, user_id) if source_id is not None else None
        if source_id is not None and source is None:
            raise NotFoundError(f"personalization source {source_id} not found")
        if source is None:
            source = PersonalizationSource(user_id=user_id, job_card_id=job_card_id)
            self.session.add(source)
        source.source_type = source_type
        source.url = url
        source.pasted_text = pasted_text

        self.session.commit()
        self.session.refresh(source)
        return source

    def delete_personalization_source(self, source_id: int, user_id: int) -> bool:
        source = self.get_personalization_source(source_id, user_id)
        if source is None:
            return False
        self.session.delete(source)
        self.session.commit()
        return True

    # Credits

    def get_balance(self, user_id: int) -> int:
        balance = self.session.scalar(select(CreditBalance.balance).where(CreditBalance.user_id == user_id))
        return int(balance or 0)

    def get_ledger_entry(self, idempotency_key: str) -> CreditLedgerEntry | None:
        return self.session.scalar(
            select(CreditLedgerEntry).where(CreditLedgerEntry.idempotency_key == idempotency_key)
        )

    def list_ledger(self, user_id: int, limit: int = 100) -> list[CreditLedgerEntry]:
        return list(
            self.session.scalars(
                select(CreditLedgerEntry)
                .where(CreditLedgerEntry.user_id == user_id)
                .order_by(CreditLedgerEntry.id.desc())
                .limit(limit)
            ).all()
        )

    def ledger_total(self, user_id: int) -> int:
        total = self.session.scalar(
            select(func.coalesce(func.sum(CreditLedgerEntry.amount), 0)).where(CreditLedgerEntry.user_id == user_id)
        )
        return int(total or 0)

    def grant_credits(
        self,
        user_id: int,
        amount: int,
        *,
        reason: str,
        reference_type: str = "",
        reference_id: str = "",
        idempotency_key: str | None = None,
    ) -> CreditLedgerEntry:
        if amount <= 0:
            raise ValueError("grant amount must be positive")
        return self._apply_credit_delta(
            user_id,
            amount,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
            idempotency_key=idempotency_key,
        )

    def spend_credits(
        self,
        user_id: int,
        amount: int,
        *,
        reason: str,
        reference_type: str = "",
        reference_id: str = "",
        idempotency_key: str | None = None,
    ) -> CreditLedgerEntry:
        """Debit atomically; the balance row is only touched when it covers the amount."""
        if amount <= 0:
            raise ValueError("spend amount must be positive")
        return self._apply_credit_delta(
            user_id,
            -amount,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
            idempotency_key=idempotency_key,
        )

    def _apply_credit_delta(
        self,
        user_id: int,
        delta: int,
        *,
        reason: str,
        reference_type: str,
        reference_id: str,
        idempotency_key: str | None,
    ) -> CreditLedgerEntry:
        if idempotency_key:
            existing = self.get_ledger_entry(idempotency_key)
            if existing is not None:
                return existing

        statement = update(CreditBalance).where(CreditBalance.user_id == user_id)
        if delta < 0:
            statement = statement.where(CreditBalance.balance >= -delta)
        result = self.session.execute(
            statement.values(balance=CreditBalance.balance + delta, updated_at=utcnow()).execution_options(
                synchronize_session=False
            )
        )
        if result.rowcount != 1:
            self.session.rollback()
            if self.session.get(User, user_id) is None:
                raise NotFoundError(f"user {user_id} not found")
            raise QuotaError(required=-delta, balance=self.get_balance(user_id))

        balance_after = self.session.scalar(select(CreditBalance.balance).where(CreditBalance.user_id == user_id))
        entry = CreditLedgerEntry(
            user_id=user_id,
            amount=delta,
            reason=reason,
            reference_type=reference_type,
            reference_id=reference_id,
            balance_after=int(balance_after or 0),
            idempotency_key=idempotency_key,
        )
        self.session.add(entry)
        try:
            self.session.commit()
        except IntegrityError:
            # Another writer recorded the same key first; its entry stands and ours is rolled back.
            self.session.rollback()
            existing = self.get_ledger_entry(idempotency_key) if idempotency_key else None
            if existing is None:
                raise
            return existing

        self.session.refresh(entry)
        return entry

    # Batch sprints

    def create_batch_sprint(self, *, user_id: int, resume_id: int, job_card_ids: Sequence[int]) -> BatchSprint:
        sprint = BatchSprint(user_id=user_id, resume_id=resume_id, status="running")
        self.session.add(sprint)
        self.session.flush()
        self.session.add_all(
            BatchSprintItem(sprint_id=sprint.id, job_card_id=job_card_id, position=index)
            for index, job_card_id in enumerate(job_card_ids)
        )
        self.session.commit()
        self.session.refresh(sprint)
        return sprint

    def get_batch_sprint(self, sprint_id: int, user_id: int | None = None) -> BatchSprint | None:
        sprint = self.session.get(BatchSprint, sprint_id)
        if sprint is None or (user_id is not None and sprint.user_id != user_id):
            return None
        return sprint

    def list_batch_items(self, sprint_id: int) -> list[BatchSprintItem]:
        return list(
            self.session.scalars(
                select(BatchSprintItem)
                .where(BatchSprintItem.sprint_id == sprint_id)
                .order_by(BatchSprintItem.position.asc())
            ).all()
        )

    def record_batch_item(
        self,
        sprint_id: int,
        job_card_id: int,
        *,
        run_id: int | None,
        score: int | None,
        error: str | None,
    ) -> None:
        item = self.session.scalar(
            select(BatchSprintItem).where(
                BatchSprintItem.sprint_id == sprint_id,
                BatchSprintItem.job_card_id == job_card_id,
            )
        )
        if item is None:
            raise NotFoundError(f"job card {job_card_id} is not part of sprint {sprint_id}")
        item.run_id = run_id
        item.score = score
        item.error = error
        item.attempts += 1
        self.session.commit()

    def finish_batch_sprint(
        self,
        sprint_id: int,
        *,
        status: str,
        charged: int,
        refunded: int,
        success_rate: float,
    ) -> BatchSprint:
        sprint = self.session.get(BatchSprint, sprint_id)
        if sprint is None:
            raise NotFoundError(f"batch sprint {sprint_id} not found")
        sprint.status = status
        sprint.credits_charged += charged
        sprint.credits_refunded += refunded
        sprint.success_rate = success_rate
        self.session.commit()
        self.session.refresh(sprint)
        return sprint
