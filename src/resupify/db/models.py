from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from resupify.db.base import Base, TimestampMixin


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    email: Mapped[str] = mapped_column(String(255), default="", nullable=False)


class Profile(TimestampMixin, Base):
    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True)
    region_code: Mapped[str] = mapped_column(String(10), default="CA", nullable=False)
    track_code: Mapped[str] = mapped_column(String(40), default="NEW_GRAD", nullable=False)
    work_status: Mapped[str] = mapped_column(String(40), default="unknown", nullable=False)
    needs_sponsorship: Mapped[str] = mapped_column(String(10), default="unknown", nullable=False)
    country_of_residence: Mapped[str] = mapped_column(String(120), default="", nullable=False)
    currently_enrolled: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    school: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    program: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    graduation_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    phone: Mapped[str] = mapped_column(String(40), default="", nullable=False)
    linkedin_url: Mapped[str] = mapped_column(String(500), default="", nullable=False)


class JobCard(TimestampMixin, Base):
    __tablename__ = "job_cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    company: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    location: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    job_type: Mapped[str] = mapped_column(String(80), default="", nullable=False)


class JdSnapshot(TimestampMixin, Base):
    __tablename__ = "jd_snapshots"
    __table_args__ = (UniqueConstraint("job_card_id", "version", name="uq_jd_snapshot_version"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_card_id: Mapped[int] = mapped_column(ForeignKey("job_cards.id", ondelete="CASCADE"), index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    source_url: Mapped[str] = mapped_column(String(1000), default="", nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    text_hash: Mapped[str] = mapped_column(String(64), default="", nullable=False)


class Requirement(TimestampMixin, Base):
    __tablename__ = "requirements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_card_id: Mapped[int] = mapped_column(ForeignKey("job_cards.id", ondelete="CASCADE"), index=True)
    snapshot_id: Mapped[int | None] = mapped_column(
        ForeignKey("jd_snapshots.id", ondelete="SET NULL"), nullable=True
    )
    requirement_type: Mapped[str] = mapped_column(String(40), nullable=False)
    requirement_text: Mapped[str] = mapped_column(Text, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class Resume(TimestampMixin, Base):
    __tablename__ = "resumes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    content: Mapped[str] = mapped_column(Text, default="", nullable=False)


class EvidenceRun(TimestampMixin, Base):
    __tablename__ = "evidence_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    job_card_id: Mapped[int] = mapped_column(ForeignKey("job_cards.id", ondelete="CASCADE"), index=True)
    resume_id: Mapped[int] = mapped_column(ForeignKey("resumes.id", ondelete="CASCADE"), index=True)
    snapshot_id: Mapped[int | None] = mapped_column(
        ForeignKey("jd_snapshots.id", ondelete="SET NULL"), nullable=True
    )
    region_code: Mapped[str] = mapped_column(String(10), default="", nullable=False)
    track_code: Mapped[str] = mapped_column(String(40), default="", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    overall_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    summary: Mapped[str] = mapped_column(Text, default="", nullable=False)
    score_breakdown_json: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    requirement_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error: Mapped[str] = mapped_column(Text, default="", nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class EvidenceItem(TimestampMixin, Base):
    __tablename__ = "evidence_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    run_id: Mapped[int] = mapped_column(ForeignKey("evidence_runs.id", ondelete="CASCADE"), index=True)
    requirement_id: Mapped[int | None] = mapped_column(
        ForeignKey("requirements.id", ondelete="SET NULL"), nullable=True
    )
    group_type: Mapped[str] = mapped_column(String(40), nullable=False)
    jd_requirement: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    resume_proof: Mapped[str | None] = mapped_column(Text, nullable=True)
    fix: Mapped[str] = mapped_column(Text, default="", nullable=False)
    rewrite_a: Mapped[str] = mapped_column(Text, default="", nullable=False)
    rewrite_b: Mapped[str] = mapped_column(Text, default="", nullable=False)
    why_it_matters: Mapped[str] = mapped_column(Text, default="", nullable=False)
    needs_confirmation: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class ScoreHistoryEntry(TimestampMixin, Base):
    __tablename__ = "score_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_card_id: Mapped[int] = mapped_column(ForeignKey("job_cards.id", ondelete="CASCADE"), index=True)
    resume_id: Mapped[int] = mapped_column(ForeignKey("resumes.id", ondelete="CASCADE"), index=True)
    run_id: Mapped[int] = mapped_column(ForeignKey("evidence_runs.id", ondelete="CASCADE"), unique=True)
    score: Mapped[int] = mapped_column(Integer, nullable=False)


class ApplicationKit(TimestampMixin, Base):
    __tablename__ = "application_kits"
    __table_args__ = (
        UniqueConstraint("job_card_id", "resume_id", "evidence_run_id", name="uq_application_kit_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    job_card_id: Mapped[int] = mapped_column(ForeignKey("job_cards.id", ondelete="CASCADE"), index=True)
    resume_id: Mapped[int] = mapped_column(ForeignKey("resumes.id", ondelete="CASCADE"))
    evidence_run_id: Mapped[int] = mapped_column(ForeignKey("evidence_runs.id", ondelete="CASCADE"))
    region_code: Mapped[str] = mapped_column(String(10), default="", nullable=False)
    track_code: Mapped[str] = mapped_column(String(40), default="", nullable=False)
    tone: Mapped[str] = mapped_column(String(20), default="Human", nullable=False)
    top_changes_json: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    bullet_rewrites_json: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    cover_letter_text: Mapped[str] = mapped_column(Text, default="", nullable=False)


class Contact(TimestampMixin, Base):
    __tablename__ = "contacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    email: Mapped[str] = mapped_column(String(320), default="", nullable=False)
    linkedin_url: Mapped[str] = mapped_column(String(500), default="", nullable=False)
    role: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    company: Mapped[str] = mapped_column(String(255), default="", nullable=False)


class PersonalizationSource(TimestampMixin, Base):
    __tablename__ = "personalization_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    job_card_id: Mapped[int] = mapped_column(ForeignKey("job_cards.id", ondelete="CASCADE"), index=True)
    source_type: Mapped[str] = mapped_column(String(40), default="other", nullable=False)
    url: Mapped[str] = mapped_column(String(1000), default="", nullable=False)
    pasted_text: Mapped[str] = mapped_column(Text, default="", nullable=False)


class OutreachPack(TimestampMixin, Base):
    __tablename__ = "outreach_packs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    job_card_id: Mapped[int] = mapped_column(ForeignKey("job_cards.id", ondelete="CASCADE"), unique=True)
    contact_id: Mapped[int | None] = mapped_column(ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True)
    recruiter_email: Mapped[str] = mapped_column(Text, default="", nullable=False)
    linkedin_dm: Mapped[str] = mapped_column(Text, default="", nullable=False)
    follow_up_1: Mapped[str] = mapped_column(Text, default="", nullable=False)
    follow_up_2: Mapped[str] = mapped_column(Text, default="", nullable=False)


class CreditBalance(TimestampMixin, Base):
    __tablename__ = "credit_balances"
    __table_args__ = (CheckConstraint("balance >= 0", name="ck_credit_balance_non_negative"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True)
    balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class CreditLedgerEntry(TimestampMixin, Base):
    __tablename__ = "credit_ledger"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(80), nullable=False)
    reference_type: Mapped[str] = mapped_column(String(40), default="", nullable=False)
    reference_id: Mapped[str] = mapped_column(String(120), default="", nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    idempotency_key: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)


class BatchSprint(TimestampMixin, Base):
    __tablename__ = "batch_sprints"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    resume_id: Mapped[int] = mapped_column(ForeignKey("resumes.id", ondelete="CASCADE"))
    status: Mapped[str] = mapped_column(String(20), default="running", nullable=False)
    credits_charged: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    credits_refunded: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    success_rate: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)


class BatchSprintItem(TimestampMixin, Base):
    __tablename__ = "batch_sprint_items"
    __table_args__ = (UniqueConstraint("sprint_id", "job_card_id", name="uq_batch_sprint_item"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sprint_id: Mapped[int] = mapped_column(ForeignKey("batch_sprints.id", ondelete="CASCADE"), index=True)
    job_card_id: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    run_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
