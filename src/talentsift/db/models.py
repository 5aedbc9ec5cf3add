from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from talentsift.db.base import Base, TimestampMixin


class Job(TimestampMixin, Base):
    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    external_id: Mapped[str | None] = mapped_column(String(120), unique=True, nullable=True)
    job_code: Mapped[str] = mapped_column(String(120), default="", nullable=False)
    title: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    custom_instructions: Mapped[str] = mapped_column(Text, default="", nullable=False)


class Applicant(TimestampMixin, Base):
    __tablename__ = "applicants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    external_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    job_id: Mapped[int] = mapped_column(ForeignKey("jobs.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    email: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    phone: Mapped[str] = mapped_column(String(60), default="", nullable=False)
    location: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    status: Mapped[str] = mapped_column(String(40), default="imported", nullable=False)


class Submission(TimestampMixin, Base):
    __tablename__ = "submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    external_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    applicant_id: Mapped[int] = mapped_column(
        ForeignKey("applicants.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    job_id: Mapped[int] = mapped_column(ForeignKey("jobs.id", ondelete="CASCADE"), index=True)
    resume_url: Mapped[str] = mapped_column(String(1000), default="", nullable=False)
    submitted_on: Mapped[str] = mapped_column(String(40), default="", nullable=False)
    source: Mapped[str] = mapped_column(String(120), default="", nullable=False)
    pipeline_status: Mapped[str] = mapped_column(String(120), default="", nullable=False)
    submission_status: Mapped[str] = mapped_column(String(120), default="", nullable=False)
    # normalized "YYYY-MM-DD HH:MM:SS" so string comparison is chronological
    modified: Mapped[str] = mapped_column(String(20), default="", nullable=False, index=True)
    job_seeker_external_id: Mapped[str] = mapped_column(String(255), default="", nullable=False)


class ParsedProfile(TimestampMixin, Base):
    __tablename__ = "parsed_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    applicant_id: Mapped[int] = mapped_column(
        ForeignKey("applicants.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    profile_json: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    skills_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    titles_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    location: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    total_exp_months: Mapped[int | None] = mapped_column(Integer, nullable=True)
    parsed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Resume(TimestampMixin, Base):
    __tablename__ = "resumes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    applicant_id: Mapped[int] = mapped_column(
        ForeignKey("applicants.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    storage_key: Mapped[str] = mapped_column(String(800), nullable=False)
    storage_uri: Mapped[str] = mapped_column(String(900), default="", nullable=False)
    mime_type: Mapped[str] = mapped_column(String(120), default="application/octet-stream", nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class Ranking(TimestampMixin, Base):
    __tablename__ = "rankings"
    __table_args__ = (UniqueConstraint("job_id", "applicant_id", name="uq_rankings_job_applicant"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_id: Mapped[int] = mapped_column(ForeignKey("jobs.id", ondelete="CASCADE"), index=True)
    applicant_id: Mapped[int] = mapped_column(ForeignKey("applicants.id", ondelete="CASCADE"), index=True)
    score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    explanation: Mapped[str] = mapped_column(Text, default="", nullable=False)
    rubric_json: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    model: Mapped[str] = mapped_column(String(120), default="", nullable=False)


class Embedding(TimestampMixin, Base):
    __tablename__ = "embeddings"
    __table_args__ = (UniqueConstraint("namespace", "ref_id", name="uq_embeddings_namespace_ref"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    namespace: Mapped[str] = mapped_column(String(80), nullable=False)
    ref_id: Mapped[str] = mapped_column(String(255), nullable=False)
    model: Mapped[str] = mapped_column(String(120), default="", nullable=False)
    dimensions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    vector_json: Mapped[list[float]] = mapped_column(JSON, default=list, nullable=False)


class ProcessingJob(TimestampMixin, Base):
    __tablename__ = "processing_jobs"
    # at most one running run per job; the orchestrator treats a violation as a lost claim
    __table_args__ = (
        Index(
            "uq_processing_jobs_one_running",
            "job_id",
            unique=True,
            sqlite_where=text("status = 'running'"),
            postgresql_where=text("status = 'running'"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_id: Mapped[int] = mapped_column(ForeignKey("jobs.id", ondelete="CASCADE"), index=True)
    job_code: Mapped[str] = mapped_column(String(120), default="", nullable=False)
    parsing_mode: Mapped[str] = mapped_column(String(20), default="none", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="running", nullable=False, index=True)
    total_submissions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    upload_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    parsed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    embedding_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    parsing_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    errors_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    successful_applicants_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    failed_applicants_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)


class ProcessingLog(TimestampMixin, Base):
    __tablename__ = "processing_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    processing_job_id: Mapped[int] = mapped_column(
        ForeignKey("processing_jobs.id", ondelete="CASCADE"), index=True
    )
    level: Mapped[str] = mapped_column(String(20), default="info", nullable=False, index=True)
    message: Mapped[str] = mapped_column(Text, default="", nullable=False)
    applicant_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    applicant_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    details_json: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    logged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
