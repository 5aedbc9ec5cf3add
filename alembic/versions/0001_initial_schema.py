"""Initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-17

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "jobs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("external_id", sa.String(120), nullable=True, unique=True),
        sa.Column("job_code", sa.String(120), nullable=False, server_default=""),
        sa.Column("title", sa.String(255), nullable=False, server_default=""),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("custom_instructions", sa.Text(), nullable=False, server_default=""),
        *_timestamps(),
    )

    op.create_table(
        "applicants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("external_id", sa.String(255), nullable=False, unique=True),
        sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("email", sa.String(255), nullable=False, server_default=""),
        sa.Column("phone", sa.String(60), nullable=False, server_default=""),
        sa.Column("location", sa.String(255), nullable=False, server_default=""),
        sa.Column("status", sa.String(40), nullable=False, server_default="imported"),
        *_timestamps(),
    )
    op.create_index("ix_applicants_job_id", "applicants", ["job_id"])

    op.create_table(
        "submissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("external_id", sa.String(255), nullable=False, unique=True),
        sa.Column(
            "applicant_id",
            sa.Integer(),
            sa.ForeignKey("applicants.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("resume_url", sa.String(1000), nullable=False, server_default=""),
        sa.Column("submitted_on", sa.String(40), nullable=False, server_default=""),
        sa.Column("source", sa.String(120), nullable=False, server_default=""),
        sa.Column("pipeline_status", sa.String(120), nullable=False, server_default=""),
        sa.Column("submission_status", sa.String(120), nullable=False, server_default=""),
        sa.Column("modified", sa.String(20), nullable=False, server_default=""),
        sa.Column("job_seeker_external_id", sa.String(255), nullable=False, server_default=""),
        *_timestamps(),
    )
    op.create_index("ix_submissions_job_id", "submissions", ["job_id"])
    op.create_index("ix_submissions_modified", "submissions", ["modified"])

    op.create_table(
        "parsed_profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "applicant_id",
            sa.Integer(),
            sa.ForeignKey("applicants.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("profile_json", sa.JSON(), nullable=False),
        sa.Column("skills_json", sa.JSON(), nullable=False),
        sa.Column("titles_json", sa.JSON(), nullable=False),
        sa.Column("location", sa.String(255), nullable=False, server_default=""),
        sa.Column("total_exp_months", sa.Integer(), nullable=True),
        sa.Column("parsed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "resumes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "applicant_id",
            sa.Integer(),
            sa.ForeignKey("applicants.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("storage_key", sa.String(800), nullable=False),
        sa.Column("storage_uri", sa.String(900), nullable=False, server_default=""),
        sa.Column("mime_type", sa.String(120), nullable=False, server_default="application/octet-stream"),
        sa.Column("size_bytes", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )

    op.create_table(
        "rankings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "applicant_id",
            sa.Integer(),
            sa.ForeignKey("applicants.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("explanation", sa.Text(), nullable=False, server_default=""),
        sa.Column("rubric_json", sa.JSON(), nullable=False),
        sa.Column("model", sa.String(120), nullable=False, server_default=""),
        *_timestamps(),
        sa.UniqueConstraint("job_id", "applicant_id", name="uq_rankings_job_applicant"),
    )
    op.create_index("ix_rankings_job_id", "rankings", ["job_id"])
    op.create_index("ix_rankings_applicant_id", "rankings", ["applicant_id"])

    op.create_table(
        "embeddings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("namespace", sa.String(80), nullable=False),
        sa.Column("ref_id", sa.String(255), nullable=False),
        sa.Column("model", sa.String(120), nullable=False, server_default=""),
        sa.Column("dimensions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("vector_json", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("namespace", "ref_id", name="uq_embeddings_namespace_ref"),
    )

    op.create_table(
        "processing_jobs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("job_code", sa.String(120), nullable=False, server_default=""),
        sa.Column("parsing_mode", sa.String(20), nullable=False, server_default="none"),
        sa.Column("status", sa.String(20), nullable=False, server_default="running"),
        sa.Column("total_submissions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("processed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("skipped_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("upload_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("parsed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("embedding_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_cost", sa.Float(), nullable=False, server_default="0"),
        sa.Column("parsing_cost", sa.Float(), nullable=False, server_default="0"),
        sa.Column("errors_json", sa.JSON(), nullable=False),
        sa.Column("successful_applicants_json", sa.JSON(), nullable=False),
        sa.Column("failed_applicants_json", sa.JSON(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_processing_jobs_job_id", "processing_jobs", ["job_id"])
    op.create_index("ix_processing_jobs_status", "processing_jobs", ["status"])
    op.create_index(
        "uq_processing_jobs_one_running",
        "processing_jobs",
        ["job_id"],
        unique=True,
        sqlite_where=sa.text("status = 'running'"),
        postgresql_where=sa.text("status = 'running'"),
    )

    op.create_table(
        "processing_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "processing_job_id",
            sa.Integer(),
            sa.ForeignKey("processing_jobs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("level", sa.String(20), nullable=False, server_default="info"),
        sa.Column("message", sa.Text(), nullable=False, server_default=""),
        sa.Column("applicant_id", sa.Integer(), nullable=True),
        sa.Column("applicant_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("details_json", sa.JSON(), nullable=False),
        sa.Column("logged_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_processing_logs_processing_job_id", "processing_logs", ["processing_job_id"])
    op.create_index("ix_processing_logs_level", "processing_logs", ["level"])


def downgrade() -> None:
    op.drop_table("processing_logs")
    op.drop_table("processing_jobs")
    op.drop_table("embeddings")
    op.drop_table("rankings")
    op.drop_table("resumes")
    op.drop_table("parsed_profiles")
    op.drop_table("submissions")
    op.drop_table("applicants")
    op.drop_table("jobs")
