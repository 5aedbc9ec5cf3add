from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from talentsift.db.base import as_utc, utcnow
from talentsift.db.models import ProcessingJob, ProcessingLog
from talentsift.db.repositories import COST_FIELDS, COUNTER_FIELDS, LIST_FIELDS, Repository
from talentsift.types import (
    LogLevel,
    ProcessingJobInfo,
    ProcessingLogEntry,
    ProgressView,
    RunStatistics,
    RunStatus,
)

logger = logging.getLogger(__name__)


def serialize_run(run: ProcessingJob) -> ProcessingJobInfo:
    started_at = as_utc(run.started_at)
    completed_at = as_utc(run.completed_at)
    return ProcessingJobInfo(
        id=run.id,
        job_id=run.job_id,
        job_code=run.job_code,
        parsing_mode=run.parsing_mode,
        status=run.status,
        total_submissions=run.total_submissions,
        processed_count=run.processed_count,
        error_count=run.error_count,
        skipped_count=run.skipped_count,
        upload_count=run.upload_count,
        parsed_count=run.parsed_count,
        embedding_count=run.embedding_count,
        total_cost=run.total_cost,
        parsing_cost=run.parsing_cost,
        errors=list(run.errors_json or []),
        successful_applicants=list(run.successful_applicants_json or []),
        failed_applicants=list(run.failed_applicants_json or []),
        started_at=started_at.isoformat() if started_at else None,
        completed_at=completed_at.isoformat() if completed_at else None,
        duration_ms=run.duration_ms,
    )


def serialize_log(entry: ProcessingLog) -> ProcessingLogEntry:
    logged_at = as_utc(entry.logged_at)
    return ProcessingLogEntry(
        id=entry.id,
        level=entry.level,
        message=entry.message,
        applicant_id=entry.applicant_id,
        applicant_name=entry.applicant_name,
        details=dict(entry.details_json or {}),
        logged_at=logged_at.isoformat() if logged_at else None,
    )


def elapsed_ms(run: ProcessingJob, now: datetime | None = None) -> int:
    started_at = as_utc(run.started_at) or as_utc(run.created_at)
    if started_at is None:
        return 0
    return max(0, int(((now or utcnow()) - started_at).total_seconds() * 1000))


def run_progress_count(run: ProcessingJob) -> int:
    return run.processed_count + run.error_count + run.skipped_count


def is_stale_run(run: ProcessingJob, stale_after_min: float, now: datetime | None = None) -> bool:
    """A running run that has been silent for longer than ``stale_after_min`` and processed nothing."""
    return elapsed_ms(run, now) / 60000 > stale_after_min and run_progress_count(run) == 0


def describe_progress(run: ProcessingJob, now: datetime | None = None) -> ProgressView:
    """Polling view of a run: percent done, coarse phase, ETA and a user-facing message."""
    done = run_progress_count(run)
    progress = round(done / run.total_submissions * 100) if run.total_submissions > 0 else 0
    progress = min(progress, 100)

    if run.status == "completed":
        phase = "completed"
    elif run.status == "failed":
        phase = "failed"
    elif progress == 0:
        phase = "downloading"
    elif progress < 50:
        phase = "parsing"
    elif progress < 90:
        phase = "processing"
    else:
        phase = "finalizing"

    eta_seconds: int | None = None
    if run.status == "running" and done > 0:
        spent_ms = elapsed_ms(run, now)
        remaining = max(0, run.total_submissions - done)
        if spent_ms > 0 and remaining > 0:
            estimate = remaining * (spent_ms / done) / 1000
            if estimate < 24 * 60 * 60:
                eta_seconds = math.ceil(estimate)

    success_rate = round(run.processed_count / run.total_submissions * 100) if run.total_submissions > 0 else 0
    return ProgressView(
        progress=progress,
        phase=phase,
        message=_user_message(run, progress, eta_seconds),
        eta_seconds=eta_seconds,
        success_rate=success_rate,
    )


def _user_message(run: ProcessingJob, progress: int, eta_seconds: int | None) -> str:
    if run.status == "completed":
        suffix = f" with {run.error_count} errors" if run.error_count else ""
        return f"Processing completed. Successfully processed {run.processed_count} applicants{suffix}."
    if run.status == "failed":
        return "Processing failed. Check the logs for details and try again."
    if run.status == "running":
        base = f"Processing in progress: {run.processed_count} applicants completed ({progress}%)"
        if eta_seconds is not None:
            minutes = max(1, math.ceil(eta_seconds / 60))
            if minutes < 60:
                eta = f"{minutes} minute{'s' if minutes != 1 else ''}"
            else:
                hours = math.ceil(minutes / 60)
                eta = f"{hours} hour{'s' if hours != 1 else ''}"
            return f"{base}. Estimated time remaining: {eta}."
        return f"{base}."
    return "Processing status unknown."


class ProcessingTracker:
    """Durable progress record for one ingestion run.

    ``log`` and ``update_counters`` are best-effort: a failed write is rolled
    back and reported to the module logger, never raised into the pipeline
    step that was being observed.
    """

    def __init__(self, session: Session, processing_job_id: int, job_id: int):
        self.session = session
        self.repo = Repository(session)
        self.processing_job_id = processing_job_id
        self.job_id = job_id

    @classmethod
    def create_run(
        cls,
        session: Session,
        *,
        job_id: int,
        job_code: str,
        parsing_mode: str,
        total: int,
    ) -> ProcessingTracker:
        run = Repository(session).create_processing_job(
            job_id=job_id,
            job_code=job_code,
            parsing_mode=parsing_mode,
            total_submissions=total,
        )
        tracker = cls(session, run.id, job_id)
        tracker.log(
            "info",
            f"Started processing {total} submissions for job {job_code or job_id} in {parsing_mode} mode",
        )
        return tracker

    def log(
        self,
        level: LogLevel,
        message: str,
        *,
        applicant_id: int | None = None,
        applicant_name: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        try:
            self.repo.add_processing_log(
                processing_job_id=self.processing_job_id,
                level=level,
                message=message,
                applicant_id=applicant_id,
                applicant_name=applicant_name,
                details=details,
            )
        except Exception:
            self.session.rollback()
            logger.exception("Tracker logging failed processing_job_id=%s", self.processing_job_id)

    def update_counters(self, **updates: Any) -> None:
        numeric = {key: value for key, value in updates.items() if key in COUNTER_FIELDS or key in COST_FIELDS}
        lists = {key: list(value) for key, value in updates.items() if key in LIST_FIELDS and value}
        unknown = set(updates) - set(numeric) - set(lists) - set(LIST_FIELDS)
        try:
            if unknown:
                raise ValueError(f"unknown tracker counters: {sorted(unknown)}")
            if numeric:
                self.repo.increment_processing_counters(self.processing_job_id, numeric)
            if lists:
                self.repo.append_processing_lists(self.processing_job_id, lists)
        except Exception:
            self.session.rollback()
            logger.exception("Tracker counter update failed processing_job_id=%s", self.processing_job_id)

    def complete(self) -> ProcessingJobInfo:
        run = self._finish("completed")
        self.log(
            "success",
            f"Processing completed in {run.duration_ms / 1000:.1f}s. "
            f"Processed: {run.processed_count}/{run.total_submissions}, "
            f"Errors: {run.error_count}, Cost: ${run.total_cost:.4f}",
        )
        return serialize_run(run)

    def fail(self, reason: str) -> ProcessingJobInfo:
        run = self._finish("failed")
        self.log("error", f"Processing failed after {run.duration_ms / 1000:.1f}s: {reason}")
        return serialize_run(run)

    def info(self) -> ProcessingJobInfo:
        run = self.repo.get_processing_job(self.processing_job_id)
        if run is None:
            raise ValueError(f"processing job {self.processing_job_id} not found")
        self.session.refresh(run)
        return serialize_run(run)

    def logs(self, limit: int = 100) -> list[ProcessingLogEntry]:
        return [serialize_log(entry) for entry in self.repo.list_processing_logs(self.processing_job_id, limit=limit)]

    def _finish(self, status: RunStatus) -> ProcessingJob:
        run = self.repo.get_processing_job(self.processing_job_id)
        if run is None:
            raise ValueError(f"processing job {self.processing_job_id} not found")
        now = utcnow()
        return self.repo.finish_processing_job(
            self.processing_job_id,
            status=status,
            completed_at=now,
            duration_ms=elapsed_ms(run, now),
        )

    @staticmethod
    def get_failed_applicants(session: Session, job_id: int) -> list[dict[str, Any]]:
        rows = Repository(session).list_failed_logs(job_id)
        return [
            {
                "processing_job_id": row.processing_job_id,
                "applicant_id": row.applicant_id,
                "applicant_name": row.applicant_name,
                "error": row.message,
                "logged_at": as_utc(row.logged_at).isoformat() if row.logged_at else None,
            }
            for row in rows
        ]

    @staticmethod
    def get_run_statistics(session: Session, job_id: int) -> RunStatistics:
        repo = Repository(session)
        total_runs = repo.count_processing_jobs(job_id)
        if total_runs == 0:
            return RunStatistics()

        runs = repo.list_processing_jobs(job_id, limit=total_runs)
        total_processed = sum(run.processed_count for run in runs)
        total_errors = sum(run.error_count for run in runs)
        total_cost = sum(run.total_cost for run in runs)
        success_rate = (total_processed - total_errors) / total_processed * 100 if total_processed > 0 else 0.0
        return RunStatistics(
            total_runs=total_runs,
            last_run=serialize_run(runs[0]),
            total_processed=total_processed,
            total_errors=total_errors,
            total_cost=round(total_cost, 6),
            success_rate=round(max(success_rate, 0.0), 1),
        )

    @staticmethod
    def clear_failed(session: Session, job_id: int) -> int:
        cleared = Repository(session).delete_error_logs(job_id)
        logger.info("Cleared %s failed applicant log rows for job_id=%s", cleared, job_id)
        return cleared
