from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from talentsift.types import ParsingMode, ProcessingJobInfo, ProcessingLogEntry, ProgressView, RunStatistics


class IngestRequest(BaseModel):
    parsing_mode: ParsingMode = "none"
    retry_failed_only: bool = False
    background: bool = False


class IngestTicketResponse(BaseModel):
    ticket_id: str
    state: str
    status_url: str


class TicketResponse(BaseModel):
    ticket_id: str
    job_ref: str
    parsing_mode: str
    retry_failed_only: bool
    state: str
    result: dict[str, Any] | None = None
    error: str = ""
    error_code: str = ""
    existing_processing_job_id: int | None = None
    created_at: float
    finished_at: float | None = None


class ProcessingJobResponse(BaseModel):
    processing_job: ProcessingJobInfo
    progress: ProgressView
    logs: list[ProcessingLogEntry] = Field(default_factory=list)


class FailedApplicant(BaseModel):
    processing_job_id: int
    applicant_id: int | None = None
    applicant_name: str
    error: str
    logged_at: str | None = None


class JobProcessingResponse(BaseModel):
    job_id: int
    statistics: RunStatistics
    history: list[ProcessingJobInfo] = Field(default_factory=list)
    total_runs: int = 0
    limit: int
    offset: int
    running: ProcessingJobInfo | None = None
    failed_applicants: list[FailedApplicant] = Field(default_factory=list)
    retry_available: bool = False


class ClearFailedResponse(BaseModel):
    job_id: int
    cleared: int


class RankRequest(BaseModel):
    applicant_ids: list[int] | None = None
    jd: str | None = None
    instructions: str | None = None
    concurrency: int | None = Field(default=None, ge=1)


class RankResponse(BaseModel):
    ranked: int
    saved: int
    diag: dict[str, Any] = Field(default_factory=dict)
