from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

ParsingMode = Literal["none", "full_parse"]
LogLevel = Literal["info", "warning", "error", "success"]
RunStatus = Literal["running", "completed", "failed"]
ApplicantStatus = Literal["imported", "parsed", "ranked", "shortlisted", "contacted"]

APPLICANT_STATUS_ORDER: tuple[str, ...] = ("imported", "parsed", "ranked", "shortlisted", "contacted")


def advance_status(current: str | None, target: str) -> str:
    """Return the later of two applicant statuses; status never moves backwards."""
    if target not in APPLICANT_STATUS_ORDER:
        raise ValueError(f"unknown applicant status: {target}")
    if current not in APPLICANT_STATUS_ORDER:
        return target
    if APPLICANT_STATUS_ORDER.index(target) > APPLICANT_STATUS_ORDER.index(current):
        return target
    return current


class ModelResponse(BaseModel):
    content: str
    model: str = ""
    models_tried: list[str] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=dict)


class ParseUsage(BaseModel):
    job_id: str = ""
    pages: int = 0
    file_size: int = 0
    processing_time_ms: int = 0
    success: bool = False
    error: str = ""


class ParseResult(BaseModel):
    markdown: str = ""
    page_count: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    usage: ParseUsage = Field(default_factory=ParseUsage)


class DedupDecision(BaseModel):
    skip: bool
    reason: str = ""


class CandidateInput(BaseModel):
    id: str
    name: str = ""
    email: str = ""
    location: str = ""
    titles: list[str] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    total_exp_months: int | None = None
    resume_markdown: str = ""
    extracted: dict[str, Any] = Field(default_factory=dict)


class RankingItem(BaseModel):
    jd: str
    instructions: str = ""
    candidate: CandidateInput


class RankingResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    candidate_id: str
    raw: str = ""
    json_payload: dict[str, Any] | None = Field(default=None, alias="json")
    duration_ms: int = 0
    models_tried: list[str] = Field(default_factory=list)
    error: str = ""


class TimelinePoint(BaseModel):
    t: float
    in_flight: int


class RankDiagnostics(BaseModel):
    max_concurrent: int = 0
    timeline: list[TimelinePoint] = Field(default_factory=list)


class RankBatch(BaseModel):
    results: list[RankingResult] = Field(default_factory=list)
    diag: RankDiagnostics = Field(default_factory=RankDiagnostics)


class ProcessingLogEntry(BaseModel):
    id: int
    level: str
    message: str
    applicant_id: int | None = None
    applicant_name: str = ""
    details: dict[str, Any] = Field(default_factory=dict)
    logged_at: str | None = None


class ProcessingJobInfo(BaseModel):
    id: int
    job_id: int
    job_code: str = ""
    parsing_mode: str
    status: str
    total_submissions: int = 0
    processed_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    upload_count: int = 0
    parsed_count: int = 0
    embedding_count: int = 0
    total_cost: float = 0.0
    parsing_cost: float = 0.0
    errors: list[str] = Field(default_factory=list)
    successful_applicants: list[str] = Field(default_factory=list)
    failed_applicants: list[str] = Field(default_factory=list)
    started_at: str | None = None
    completed_at: str | None = None
    duration_ms: int | None = None


class RunSummary(BaseModel):
    job_id: int | None = None
    parsing_mode: str = "none"
    message: str = ""
    total_submissions: int = 0
    processed_count: int = 0
    parsed_count: int = 0
    upload_count: int = 0
    embedding_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    errors: list[str] = Field(default_factory=list)
    successful_applicants: list[str] = Field(default_factory=list)
    failed_applicants: list[str] = Field(default_factory=list)
    parsing_cost: float = 0.0
    total_cost: float = 0.0
    processing_job: ProcessingJobInfo | None = None
    recent_logs: list[ProcessingLogEntry] = Field(default_factory=list)


class ProgressView(BaseModel):
    progress: int = 0
    phase: str = "downloading"
    message: str = ""
    eta_seconds: int | None = None
    success_rate: int = 0


class RunStatistics(BaseModel):
    total_runs: int = 0
    last_run: ProcessingJobInfo | None = None
    total_processed: int = 0
    total_errors: int = 0
    total_cost: float = 0.0
    success_rate: float = 0.0
