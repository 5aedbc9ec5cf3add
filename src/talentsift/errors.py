from __future__ import annotations

from typing import Any


class PipelineError(Exception):
    def __init__(self, code: str, message: str | None = None) -> None:
        self.code = code
        self.message = message or code
        super().__init__(self.message)


class JobNotFound(PipelineError):
    def __init__(self, job_identifier: Any) -> None:
        super().__init__("job_not_found", f"job {job_identifier} not found")
        self.job_identifier = job_identifier


class MissingExternalJobId(PipelineError):
    def __init__(self, job_id: int) -> None:
        super().__init__("missing_external_job_id", f"job {job_id} has no ATS job id")
        self.job_id = job_id


class ProcessingAlreadyInProgress(PipelineError):
    def __init__(self, processing_job_id: int, elapsed_minutes: float) -> None:
        super().__init__(
            "processing_in_progress",
            f"processing job {processing_job_id} is already running "
            f"({elapsed_minutes:.0f} min elapsed)",
        )
        self.processing_job_id = processing_job_id
        self.elapsed_minutes = elapsed_minutes


class IngestionFailed(PipelineError):
    def __init__(self, message: str, processing_job_id: int | None = None) -> None:
        super().__init__("ingestion_failed", message)
        self.processing_job_id = processing_job_id


class ParseFailed(PipelineError):
    def __init__(self, message: str, usage: Any = None) -> None:
        super().__init__("parse_failed", message)
        self.usage = usage


class ATSRequestError(PipelineError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__("ats_request_failed", message)
        self.status_code = status_code


class EmbeddingError(PipelineError):
    def __init__(self, message: str) -> None:
        super().__init__("embedding_failed", message)
