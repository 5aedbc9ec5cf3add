from __future__ import annotations

import logging
from typing import NoReturn

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from talentsift.api.deps import PipelineFactory, get_db, get_pipeline_factory
from talentsift.api.schemas import (
    ClearFailedResponse,
    FailedApplicant,
    IngestRequest,
    IngestTicketResponse,
    JobProcessingResponse,
    ProcessingJobResponse,
    RankRequest,
    RankResponse,
    TicketResponse,
)
from talentsift.core.runtime import get_run_registry
from talentsift.core.tracker import (
    ProcessingTracker,
    describe_progress,
    elapsed_ms,
    is_stale_run,
    serialize_run,
)
from talentsift.db.models import Job
from talentsift.db.repositories import Repository
from talentsift.db.session import SessionLocal
from talentsift.errors import (
    IngestionFailed,
    JobNotFound,
    MissingExternalJobId,
    PipelineError,
    ProcessingAlreadyInProgress,
)
from talentsift.types import RunSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])

FAILED_APPLICANT_LIMIT = 20
PROCESSING_JOB_LOG_LIMIT = 50


def _raise_http(exc: PipelineError) -> NoReturn:
    if isinstance(exc, JobNotFound):
        raise HTTPException(status_code=404, detail=exc.message) from exc
    if isinstance(exc, MissingExternalJobId):
        raise HTTPException(status_code=400, detail=exc.message) from exc
    if isinstance(exc, ProcessingAlreadyInProgress):
        raise HTTPException(
            status_code=409,
            detail={
                "error": "Processing already in progress",
                "message": exc.message,
                "existing_processing_job_id": exc.processing_job_id,
                "elapsed_minutes": round(exc.elapsed_minutes, 1),
            },
        ) from exc
    if isinstance(exc, IngestionFailed):
        raise HTTPException(
            status_code=500,
            detail={"error": "Ingestion failed", "processing_job_id": exc.processing_job_id},
        ) from exc
    raise HTTPException(status_code=500, detail=exc.message) from exc


def _resolve_job(repo: Repository, job_ref: str) -> Job:
    job = repo.resolve_job(job_ref)
    if job is None:
        _raise_http(JobNotFound(job_ref))
    return job


def _run_ingestion_in_background(
    factory: PipelineFactory,
    ticket_id: str,
    job_ref: str,
    parsing_mode: str,
    retry_failed_only: bool,
) -> None:
    registry = get_run_registry()
    registry.mark_running(ticket_id)
    with SessionLocal() as db:
        try:
            summary = factory.orchestrator(db).run_ingestion(
                job_ref,
                parsing_mode=parsing_mode,
                retry_failed_only=retry_failed_only,
            )
        except ProcessingAlreadyInProgress as exc:
            logger.warning(
                "Background ingestion blocked ticket=%s by processing job %s", ticket_id, exc.processing_job_id
            )
            registry.mark_failed(ticket_id, exc.message, exc.code, existing_processing_job_id=exc.processing_job_id)
            return
        except PipelineError as exc:
            logger.warning("Background ingestion failed ticket=%s: %s", ticket_id, exc.message)
            registry.mark_failed(ticket_id, exc.message, exc.code)
            return
        except Exception as exc:
            logger.exception("Background ingestion crashed ticket=%s", ticket_id)
            registry.mark_failed(ticket_id, str(exc), "unexpected_error")
            return
    registry.mark_completed(ticket_id, summary.model_dump(mode="json"))


@router.post("/jobs/{job_ref}/ingest", response_model=RunSummary)
def ingest_job(
    job_ref: str,
    payload: IngestRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    factory: PipelineFactory = Depends(get_pipeline_factory),
):
    if payload.background:
        repo = Repository(db)
        job = _resolve_job(repo, job_ref)
        if not job.external_id:
            _raise_http(MissingExternalJobId(job.id))
        running = repo.get_running_processing_job(job.id)
        if running is not None and not is_stale_run(running, factory.settings.processing_stale_after_min):
            _raise_http(ProcessingAlreadyInProgress(running.id, elapsed_ms(running) / 60000))

        ticket = get_run_registry().create(
            job_ref=job_ref,
            parsing_mode=payload.parsing_mode,
            retry_failed_only=payload.retry_failed_only,
        )
        background_tasks.add_task(
            _run_ingestion_in_background,
            factory,
            ticket.ticket_id,
            job_ref,
            payload.parsing_mode,
            payload.retry_failed_only,
        )
        body = IngestTicketResponse(
            ticket_id=ticket.ticket_id,
            state=ticket.state,
            status_url=f"/api/ingestions/{ticket.ticket_id}",
        )
        return JSONResponse(status_code=202, content=body.model_dump())

    try:
        return factory.orchestrator(db).run_ingestion(
            job_ref,
            parsing_mode=payload.parsing_mode,
            retry_failed_only=payload.retry_failed_only,
        )
    except PipelineError as exc:
        _raise_http(exc)


@router.get("/ingestions/{ticket_id}", response_model=TicketResponse)
def get_ingestion(ticket_id: str) -> TicketResponse:
    ticket = get_run_registry().get(ticket_id)
    if ticket is None:
        raise HTTPException(status_code=404, detail="Ingestion ticket not found")
    return TicketResponse.model_validate(ticket.as_dict())


@router.get("/processing-jobs/{processing_job_id}", response_model=ProcessingJobResponse)
def get_processing_job(processing_job_id: int, db: Session = Depends(get_db)) -> ProcessingJobResponse:
    run = Repository(db).get_processing_job(processing_job_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Processing job not found")
    tracker = ProcessingTracker(db, run.id, run.job_id)
    return ProcessingJobResponse(
        processing_job=serialize_run(run),
        progress=describe_progress(run),
        logs=tracker.logs(limit=PROCESSING_JOB_LOG_LIMIT),
    )


@router.get("/jobs/{job_ref}/processing", response_model=JobProcessingResponse)
def get_job_processing(
    job_ref: str,
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> JobProcessingResponse:
    repo = Repository(db)
    job = _resolve_job(repo, job_ref)
    running = repo.get_running_processing_job(job.id)
    failed = ProcessingTracker.get_failed_applicants(db, job.id)
    return JobProcessingResponse(
        job_id=job.id,
        statistics=ProcessingTracker.get_run_statistics(db, job.id),
        history=[serialize_run(run) for run in repo.list_processing_jobs(job.id, limit=limit, offset=offset)],
        total_runs=repo.count_processing_jobs(job.id),
        limit=limit,
        offset=offset,
        running=serialize_run(running) if running is not None else None,
        failed_applicants=[FailedApplicant.model_validate(entry) for entry in failed[:FAILED_APPLICANT_LIMIT]],
        retry_available=bool(failed) and running is None,
    )


@router.post("/jobs/{job_ref}/processing/clear-failed", response_model=ClearFailedResponse)
def clear_failed_applicants(job_ref: str, db: Session = Depends(get_db)) -> ClearFailedResponse:
    job = _resolve_job(Repository(db), job_ref)
    return ClearFailedResponse(job_id=job.id, cleared=ProcessingTracker.clear_failed(db, job.id))


@router.post("/jobs/{job_ref}/rank", response_model=RankResponse)
def rank_job(
    job_ref: str,
    payload: RankRequest,
    db: Session = Depends(get_db),
    factory: PipelineFactory = Depends(get_pipeline_factory),
) -> RankResponse:
    try:
        result = factory.ranking_service(db).rank_job(
            job_ref,
            applicant_ids=payload.applicant_ids,
            jd=payload.jd,
            instructions=payload.instructions,
            concurrency=payload.concurrency,
        )
    except PipelineError as exc:
        _raise_http(exc)
    return RankResponse.model_validate(result)
