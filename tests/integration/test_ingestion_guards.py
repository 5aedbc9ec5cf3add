from datetime import timedelta

import pytest

from talentsift.db.base import utcnow
from talentsift.db.repositories import Repository
from talentsift.db.session import SessionLocal
from talentsift.errors import (
    ATSRequestError,
    IngestionFailed,
    JobNotFound,
    MissingExternalJobId,
    ProcessingAlreadyInProgress,
)


def _job_with_running_run(db, *, minutes_ago: float, processed: int = 0):
    repo = Repository(db)
    job = repo.create_job(title="QA Engineer", external_id="ext-200", job_code="QA-200")
    run = repo.create_processing_job(job_id=job.id, job_code="QA-200", parsing_mode="none", total_submissions=5)
    run.started_at = utcnow() - timedelta(minutes=minutes_ago)
    db.commit()
    if processed:
        repo.increment_processing_counters(run.id, {"processed_count": processed})
    return job, run


def test_unknown_job_is_rejected(make_orchestrator):
    with SessionLocal() as db:
        with pytest.raises(JobNotFound):
            make_orchestrator(db).run_ingestion("does-not-exist")


def test_job_without_ats_id_is_rejected(make_orchestrator):
    with SessionLocal() as db:
        job = Repository(db).create_job(title="Internal role")
        with pytest.raises(MissingExternalJobId):
            make_orchestrator(db).run_ingestion(job.id)


def test_job_is_resolved_by_external_id(make_orchestrator, fake_ats, submission_factory):
    fake_ats.submissions = [submission_factory(1)]
    with SessionLocal() as db:
        job = Repository(db).create_job(title="QA Engineer", external_id="ext-200")
        summary = make_orchestrator(db).run_ingestion("ext-200")
        assert summary.job_id == job.id
        assert summary.processed_count == 1


def test_fresh_running_run_blocks_a_new_one(make_orchestrator, fake_ats, submission_factory):
    fake_ats.submissions = [submission_factory(1)]
    with SessionLocal() as db:
        job, run = _job_with_running_run(db, minutes_ago=5)

        with pytest.raises(ProcessingAlreadyInProgress) as exc_info:
            make_orchestrator(db).run_ingestion(job.id)

        assert exc_info.value.processing_job_id == run.id
        assert 4 < exc_info.value.elapsed_minutes < 6
        assert Repository(db).count_processing_jobs(job.id) == 1


def test_stale_run_without_progress_is_replaced(make_orchestrator, fake_ats, submission_factory):
    fake_ats.submissions = [submission_factory(1)]
    with SessionLocal() as db:
        job, stale = _job_with_running_run(db, minutes_ago=31)

        summary = make_orchestrator(db).run_ingestion(job.id)

        repo = Repository(db)
        db.expire_all()
        assert summary.processing_job.status == "completed"
        assert summary.processing_job.id != stale.id
        assert repo.get_processing_job(stale.id).status == "failed"
        assert repo.get_processing_job(stale.id).completed_at is not None


def test_old_run_that_made_progress_still_blocks(make_orchestrator, fake_ats, submission_factory):
    fake_ats.submissions = [submission_factory(1)]
    with SessionLocal() as db:
        job, run = _job_with_running_run(db, minutes_ago=45, processed=2)

        with pytest.raises(ProcessingAlreadyInProgress) as exc_info:
            make_orchestrator(db).run_ingestion(job.id)
        assert exc_info.value.processing_job_id == run.id


def test_ats_listing_failure_raises_without_creating_a_run(make_orchestrator, fake_ats):
    fake_ats.list_error = ATSRequestError("ATS GET failed 503", status_code=503)
    with SessionLocal() as db:
        job = Repository(db).create_job(title="QA Engineer", external_id="ext-200")

        with pytest.raises(IngestionFailed) as exc_info:
            make_orchestrator(db).run_ingestion(job.id)

        assert exc_info.value.processing_job_id is None
        assert isinstance(exc_info.value.__cause__, ATSRequestError)
        assert Repository(db).count_processing_jobs(job.id) == 0


def test_failure_outside_the_submission_loop_fails_the_run(
    make_orchestrator, fake_ats, submission_factory, monkeypatch
):
    fake_ats.submissions = [submission_factory(1)]

    def broken_complete(self):
        raise RuntimeError("database went away")

    monkeypatch.setattr("talentsift.core.tracker.ProcessingTracker.complete", broken_complete)

    with SessionLocal() as db:
        job = Repository(db).create_job(title="QA Engineer", external_id="ext-200")

        with pytest.raises(IngestionFailed) as exc_info:
            make_orchestrator(db).run_ingestion(job.id)

        run = Repository(db).get_processing_job(exc_info.value.processing_job_id)
        db.refresh(run)
        assert run.status == "failed"
        assert Repository(db).get_running_processing_job(job.id) is None
