from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from talentsift.db.base import utcnow
from talentsift.db.models import (
    Applicant,
    Embedding,
    Job,
    ParsedProfile,
    ProcessingJob,
    ProcessingLog,
    Ranking,
    Resume,
    Submission,
)
from talentsift.types import ApplicantStatus, advance_status

COUNTER_FIELDS = (
    "processed_count",
    "error_count",
    "skipped_count",
    "upload_count",
    "parsed_count",
    "embedding_count",
)
COST_FIELDS = ("total_cost", "parsing_cost")
LIST_FIELDS = {
    "errors": "errors_json",
    "successful_applicants": "successful_applicants_json",
    "failed_applicants": "failed_applicants_json",
}


def format_timestamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S")


class Repository:
    def __init__(self, session: Session):
        self.session = session

    def create_job(
        self,
        *,
        title: str,
        external_id: str | None = None,
        job_code: str = "",
        description: str = "",
        custom_instructions: str = "",
    ) -> Job:
        job = Job(
            title=title,
            external_id=external_id,
            job_code=job_code,
            description=description,
            custom_instructions=custom_instructions,
        )
        self.session.add(job)
        self.session.commit()
        self.session.refresh(job)
        return job

    def get_job(self, job_id: int) -> Job | None:
        return self.session.get(Job, job_id)

    def get_job_by_external_id(self, external_id: str) -> Job | None:
        return self.session.scalar(select(Job).where(Job.external_id == external_id))

    def resolve_job(self, job_identifier: int | str) -> Job | None:
        """Look a job up by internal id first, then by its ATS job id."""
        identifier = str(job_identifier).strip()
        if identifier.isdigit():
            job = self.get_job(int(identifier))
            if job is not None:
                return job
        return self.get_job_by_external_id(identifier)

    def update_job_context(
        self,
        job_id: int,
        *,
        description: str | None = None,
        custom_instructions: str | None = None,
    ) -> Job:
        job = self.session.get(Job, job_id)
        if not job:
            raise ValueError(f"job {job_id} not found")
        if description is not None:
            job.description = description
        if custom_instructions is not None:
            job.custom_instructions = custom_instructions
        self.session.commit()
        self.session.refresh(job)
        return job

    def latest_submission_modified(self, job_id: int) -> str | None:
        latest = self.session.scalar(
            select(func.max(Submission.modified)).where(
                Submission.job_id == job_id,
                Submission.modified != "",
            )
        )
        if latest:
            return latest

        created = self.session.scalar(
            select(Submission.created_at)
            .where(Submission.job_id == job_id)
            .order_by(Submission.created_at.desc())
            .limit(1)
        )
        if created is None:
            return None
        return format_timestamp(created)

    def list_backlog_submissions(self, job_id: int) -> list[tuple[Submission, Applicant]]:
        statement = (
            select(Submission, Applicant)
            .join(Applicant, Applicant.id == Submission.applicant_id)
            .outerjoin(ParsedProfile, ParsedProfile.applicant_id == Applicant.id)
            .where(Submission.job_id == job_id, ParsedProfile.id.is_(None))
            .order_by(Submission.id.asc())
        )
        return [(row[0], row[1]) for row in self.session.execute(statement).all()]

    def get_applicant(self, applicant_id: int) -> Applicant | None:
        return self.session.get(Applicant, applicant_id)

    def get_applicant_by_external_id(self, external_id: str) -> Applicant | None:
        return self.session.scalar(select(Applicant).where(Applicant.external_id == external_id))

    def list_applicants(self, job_id: int) -> list[Applicant]:
        statement = select(Applicant).where(Applicant.job_id == job_id).order_by(Applicant.id.asc())
        return list(self.session.scalars(statement).all())

    def upsert_applicant(
        self,
        *,
        job_id: int,
        external_id: str,
        name: str,
        email: str = "",
        phone: str = "",
        location: str = "",
    ) -> Applicant:
        applicant = self.get_applicant_by_external_id(external_id)
        if applicant is None:
            applicant = Applicant(
                job_id=job_id,
                external_id=external_id,
                name=name,
                email=email,
                phone=phone,
                location=location,
                status="imported",
            )
            self.session.add(applicant)
        else:
            applicant.job_id = job_id
            if name:
                applicant.name = name
            # never blank out contact info the ATS stopped returning
            if email:
                applicant.email = email
            if phone:
                applicant.phone = phone
            if location:
                applicant.location = location

        self.session.commit()
        self.session.refresh(applicant)
        return applicant

    def set_applicant_status(self, applicant_id: int, status: ApplicantStatus) -> Applicant:
        applicant = self.session.get(Applicant, applicant_id)
        if not applicant:
            raise ValueError(f"applicant {applicant_id} not found")
        applicant.status = advance_status(applicant.status, status)
        self.session.commit()
        self.session.refresh(applicant)
        return applicant

    def get_submission_by_external_id(self, external_id: str) -> Submission | None:
        return self.session.scalar(select(Submission).where(Submission.external_id == external_id))

    def get_submission_for_applicant(self, applicant_id: int) -> Submission | None:
        return self.session.scalar(select(Submission).where(Submission.applicant_id == applicant_id))

    def upsert_submission(
        self,
        *,
        external_id: str,
        applicant_id: int,
        job_id: int,
        values: dict[str, Any],
    ) -> Submission:
        submission = self.get_submission_by_external_id(external_id)
        if submission is None:
            # one submission per applicant: a new ATS submission id re-keys the stored row
            submission = self.get_submission_for_applicant(applicant_id)
            if submission is not None:
                submission.external_id = external_id

        if submission is None:
            submission = Submission(external_id=external_id, applicant_id=applicant_id, job_id=job_id)
            self.session.add(submission)

        submission.job_id = job_id
        for key, value in values.items():
            setattr(submission, key, value)

        self.session.commit()
        self.session.refresh(submission)
        return submission

    def get_parsed_profile(self, applicant_id: int) -> ParsedProfile | None:
        return self.session.scalar(select(ParsedProfile).where(ParsedProfile.applicant_id == applicant_id))

    def has_parsed_profile(self, applicant_id: int) -> bool:
        return self.get_parsed_profile(applicant_id) is not None

    def upsert_parsed_profile(
        self,
        *,
        applicant_id: int,
        profile_json: dict[str, Any],
        skills: list[str],
        titles: list[str],
        location: str = "",
        total_exp_months: int | None = None,
    ) -> ParsedProfile:
        profile = self.get_parsed_profile(applicant_id)
        if profile is None:
            profile = ParsedProfile(applicant_id=applicant_id)
            self.session.add(profile)

        profile.profile_json = profile_json
        profile.skills_json = skills[:200]
        profile.titles_json = titles[:200]
        profile.location = location
        profile.total_exp_months = total_exp_months
        profile.parsed_at = utcnow()

        self.session.commit()
        self.session.refresh(profile)
        return profile

    def get_resume(self, applicant_id: int) -> Resume | None:
        return self.session.scalar(select(Resume).where(Resume.applicant_id == applicant_id))

    def upsert_resume(
        self,
        *,
        applicant_id: int,
        storage_key: str,
        storage_uri: str,
        mime_type: str,
        size_bytes: int,
    ) -> Resume:
        resume = self.get_resume(applicant_id)
        if resume is None:
            resume = Resume(applicant_id=applicant_id, storage_key=storage_key)
            self.session.add(resume)
        resume.storage_key = storage_key
        resume.storage_uri = storage_uri
        resume.mime_type = mime_type
        resume.size_bytes = size_bytes

        self.session.commit()
        self.session.refresh(resume)
        return resume

    def get_embedding(self, namespace: str, ref_id: str) -> Embedding | None:
        return self.session.scalar(
            select(Embedding).where(Embedding.namespace == namespace, Embedding.ref_id == ref_id)
        )

    def upsert_embedding(self, *, namespace: str, ref_id: str, vector: list[float], model: str) -> Embedding:
        embedding = self.get_embedding(namespace, ref_id)
        if embedding is None:
            embedding = Embedding(namespace=namespace, ref_id=ref_id)
            self.session.add(embedding)
        embedding.vector_json = list(vector)
        embedding.dimensions = len(vector)
        embedding.model = model

        self.session.commit()
        self.session.refresh(embedding)
        return embedding

    def list_rankable_applicants(
        self, job_id: int, applicant_ids: list[int] | None = None
    ) -> list[tuple[Applicant, ParsedProfile]]:
        statement = (
            select(Applicant, ParsedProfile)
            .join(ParsedProfile, ParsedProfile.applicant_id == Applicant.id)
            .where(Applicant.job_id == job_id)
        )
        if applicant_ids:
            statement = statement.where(Applicant.id.in_(applicant_ids))
        else:
            statement = statement.where(Applicant.status == "parsed")
        statement = statement.order_by(Applicant.id.asc())
        return [(row[0], row[1]) for row in self.session.execute(statement).all()]

    def upsert_ranking(
        self,
        *,
        job_id: int,
        applicant_id: int,
        score: int,
        explanation: str,
        rubric: dict[str, Any],
        model: str = "",
    ) -> Ranking:
        ranking = self.session.scalar(
            select(Ranking).where(Ranking.job_id == job_id, Ranking.applicant_id == applicant_id)
        )
        if ranking is None:
            ranking = Ranking(job_id=job_id, applicant_id=applicant_id)
            self.session.add(ranking)
        ranking.score = score
        ranking.explanation = explanation
        ranking.rubric_json = rubric
        ranking.model = model

        self.session.commit()
        self.session.refresh(ranking)
        return ranking

    def list_rankings(self, job_id: int) -> list[Ranking]:
        statement = select(Ranking).where(Ranking.job_id == job_id).order_by(Ranking.score.desc())
        return list(self.session.scalars(statement).all())

    def create_processing_job(
        self,
        *,
        job_id: int,
        job_code: str,
        parsing_mode: str,
        total_submissions: int,
    ) -> ProcessingJob:
        run = ProcessingJob(
            job_id=job_id,
            job_code=job_code,
            parsing_mode=parsing_mode,
            status="running",
            total_submissions=total_submissions,
            started_at=utcnow(),
        )
        self.session.add(run)
        self.session.commit()
        self.session.refresh(run)
        return run

    def get_processing_job(self, processing_job_id: int) -> ProcessingJob | None:
        return self.session.get(ProcessingJob, processing_job_id)

    def get_running_processing_job(self, job_id: int) -> ProcessingJob | None:
        statement = (
            select(ProcessingJob)
            .where(ProcessingJob.job_id == job_id, ProcessingJob.status == "running")
            .order_by(ProcessingJob.id.desc())
            .limit(1)
        )
        return self.session.scalar(statement)

    def list_processing_jobs(self, job_id: int, *, limit: int = 10, offset: int = 0) -> list[ProcessingJob]:
        statement = (
            select(ProcessingJob)
            .where(ProcessingJob.job_id == job_id)
            .order_by(ProcessingJob.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(self.session.scalars(statement).all())

    def count_processing_jobs(self, job_id: int) -> int:
        return int(
            self.session.scalar(
                select(func.count(ProcessingJob.id)).where(ProcessingJob.job_id == job_id)
            )
            or 0
        )

    def finish_processing_job(
        self,
        processing_job_id: int,
        *,
        status: str,
        completed_at: datetime,
        duration_ms: int,
    ) -> ProcessingJob:
        run = self.session.get(ProcessingJob, processing_job_id)
        if not run:
            raise ValueError(f"processing job {processing_job_id} not found")
        run.status = status
        run.completed_at = completed_at
        run.duration_ms = duration_ms
        self.session.commit()
        self.session.refresh(run)
        return run

    def increment_processing_counters(self, processing_job_id: int, deltas: dict[str, float]) -> None:
        values: dict[str, Any] = {}
        for field, delta in deltas.items():
            if field not in COUNTER_FIELDS and field not in COST_FIELDS:
                raise ValueError(f"unknown counter field: {field}")
            if not delta:
                continue
            column = getattr(ProcessingJob, field)
            values[field] = column + delta
        if not values:
            return

        # expression update so concurrent writers never lose an increment
        self.session.execute(
            update(ProcessingJob).where(ProcessingJob.id == processing_job_id).values(**values)
        )
        self.session.commit()

    def append_processing_lists(self, processing_job_id: int, items: dict[str, list[str]]) -> None:
        run = self.session.get(ProcessingJob, processing_job_id)
        if not run:
            raise ValueError(f"processing job {processing_job_id} not found")
        self.session.refresh(run)
        for field, values in items.items():
            column = LIST_FIELDS.get(field)
            if column is None:
                raise ValueError(f"unknown list field: {field}")
            if not values:
                continue
            setattr(run, column, [*getattr(run, column), *values])
        self.session.commit()

    def add_processing_log(
        self,
        *,
        processing_job_id: int,
        level: str,
        message: str,
        applicant_id: int | None = None,
        applicant_name: str = "",
        details: dict[str, Any] | None = None,
    ) -> ProcessingLog:
        entry = ProcessingLog(
            processing_job_id=processing_job_id,
            level=level,
            message=message,
            applicant_id=applicant_id,
            applicant_name=applicant_name,
            details_json=details or {},
            logged_at=utcnow(),
        )
        self.session.add(entry)
        self.session.commit()
        self.session.refresh(entry)
        return entry

    def list_processing_logs(self, processing_job_id: int, *, limit: int = 50) -> list[ProcessingLog]:
        statement = (
            select(ProcessingLog)
            .where(ProcessingLog.processing_job_id == processing_job_id)
            .order_by(ProcessingLog.id.desc())
            .limit(limit)
        )
        return list(self.session.scalars(statement).all())

    def list_failed_logs(self, job_id: int, *, limit: int | None = None) -> list[ProcessingLog]:
        statement = (
            select(ProcessingLog)
            .join(ProcessingJob, ProcessingJob.id == ProcessingLog.processing_job_id)
            .where(
                ProcessingJob.job_id == job_id,
                ProcessingLog.level == "error",
                ProcessingLog.applicant_name != "",
            )
            .order_by(ProcessingLog.id.desc())
        )
        if limit is not None:
            statement = statement.limit(limit)
        return list(self.session.scalars(statement).all())

    def delete_error_logs(self, job_id: int) -> int:
        run_ids = select(ProcessingJob.id).where(ProcessingJob.job_id == job_id)
        result = self.session.execute(
            delete(ProcessingLog).where(
                ProcessingLog.processing_job_id.in_(run_ids),
                ProcessingLog.level == "error",
            )
        )
        self.session.commit()
        return int(result.rowcount or 0)
