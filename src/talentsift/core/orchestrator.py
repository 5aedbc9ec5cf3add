from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import requests
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from talentsift.config import Settings, get_settings
from talentsift.core.ats_client import ATSClient
from talentsift.core.dedup import decide
from talentsift.core.document_parser import DocumentParser, parse_with_retry, parser_retry_policy
from talentsift.core.embeddings import CANDIDATE_NAMESPACE, EmbeddingGenerator
from talentsift.core.extractor import ProfileExtractor, job_context, profile_columns
from talentsift.core.retry import RetryPolicy, linear_backoff
from talentsift.core.storage import StorageAdapter, get_storage, make_resume_key
from talentsift.core.submissions import (
    SUBMISSION_EMAIL_KEYS,
    SUBMISSION_PHONE_KEYS,
    ContactInfo,
    applicant_external_id,
    backlog_record,
    derive_contact,
    detail_lookup_id,
    detail_resume_url,
    find_secure_applicant_id,
    first_value,
    incoming_modified,
    is_placeholder_name,
    is_valid_resume_url,
    merge_backlog,
    resume_extension,
    resume_filename,
    resume_mime_type,
    submission_display_name,
    submission_external_id,
    submission_resume_url,
    submission_values,
)
from talentsift.core.tracker import ProcessingTracker, elapsed_ms, is_stale_run
from talentsift.db.base import utcnow
from talentsift.db.models import Applicant, Job
from talentsift.db.repositories import Repository
from talentsift.errors import (
    ATSRequestError,
    IngestionFailed,
    JobNotFound,
    MissingExternalJobId,
    ProcessingAlreadyInProgress,
)
from talentsift.types import RunSummary

logger = logging.getLogger(__name__)

PARSING_MODES = ("none", "full_parse")


class IngestionOrchestrator:
    """Pull a job's submissions from the ATS and turn them into stored candidates.

    Submissions are handled one at a time. A failure inside one submission is
    rolled back, logged against the run and counted; only failures outside the
    per-submission loop fail the run as a whole.
    """

    def __init__(
        self,
        session: Session,
        settings: Settings | None = None,
        *,
        ats: Any | None = None,
        storage: StorageAdapter | None = None,
        parser: Any | None = None,
        extractor: ProfileExtractor | None = None,
        embedder: EmbeddingGenerator | None = None,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.repo = Repository(session)
        self.ats = ats or ATSClient(self.settings)
        self.storage = storage or get_storage()
        self.parser = parser or DocumentParser(self.settings, sleep=sleep)
        self.extractor = extractor or ProfileExtractor(self.settings)
        self.embedder = embedder or EmbeddingGenerator(self.settings)
        self.parse_policy = parser_retry_policy(self.settings, sleep)
        self.upload_policy = RetryPolicy(
            max_retries=self.settings.storage_max_retries,
            backoff=linear_backoff(self.settings.storage_retry_delay_sec),
            sleep=sleep,
            name="resume upload",
        )

    def run_ingestion(
        self,
        job_identifier: int | str,
        parsing_mode: str = "none",
        retry_failed_only: bool = False,
    ) -> RunSummary:
        if parsing_mode not in PARSING_MODES:
            raise ValueError(f"parsing_mode must be one of {PARSING_MODES}")

        job = self.repo.resolve_job(job_identifier)
        if job is None:
            raise JobNotFound(job_identifier)
        if not job.external_id:
            raise MissingExternalJobId(job.id)

        records = self._collect_submissions(job, parsing_mode, retry_failed_only)
        if records is None:
            return RunSummary(
                job_id=job.id,
                parsing_mode=parsing_mode,
                message="No failed applicants found for retry",
            )
        if not records:
            logger.info("No submissions to process job_id=%s mode=%s", job.id, parsing_mode)
            return RunSummary(job_id=job.id, parsing_mode=parsing_mode, message="No new submissions to process")

        self._release_stale_run(job)
        tracker = self._claim_run(job, parsing_mode, len(records))

        try:
            for record in records:
                self._process_submission(tracker, job, record, parsing_mode)
            info = tracker.complete()
        except Exception as exc:
            logger.exception("Ingestion failed job_id=%s processing_job_id=%s", job.id, tracker.processing_job_id)
            self.session.rollback()
            tracker.fail(str(exc))
            raise IngestionFailed(str(exc), processing_job_id=tracker.processing_job_id) from exc

        recent_logs = tracker.logs(limit=self.settings.processing_recent_log_limit)
        return RunSummary(
            job_id=job.id,
            parsing_mode=parsing_mode,
            message=(
                f"Processed {info.processed_count} of {info.total_submissions} submissions "
                f"({info.skipped_count} skipped, {info.error_count} errors)"
            ),
            total_submissions=info.total_submissions,
            processed_count=info.processed_count,
            parsed_count=info.parsed_count,
            upload_count=info.upload_count,
            embedding_count=info.embedding_count,
            skipped_count=info.skipped_count,
            error_count=info.error_count,
            errors=info.errors,
            successful_applicants=info.successful_applicants,
            failed_applicants=info.failed_applicants,
            parsing_cost=info.parsing_cost,
            total_cost=info.total_cost,
            processing_job=info,
            recent_logs=recent_logs,
        )

    def _collect_submissions(
        self, job: Job, parsing_mode: str, retry_failed_only: bool
    ) -> list[dict[str, Any]] | None:
        # a retry needs the failed applicants even when they are older than the high-water mark
        since = None if retry_failed_only else self.repo.latest_submission_modified(job.id)
        try:
            records = self.ats.list_submissions_modified_since(job.external_id, since)
        except (ATSRequestError, requests.RequestException) as exc:
            raise IngestionFailed(f"Failed to fetch submissions from ATS: {exc}") from exc
        logger.info("Fetched %s submissions job_id=%s since=%s", len(records), job.id, since)

        if parsing_mode == "full_parse":
            backlog = [backlog_record(sub, applicant) for sub, applicant in self.repo.list_backlog_submissions(job.id)]
            records = merge_backlog(records, backlog)

        if retry_failed_only:
            failed_names = {
                entry["applicant_name"] for entry in ProcessingTracker.get_failed_applicants(self.session, job.id)
            }
            if not failed_names:
                return None
            records = [record for record in records if self._record_names(record) & failed_names]
        return records

    def _record_names(self, record: dict[str, Any]) -> set[str]:
        names = {submission_display_name(record)}
        external_id = applicant_external_id(record)
        if external_id:
            applicant = self.repo.get_applicant_by_external_id(external_id)
            if applicant is not None and applicant.name:
                names.add(applicant.name)
        return names

    def _release_stale_run(self, job: Job) -> None:
        running = self.repo.get_running_processing_job(job.id)
        if running is None:
            return

        now = utcnow()
        elapsed_minutes = elapsed_ms(running, now) / 60000
        if is_stale_run(running, self.settings.processing_stale_after_min, now):
            logger.warning(
                "Marking stale processing job %s failed after %.0f minutes without progress",
                running.id,
                elapsed_minutes,
            )
            ProcessingTracker(self.session, running.id, job.id).fail(
                f"stale run with no progress for {elapsed_minutes:.0f} minutes"
            )
            return
        raise ProcessingAlreadyInProgress(running.id, elapsed_minutes)

    def _claim_run(self, job: Job, parsing_mode: str, total: int) -> ProcessingTracker:
        try:
            return ProcessingTracker.create_run(
                self.session,
                job_id=job.id,
                job_code=job.job_code,
                parsing_mode=parsing_mode,
                total=total,
            )
        except IntegrityError as exc:
            # another worker claimed the job between the check and the insert
            self.session.rollback()
            running = self.repo.get_running_processing_job(job.id)
            if running is None:
                raise
            raise ProcessingAlreadyInProgress(running.id, elapsed_ms(running) / 60000) from exc

    def _process_submission(
        self, tracker: ProcessingTracker, job: Job, record: dict[str, Any], parsing_mode: str
    ) -> None:
        external_id = applicant_external_id(record) or submission_external_id(record)
        display_name = submission_display_name(record)
        applicant_id: int | None = None

        try:
            if not external_id:
                raise ValueError("submission has no applicant or submission id")
            submission_id = submission_external_id(record) or external_id

            applicant = self.repo.get_applicant_by_external_id(external_id)
            stored = self.repo.get_submission_by_external_id(submission_id)
            stored_owner = self.repo.get_applicant(stored.applicant_id) if stored is not None else None
            decision = decide(
                parsing_mode=parsing_mode,
                applicant=applicant,
                has_parsed_profile=applicant is not None and self.repo.has_parsed_profile(applicant.id),
                stored_modified=stored.modified if stored is not None else None,
                stored_applicant_status=stored_owner.status if stored_owner is not None else None,
                incoming_modified=incoming_modified(record),
            )
            if decision.skip:
                name = applicant.name if applicant is not None and applicant.name else display_name
                tracker.log(
                    "info",
                    f"Skipping {name}: {decision.reason}",
                    applicant_id=applicant.id if applicant is not None else None,
                    applicant_name=name,
                )
                tracker.update_counters(skipped_count=1)
                return

            known_name = applicant.name if applicant is not None and applicant.name else display_name
            known_email = (applicant.email if applicant is not None else "") or first_value(
                record, SUBMISSION_EMAIL_KEYS
            )
            known_phone = (applicant.phone if applicant is not None else "") or first_value(
                record, SUBMISSION_PHONE_KEYS
            )
            lookup_id = detail_lookup_id(record, external_id)
            detail = None
            if lookup_id and (not (known_email or known_phone) or is_placeholder_name(known_name)):
                detail = self._fetch_detail(tracker, lookup_id, known_name)

            contact = derive_contact(record, detail, known_name)
            applicant = self.repo.upsert_applicant(
                job_id=job.id,
                external_id=external_id,
                name=contact.name,
                email=contact.email,
                phone=contact.phone,
                location=contact.location,
            )
            applicant_id = applicant.id
            display_name = applicant.name or display_name
            tracker.log(
                "success",
                "Applicant profile created/updated",
                applicant_id=applicant.id,
                applicant_name=display_name,
                details={"external_id": external_id, "detail_fetched": detail is not None},
            )

            self.repo.upsert_submission(
                external_id=submission_id,
                applicant_id=applicant.id,
                job_id=job.id,
                values=submission_values(record, find_secure_applicant_id(record)),
            )

            if parsing_mode == "none":
                self._import_resume(tracker, job, applicant, record, detail, contact, lookup_id)
            else:
                self._parse_resume(tracker, job, applicant, record, contact)
        except Exception as exc:
            self.session.rollback()
            logger.warning("Submission failed applicant=%s: %s", display_name, exc)
            tracker.log(
                "error",
                str(exc),
                applicant_id=applicant_id,
                applicant_name=display_name,
                details={"error_type": type(exc).__name__},
            )
            tracker.update_counters(
                error_count=1,
                errors=[f"{display_name}: {exc}"],
                failed_applicants=[display_name],
            )

    def _fetch_detail(self, tracker: ProcessingTracker, lookup_id: str, name: str) -> dict[str, Any] | None:
        try:
            return self.ats.get_applicant_detail(lookup_id)
        except Exception as exc:
            tracker.log(
                "warning",
                f"Could not fetch applicant details: {exc}",
                applicant_name=name,
                details={"lookup_id": lookup_id},
            )
            return None

    def _store_resume(
        self, job: Job, applicant: Applicant, data: bytes, url: str, contact: ContactInfo
    ) -> str:
        extension = resume_extension(url)
        filename = resume_filename(contact.file_base_name, extension)
        mime_type = resume_mime_type(extension)
        key = make_resume_key(job.job_code, applicant.external_id, filename)
        stored = self.upload_policy.call(
            lambda attempt: self.storage.put(
                key,
                data,
                mime_type,
                {"applicant_id": applicant.id, "job_id": job.id, "source_url": url},
            )
        )
        self.repo.upsert_resume(
            applicant_id=applicant.id,
            storage_key=stored.key,
            storage_uri=stored.uri,
            mime_type=mime_type,
            size_bytes=stored.size_bytes,
        )
        return stored.key

    def _import_resume(
        self,
        tracker: ProcessingTracker,
        job: Job,
        applicant: Applicant,
        record: dict[str, Any],
        detail: dict[str, Any] | None,
        contact: ContactInfo,
        lookup_id: str,
    ) -> None:
        name = applicant.name
        if self.repo.get_resume(applicant.id) is None:
            url = submission_resume_url(record)
            if not is_valid_resume_url(url):
                url = detail_resume_url(detail)
            if not is_valid_resume_url(url) and lookup_id:
                url = detail_resume_url(self._fetch_detail(tracker, lookup_id, name))

            if not is_valid_resume_url(url):
                tracker.log("warning", "No valid resume URL found", applicant_id=applicant.id, applicant_name=name)
            else:
                try:
                    data = self.ats.download_resume(url)
                    key = self._store_resume(job, applicant, data, url, contact)
                    tracker.log(
                        "success",
                        "Resume uploaded to storage",
                        applicant_id=applicant.id,
                        applicant_name=name,
                        details={"storage_key": key, "size_bytes": len(data)},
                    )
                    tracker.update_counters(upload_count=1)
                except Exception as exc:
                    self.session.rollback()
                    message = f"Resume upload failed for {name}: {exc}"
                    tracker.log("error", message, applicant_id=applicant.id, applicant_name=name)
                    tracker.update_counters(error_count=1, errors=[message], failed_applicants=[name])

        tracker.update_counters(processed_count=1, successful_applicants=[name])

    def _parse_resume(
        self,
        tracker: ProcessingTracker,
        job: Job,
        applicant: Applicant,
        record: dict[str, Any],
        contact: ContactInfo,
    ) -> None:
        name = applicant.name
        url = submission_resume_url(record)
        if not is_valid_resume_url(url):
            raise ValueError(f"No valid resume URL found for {name}. URL: {url or 'missing'}")

        data = self.ats.download_resume(url)
        uploaded = 0
        try:
            key = self._store_resume(job, applicant, data, url, contact)
            uploaded = 1
            tracker.log(
                "success",
                "Resume uploaded to storage",
                applicant_id=applicant.id,
                applicant_name=name,
                details={"storage_key": key, "size_bytes": len(data)},
            )
        except Exception as exc:
            self.session.rollback()
            tracker.log(
                "warning",
                f"Resume upload failed, continuing with parse: {exc}",
                applicant_id=applicant.id,
                applicant_name=name,
            )

        filename = resume_filename(contact.file_base_name, resume_extension(url))
        result = parse_with_retry(self.parser, data, filename, self.parse_policy)
        if result.page_count <= 0 and not result.markdown.strip():
            raise ValueError(f"Document parser returned 0 pages and empty markdown for {name}")

        cost = result.page_count * self.settings.parser_cost_per_page
        tracker.log(
            "success",
            f"Resume parsed: {result.page_count} pages, cost: ${cost:.4f}",
            applicant_id=applicant.id,
            applicant_name=name,
            details=result.usage.model_dump(),
        )

        extracted = self.extractor.extract(result.markdown, job_context(job.title, job.description))
        if not extracted:
            tracker.log(
                "warning",
                "Profile extraction returned no data, storing markdown only",
                applicant_id=applicant.id,
                applicant_name=name,
            )
        columns = profile_columns(extracted)
        self.repo.upsert_parsed_profile(
            applicant_id=applicant.id,
            profile_json={"markdown": result.markdown, "metadata": result.metadata, "extracted": extracted},
            **columns,
        )
        self.repo.set_applicant_status(applicant.id, "parsed")

        embedded = 0
        try:
            vector = self.embedder.embed(result.markdown, columns["skills"], columns["titles"])
            self.repo.upsert_embedding(
                namespace=CANDIDATE_NAMESPACE,
                ref_id=str(applicant.id),
                vector=vector,
                model=self.embedder.model,
            )
            embedded = 1
            tracker.log(
                "success",
                f"Embedding generated ({len(vector)} dimensions)",
                applicant_id=applicant.id,
                applicant_name=name,
            )
        except Exception as exc:
            self.session.rollback()
            tracker.log(
                "warning",
                f"Embedding generation failed: {exc}",
                applicant_id=applicant.id,
                applicant_name=name,
            )

        tracker.update_counters(
            processed_count=1,
            parsed_count=1,
            upload_count=uploaded,
            embedding_count=embedded,
            parsing_cost=cost,
            total_cost=cost,
            successful_applicants=[name],
        )
