"""Helpers that turn loosely-shaped ATS submission records into typed values.

The ATS returns the same fact under several spellings depending on the
endpoint and API version, so every lookup here walks an explicit, ordered
list of candidate keys and takes the first non-empty value.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import urlparse

APPLICANT_ID_KEYS = ("ceipalApplicantId", "applicant_id", "id")
SUBMISSION_ID_KEYS = ("submission_id", "id")
RESUME_URL_KEYS = ("merged_pdf_document", "resume", "mergedPdfDocument", "resume_url")
MODIFIED_KEYS = ("modified", "submitted_on", "submittedOn")
SECURE_APPLICANT_ID_KEYS = (
    "jobSeekerCeipalId",
    "job_seeker_ceipal_id",
    "job_seeker_id",
    "jobSeekerId",
    "applicantCeipalId",
    "applicant_ceipal_id",
    "ceipalApplicantGuid",
    "ceipal_applicant_guid",
    "applicantGuid",
    "applicant_guid",
)
JOB_SEEKER_ID_KEYS = ("job_seeker_id", "jobSeekerId", "jobSeekerCeipalId", "job_seeker_ceipal_id")
DETAIL_EMAIL_KEYS = ("email", "email_address_1")
SUBMISSION_EMAIL_KEYS = ("applicantEmail", "email")
DETAIL_PHONE_KEYS = (
    "mobile_number",
    "phone_number",
    "home_phone_number",
    "work_phone_number",
    "mobile",
    "phone",
)
SUBMISSION_PHONE_KEYS = ("applicantPhone", "phone", "mobile")

SECURE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+=*$")
PLACEHOLDER_NAME_PATTERN = re.compile(r"^Applicant\s+\d+$", re.IGNORECASE)
UNSAFE_FILENAME_CHARS = re.compile(r"\s+")
TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%d",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y",
)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
DEFAULT_MIME = "application/octet-stream"


def first_value(record: dict[str, Any] | None, keys: tuple[str, ...]) -> str:
    if not record:
        return ""
    for key in keys:
        value = record.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


def applicant_external_id(submission: dict[str, Any]) -> str:
    return first_value(submission, APPLICANT_ID_KEYS)


def submission_external_id(submission: dict[str, Any]) -> str:
    return first_value(submission, SUBMISSION_ID_KEYS)


def submission_display_name(submission: dict[str, Any]) -> str:
    name = first_value(submission, ("applicantName",))
    if name:
        return name
    full = " ".join(
        part
        for part in (
            first_value(submission, ("applicantFirstName",)),
            first_value(submission, ("applicantLastName",)),
        )
        if part
    )
    return full or f"Applicant {applicant_external_id(submission)}"


def is_placeholder_name(name: str) -> bool:
    return bool(PLACEHOLDER_NAME_PATTERN.match(name.strip()))


def has_real_name(name: str) -> bool:
    return bool(name) and "Applicant " not in name


def find_secure_applicant_id(submission: dict[str, Any]) -> str:
    """Return the ATS-secure applicant id used by the detail endpoint.

    Known keys are tried in order. Failing those, any string field whose key
    mentions both "applicant" and "id" and whose value looks like URL-safe
    base64 of at least 24 characters is accepted.
    """
    known = first_value(submission, SECURE_APPLICANT_ID_KEYS)
    if known:
        return known

    for key, value in submission.items():
        if not isinstance(value, str):
            continue
        lowered = key.lower()
        if "applicant" in lowered and "id" in lowered:
            if SECURE_ID_PATTERN.match(value) and len(value) >= 24:
                return value
    return ""


def detail_lookup_id(submission: dict[str, Any], applicant_id: str) -> str:
    secure_id = find_secure_applicant_id(submission)
    if secure_id:
        return secure_id
    # purely numeric ids are internal row ids the detail endpoint rejects
    if re.search(r"[A-Za-z_-]", applicant_id):
        return applicant_id
    return ""


def normalize_timestamp(value: Any) -> str:
    """Normalize an ATS timestamp to ``YYYY-MM-DD HH:MM:SS``.

    Unrecognized non-empty strings are returned stripped so they still sort
    deterministically.
    """
    if value is None:
        return ""
    if isinstance(value, datetime):
        return _as_naive_utc(value).strftime("%Y-%m-%d %H:%M:%S")
    text = str(value).strip()
    if not text:
        return ""
    for fmt in TIMESTAMP_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return _as_naive_utc(parsed).strftime("%Y-%m-%d %H:%M:%S")
    return text


def _as_naive_utc(moment: datetime) -> datetime:
    # offset-bearing values are shifted to UTC; naive ones are already UTC
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def incoming_modified(submission: dict[str, Any]) -> str:
    return normalize_timestamp(first_value(submission, MODIFIED_KEYS))


def submission_resume_url(submission: dict[str, Any]) -> str:
    return first_value(submission, RESUME_URL_KEYS)


def detail_resume_url(detail: dict[str, Any] | None) -> str:
    if not detail:
        return ""
    documents = detail.get("documents") or []
    if isinstance(documents, list) and documents and isinstance(documents[0], dict):
        return str(documents[0].get("resume_path") or "").strip()
    return ""


def is_valid_resume_url(url: str | None) -> bool:
    if not url or not isinstance(url, str):
        return False
    if len(url) <= 15 or "null" in url or "undefined" in url:
        return False
    parsed = urlparse(url)
    return bool(parsed.scheme and parsed.netloc)


def resume_extension(url: str) -> str:
    suffix = PurePosixPath(urlparse(url).path).suffix
    if suffix and re.fullmatch(r"\.[A-Za-z0-9]+", suffix):
        return suffix[1:].lower()
    return "pdf"


def resume_mime_type(extension: str) -> str:
    if extension == "pdf":
        return PDF_MIME
    if extension == "docx":
        return DOCX_MIME
    return DEFAULT_MIME


def resume_filename(base_name: str, extension: str) -> str:
    safe_base = UNSAFE_FILENAME_CHARS.sub("_", base_name.strip()) or "resume"
    return f"{safe_base}.{extension}"


@dataclass(slots=True)
class ContactInfo:
    name: str
    email: str
    phone: str
    location: str
    first_name: str = ""
    last_name: str = ""
    consultant_name: str = ""

    @property
    def file_base_name(self) -> str:
        return self.first_name or self.last_name or self.consultant_name or self.name or "resume"


def derive_contact(submission: dict[str, Any], detail: dict[str, Any] | None, fallback_name: str) -> ContactInfo:
    first_name = first_value(detail, ("firstname", "first_name"))
    last_name = first_value(detail, ("lastname", "last_name"))
    consultant_name = first_value(detail, ("consultant_name",))
    if first_name or last_name:
        name = " ".join(part for part in (first_name, last_name) if part)
    else:
        name = consultant_name or fallback_name

    email = first_value(detail, DETAIL_EMAIL_KEYS) or first_value(submission, SUBMISSION_EMAIL_KEYS)
    phone = first_value(detail, DETAIL_PHONE_KEYS) or first_value(submission, SUBMISSION_PHONE_KEYS)
    location = ", ".join(
        part for part in (first_value(detail, (key,)) for key in ("city", "state", "country")) if part
    )
    return ContactInfo(
        name=name,
        email=email,
        phone=phone,
        location=location,
        first_name=first_name,
        last_name=last_name,
        consultant_name=consultant_name,
    )


def submission_values(submission: dict[str, Any], secure_id: str = "") -> dict[str, str]:
    return {
        "resume_url": submission_resume_url(submission),
        "submitted_on": first_value(submission, ("submitted_on", "submittedOn")),
        "source": first_value(submission, ("source",)),
        "pipeline_status": first_value(submission, ("pipeline_status", "pipelineStatus")),
        "submission_status": first_value(submission, ("submission_status", "submissionStatus")),
        "modified": normalize_timestamp(first_value(submission, ("modified",))),
        "job_seeker_external_id": first_value(submission, JOB_SEEKER_ID_KEYS) or secure_id,
    }


def backlog_record(submission: Any, applicant: Any) -> dict[str, Any]:
    """Map a stored submission back into the ATS record shape."""
    return {
        "id": submission.external_id,
        "submission_id": submission.external_id,
        "resume": submission.resume_url,
        "modified": submission.modified,
        "source": submission.source,
        "pipeline_status": submission.pipeline_status,
        "submission_status": submission.submission_status,
        "submitted_on": submission.submitted_on,
        "job_seeker_id": submission.job_seeker_external_id or applicant.external_id,
        "applicant_id": applicant.external_id,
        "applicantName": applicant.name or f"Applicant {applicant.external_id}",
    }


def merge_backlog(api_records: list[dict[str, Any]], backlog: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Concatenate API records and backlog records, dropping later duplicates.

    Two records are duplicates when they share a submission id or an
    applicant id; API records come first so they win.
    """
    merged: list[dict[str, Any]] = []
    seen_submissions: set[str] = set()
    seen_applicants: set[str] = set()
    for record in [*api_records, *backlog]:
        submission_key = first_value(record, SUBMISSION_ID_KEYS)
        applicant_key = first_value(record, ("ceipalApplicantId", "applicant_id", "job_seeker_id"))
        if submission_key and submission_key in seen_submissions:
            continue
        if applicant_key and applicant_key in seen_applicants:
            continue
        if submission_key:
            seen_submissions.add(submission_key)
        if applicant_key:
            seen_applicants.add(applicant_key)
        merged.append(record)
    return merged
