from datetime import datetime, timedelta, timezone

from talentsift.core.submissions import (
    applicant_external_id,
    derive_contact,
    detail_lookup_id,
    detail_resume_url,
    find_secure_applicant_id,
    has_real_name,
    incoming_modified,
    is_placeholder_name,
    is_valid_resume_url,
    merge_backlog,
    normalize_timestamp,
    resume_extension,
    resume_filename,
    resume_mime_type,
    submission_display_name,
    submission_values,
)


def test_applicant_id_prefers_explicit_keys_then_falls_back_to_id() -> None:
    assert applicant_external_id({"ceipalApplicantId": "C1", "applicant_id": "A1", "id": "S1"}) == "C1"
    assert applicant_external_id({"applicant_id": "A1", "id": "S1"}) == "A1"
    assert applicant_external_id({"id": "S1"}) == "S1"
    assert applicant_external_id({"applicant_id": "  ", "id": 42}) == "42"


def test_display_name_uses_name_parts_or_placeholder() -> None:
    assert submission_display_name({"applicantName": "Jane Doe"}) == "Jane Doe"
    assert submission_display_name({"applicantFirstName": "Jane", "applicantLastName": "Doe"}) == "Jane Doe"
    assert submission_display_name({"applicant_id": "77"}) == "Applicant 77"


def test_placeholder_and_real_name_checks() -> None:
    assert is_placeholder_name("Applicant 123")
    assert not is_placeholder_name("Applicant Jane")
    assert has_real_name("Jane Doe")
    assert not has_real_name("Applicant 123")
    assert not has_real_name("")


def test_secure_applicant_id_known_keys_then_heuristic() -> None:
    assert find_secure_applicant_id({"jobSeekerId": "abc"}) == "abc"

    token = "z5kLq2P9xYw3Vb7Nm1Rt4Hs8=="
    assert find_secure_applicant_id({"encryptedApplicantId": token}) == token
    assert find_secure_applicant_id({"encryptedApplicantId": "short"}) == ""
    assert find_secure_applicant_id({"resumeToken": token}) == ""
    assert find_secure_applicant_id({"applicantIdHash": "not valid base64 at all !!!"}) == ""


def test_detail_lookup_skips_numeric_row_ids() -> None:
    assert detail_lookup_id({}, "12345") == ""
    assert detail_lookup_id({}, "z5kLq2P9") == "z5kLq2P9"
    assert detail_lookup_id({"job_seeker_id": "secure-1"}, "12345") == "secure-1"


def test_timestamps_are_normalized_for_string_comparison() -> None:
    assert normalize_timestamp("2026-01-10T09:30:00Z") == "2026-01-10 09:30:00"
    assert normalize_timestamp("01/10/2026") == "2026-01-10 00:00:00"
    assert normalize_timestamp("") == ""
    assert normalize_timestamp("next tuesday") == "next tuesday"
    assert incoming_modified({"submitted_on": "2026-02-01"}) == "2026-02-01 00:00:00"
    assert incoming_modified({"modified": "2026-03-01 10:00:00", "submitted_on": "2026-02-01"}) == (
        "2026-03-01 10:00:00"
    )


def test_offset_timestamps_are_shifted_to_utc() -> None:
    assert normalize_timestamp("2024-01-01T10:00:00+05:00") == "2024-01-01 05:00:00"
    assert normalize_timestamp("2024-01-01T02:00:00-03:00") == "2024-01-01 05:00:00"
    assert normalize_timestamp(datetime(2024, 1, 1, 10, tzinfo=timezone(timedelta(hours=5)))) == "2024-01-01 05:00:00"
    assert normalize_timestamp(datetime(2024, 1, 1, 10)) == "2024-01-01 10:00:00"


def test_resume_url_validation() -> None:
    assert is_valid_resume_url("https://files.example.com/cv.pdf")
    assert not is_valid_resume_url("https://x.io/a")
    assert not is_valid_resume_url("https://files.example.com/null")
    assert not is_valid_resume_url("files.example.com/resume.pdf")
    assert not is_valid_resume_url(None)


def test_resume_file_naming() -> None:
    assert resume_extension("https://files.example.com/a/cv.DOCX?sig=1") == "docx"
    assert resume_extension("https://files.example.com/download?id=9") == "pdf"
    assert resume_mime_type("pdf") == "application/pdf"
    assert resume_mime_type("rtf") == "application/octet-stream"
    assert resume_filename("Jane Doe", "pdf") == "Jane_Doe.pdf"
    assert resume_filename("  ", "pdf") == "resume.pdf"


def test_detail_resume_url_reads_first_document() -> None:
    assert detail_resume_url({"documents": [{"resume_path": "https://files.example.com/d.pdf"}]}) == (
        "https://files.example.com/d.pdf"
    )
    assert detail_resume_url({"documents": []}) == ""
    assert detail_resume_url(None) == ""


def test_contact_prefers_detail_then_submission() -> None:
    submission = {"applicantEmail": "sub@example.com", "applicantPhone": "111"}
    detail = {"firstname": "Jane", "lastname": "Doe", "mobile_number": "222", "city": "Austin", "state": "TX"}

    contact = derive_contact(submission, detail, "Applicant 1")
    assert contact.name == "Jane Doe"
    assert contact.email == "sub@example.com"
    assert contact.phone == "222"
    assert contact.location == "Austin, TX"
    assert contact.file_base_name == "Jane"

    fallback = derive_contact(submission, {"consultant_name": "J. Doe"}, "Applicant 1")
    assert fallback.name == "J. Doe"
    assert derive_contact(submission, None, "Applicant 1").name == "Applicant 1"


def test_submission_values_normalize_modified() -> None:
    values = submission_values({"modified": "2026-01-10T09:30:00", "resume": "https://f.example.com/x.pdf"}, "sec")
    assert values["modified"] == "2026-01-10 09:30:00"
    assert values["resume_url"] == "https://f.example.com/x.pdf"
    assert values["job_seeker_external_id"] == "sec"


def test_backlog_merge_keeps_api_records_first() -> None:
    api = [{"id": "S1", "applicant_id": "A1", "source": "api"}]
    backlog = [
        {"id": "S1", "applicant_id": "A1", "source": "backlog"},
        {"id": "S9", "applicant_id": "A1", "source": "backlog"},
        {"id": "S2", "applicant_id": "A2", "source": "backlog"},
    ]

    merged = merge_backlog(api, backlog)

    assert [record["id"] for record in merged] == ["S1", "S2"]
    assert merged[0]["source"] == "api"
