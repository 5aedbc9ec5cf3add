from __future__ import annotations

from typing import Any

from talentsift.core.submissions import has_real_name
from talentsift.types import DedupDecision


def decide(
    *,
    parsing_mode: str,
    applicant: Any | None,
    has_parsed_profile: bool,
    stored_modified: str | None,
    stored_applicant_status: str | None,
    incoming_modified: str,
) -> DedupDecision:
    """Decide whether a submission needs work. The first matching rule wins."""
    if parsing_mode == "none" and applicant is not None:
        complete = (
            applicant.status == "imported"
            and has_real_name(applicant.name or "")
            and bool(applicant.email or applicant.phone)
        )
        if complete:
            return DedupDecision(
                skip=True,
                reason=f"already has complete basic info (status: {applicant.status})",
            )

    if parsing_mode == "full_parse" and applicant is not None and has_parsed_profile:
        return DedupDecision(skip=True, reason="already has parsed profile")

    # timestamps are normalized to YYYY-MM-DD HH:MM:SS, so string order is time order
    if stored_modified and incoming_modified and stored_modified >= incoming_modified:
        if parsing_mode == "none":
            return DedupDecision(skip=True, reason=f"submission not modified since {incoming_modified}")
        if parsing_mode == "full_parse" and stored_applicant_status == "parsed":
            return DedupDecision(
                skip=True,
                reason=f"submission not modified since {incoming_modified} and already parsed",
            )

    return DedupDecision(skip=False, reason="processing needed")
