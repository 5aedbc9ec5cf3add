from __future__ import annotations

import json
from typing import Any

EXTRACTION_SYSTEM_PROMPT = (
    "You are a strict JSON generator. Output only raw JSON matching the schema. "
    "No code fences, no markdown, no comments."
)

PROFILE_SCHEMA = """
{
  "fullName": string,
  "emails": string[],
  "phones": string[],
  "location": string|null,
  "skills": string[],
  "titles": string[],
  "totalExpMonths": number,
  "education": Array<{ degree: string, field?: string, institution?: string, graduationYear?: number }>,
  "companies": Array<{ company: string, title?: string, start?: string, end?: string, durationMonths?: number }>,
  "certifications": string[]
}
""".strip()

EXTRACTION_USER_PROMPT = """
Resume (Markdown):

{markdown}

Context:
{job_context}

Return JSON matching schema: {schema}
""".strip()

RANKING_SYSTEM_PROMPT = "You are a recruiting copilot."

RANKING_RUBRIC = """
You are a recruiting copilot. Given a `job_description` and one candidate record parsed from a resume, you must:
1) score the candidate's fit on a 0-10 scale using the rubric below,
2) explain the score briefly but concretely,
3) if the score > 5, draft a short, highly personalized email and WhatsApp message to the candidate.

### Inputs
- `job_description` (string of the role/JD).
- `instructions` are custom instructions from the recruiter that MUST BE GIVEN HIGHEST IMPORTANCE.
- `candidate` (object) parsed from a resume; any field may be missing:
  `name`, `email`, `location`, `titles`, `skills`, `total_exp_months`, `extracted`, `resume_markdown`.
- `id` is the row id of the applicant record.

### Scoring rubric (100 pts, converted to 0-10)
Score each dimension, sum to 100, divide by 10 and round to one decimal place.
1. skills_match (30 pts)
2. role_domain_relevance (20 pts)
3. recency_tenure (10 pts)
4. impact_signals (10 pts)
5. education_certs (10 pts)
6. leadership_collaboration (8 pts)
7. location_modality_fit (7 pts)
8. seniority_scope (5 pts)

Penalties: -5 critical skills missing; -3 if last relevant experience is more than 5 years old.
Cap [0,100]. rating = round(total/10, 1).

### Evidence handling
Base scoring on explicit evidence from the resume; if uncertain say "not evidenced in resume".
Missing fields are not penalized unless the job description requires them.

### Output format (STRICT JSON ONLY)
{
  "overall_rating": number,
  "score_breakdown": {
    "skills_match": number,
    "role_domain_relevance": number,
    "recency_tenure": number,
    "impact_signals": number,
    "education_certs": number,
    "leadership_collaboration": number,
    "location_modality_fit": number,
    "seniority_scope": number,
    "penalties": number
  },
  "justification": string,
  "decision": "shortlist" | "maybe" | "reject",
  "highlights_for_recruiter": string[],
  "outreach_email": { "subject": string, "body": string } | null,
  "whatsapp_message": string | null,
  "questions": string[]
}
""".strip()


def build_extraction_messages(markdown: str, job_context: str) -> list[dict[str, str]]:
    user = EXTRACTION_USER_PROMPT.format(markdown=markdown, job_context=job_context, schema=PROFILE_SCHEMA)
    return [
        {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
        {"role": "user", "content": user},
    ]


def build_ranking_messages(jd: str, instructions: str, candidate: dict[str, Any]) -> list[dict[str, str]]:
    payload = {"job_description": jd, "instructions": instructions or None, "candidate": candidate}
    user = "\n\n".join(
        [
            "Return STRICT JSON only. Do not include markdown fences or commentary.",
            "INPUT:\n" + json.dumps(payload, indent=2, ensure_ascii=False, default=str),
            "RUBRIC:\n" + RANKING_RUBRIC,
        ]
    )
    return [
        {"role": "system", "content": RANKING_SYSTEM_PROMPT},
        {"role": "user", "content": user},
    ]
