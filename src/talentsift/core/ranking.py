from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Any

from sqlalchemy.orm import Session

from talentsift.config import Settings, get_settings
from talentsift.db.models import Applicant, ParsedProfile
from talentsift.db.repositories import Repository
from talentsift.errors import JobNotFound
from talentsift.llm.prompts import build_ranking_messages
from talentsift.llm.providers import LLMProvider, build_openai_provider, extract_json
from talentsift.types import (
    CandidateInput,
    RankBatch,
    RankDiagnostics,
    RankingItem,
    RankingResult,
    TimelinePoint,
)

logger = logging.getLogger(__name__)


def candidate_from_profile(applicant: Applicant, profile: ParsedProfile) -> CandidateInput:
    payload = profile.profile_json or {}
    extracted = payload.get("extracted")
    return CandidateInput(
        id=str(applicant.id),
        name=applicant.name or "",
        email=applicant.email or "",
        location=profile.location or applicant.location or "",
        titles=list(profile.titles_json or []),
        skills=list(profile.skills_json or []),
        total_exp_months=profile.total_exp_months,
        resume_markdown=str(payload.get("markdown") or ""),
        extracted=extracted if isinstance(extracted, dict) else {},
    )


def score_from_payload(payload: dict[str, Any] | None, default: int) -> int:
    """Map the 0-10 ``overall_rating`` onto a 0-100 stored score."""
    rating = (payload or {}).get("overall_rating")
    if isinstance(rating, bool) or not isinstance(rating, (int, float)):
        return default
    return max(0, min(100, round(float(rating) * 10)))


class ConcurrentRanker:
    def __init__(self, settings: Settings | None = None, *, provider: LLMProvider | None = None):
        self.settings = settings or get_settings()
        self.provider = provider or build_openai_provider(self.settings)

    def rank_one(self, item: RankingItem) -> RankingResult:
        started = time.monotonic()
        candidate = item.candidate.model_dump()
        messages = build_ranking_messages(item.jd, item.instructions, candidate)
        try:
            response = self.provider.complete_chat(messages, self.settings.ranking_models)
        except Exception as exc:
            logger.warning("Ranking failed for candidate %s: %s", item.candidate.id, exc)
            return RankingResult(
                candidate_id=item.candidate.id,
                duration_ms=int((time.monotonic() - started) * 1000),
                models_tried=list(self.settings.ranking_models),
                error=str(exc),
            )

        parsed = extract_json(response.content)
        return RankingResult(
            candidate_id=item.candidate.id,
            raw=response.content,
            json_payload=parsed if isinstance(parsed, dict) else None,
            duration_ms=int((time.monotonic() - started) * 1000),
            models_tried=response.models_tried,
        )

    async def rank_many(self, items: list[RankingItem], concurrency: int) -> RankBatch:
        """Score ``items`` with at most ``concurrency`` model calls in flight.

        Results come back in completion order; every item yields exactly one result.
        """
        if not items:
            return RankBatch()

        queue: deque[RankingItem] = deque(items)
        results: list[RankingResult] = []
        timeline: list[TimelinePoint] = []
        in_flight = 0
        max_concurrent = 0
        origin = time.monotonic()

        def _mark() -> None:
            timeline.append(TimelinePoint(t=round((time.monotonic() - origin) * 1000, 3), in_flight=in_flight))

        async def _worker() -> None:
            nonlocal in_flight, max_concurrent
            while queue:
                item = queue.popleft()
                in_flight += 1
                max_concurrent = max(max_concurrent, in_flight)
                _mark()
                try:
                    result = await asyncio.to_thread(self.rank_one, item)
                finally:
                    in_flight -= 1
                    _mark()
                results.append(result)

        workers = max(1, min(concurrency, len(items)))
        await asyncio.gather(*(_worker() for _ in range(workers)))
        return RankBatch(
            results=results,
            diag=RankDiagnostics(max_concurrent=max_concurrent, timeline=timeline),
        )


class RankingService:
    def __init__(
        self,
        session: Session,
        settings: Settings | None = None,
        *,
        ranker: ConcurrentRanker | None = None,
    ):
        self.session = session
        self.repo = Repository(session)
        self.settings = settings or get_settings()
        self.ranker = ranker or ConcurrentRanker(self.settings)

    def clamp_concurrency(self, concurrency: int | None) -> int:
        value = concurrency if concurrency is not None else self.settings.ranking_default_concurrency
        return max(1, min(int(value), self.settings.ranking_max_concurrency))

    def rank_job(
        self,
        job_identifier: int | str,
        applicant_ids: list[int] | None = None,
        jd: str | None = None,
        instructions: str | None = None,
        concurrency: int | None = None,
    ) -> dict[str, Any]:
        job = self.repo.resolve_job(job_identifier)
        if job is None:
            raise JobNotFound(job_identifier)

        if jd is not None or instructions is not None:
            job = self.repo.update_job_context(job.id, description=jd, custom_instructions=instructions)

        rows = self.repo.list_rankable_applicants(job.id, applicant_ids)
        if not rows:
            logger.info("No rankable applicants for job_id=%s", job.id)
            return {"ranked": 0, "saved": 0, "diag": RankDiagnostics().model_dump()}

        applicants = {str(applicant.id): applicant for applicant, _ in rows}
        items = [
            RankingItem(
                jd=job.description or job.title,
                instructions=job.custom_instructions or "",
                candidate=candidate_from_profile(applicant, profile),
            )
            for applicant, profile in rows
        ]
        workers = self.clamp_concurrency(concurrency)
        logger.info("Ranking %s applicants for job_id=%s concurrency=%s", len(items), job.id, workers)
        batch = asyncio.run(self.ranker.rank_many(items, workers))

        saved = 0
        for result in batch.results:
            applicant = applicants.get(result.candidate_id)
            if applicant is None:
                logger.warning("Ranking result for unknown candidate %s", result.candidate_id)
                continue
            payload = result.json_payload
            explanation = ""
            if payload and payload.get("justification"):
                explanation = str(payload["justification"])
            else:
                explanation = result.raw or result.error
            self.repo.upsert_ranking(
                job_id=job.id,
                applicant_id=applicant.id,
                score=score_from_payload(payload, self.settings.ranking_default_score),
                explanation=explanation,
                rubric=payload or {},
                model=result.models_tried[-1] if result.models_tried else "",
            )
            self.repo.set_applicant_status(applicant.id, "ranked")
            saved += 1

        return {"ranked": len(batch.results), "saved": saved, "diag": batch.diag.model_dump()}
