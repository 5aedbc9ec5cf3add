from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import requests

from talentsift.config import Settings, get_settings
from talentsift.core.retry import RetryPolicy, exponential_backoff
from talentsift.errors import ParseFailed
from talentsift.types import ParseResult, ParseUsage

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = {"SUCCESS", "COMPLETED"}
FAILURE_STATUSES = {"ERROR", "FAILED", "CANCELED", "CANCELLED"}


class ParserJobFailed(Exception):
    """The parsing service reported a terminal failure for a job."""


class DocumentParser:
    """Client for the hosted resume parsing service.

    ``parse`` drives the full protocol: upload the file, poll the job until it
    reaches a terminal state, then fetch the markdown. Transient HTTP errors
    while polling consume an attempt and are retried; a terminal failure status
    is raised straight away.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        session: requests.Session | None = None,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        self.settings = settings or get_settings()
        self.base_url = self.settings.parser_base_url.rstrip("/")
        self.http = session or requests.Session()
        self.sleep = sleep

    def parse(self, data: bytes, filename: str) -> ParseResult:
        started = time.monotonic()
        job_id = ""
        try:
            logger.info("Starting parse for %s (%s bytes)", filename, len(data))
            job_id = self.upload(data, filename)
            status = self._wait_for_completion(job_id)
            markdown = self.fetch_markdown(job_id)
        except Exception as exc:
            usage = ParseUsage(
                job_id=job_id,
                processing_time_ms=int((time.monotonic() - started) * 1000),
                pages=0,
                file_size=len(data),
                success=False,
                error=str(exc),
            )
            raise ParseFailed(f"parse failed for {filename}: {exc}", usage=usage) from exc

        processing_ms = int((time.monotonic() - started) * 1000)
        page_count = _page_count(status)
        metadata = {
            **{key: value for key, value in status.items() if key != "status"},
            "job_id": job_id,
            "filename": filename,
            "page_count": page_count,
            "processing_duration_ms": processing_ms,
        }
        logger.info("Parse completed for %s in %sms, %s pages", filename, processing_ms, page_count)
        return ParseResult(
            markdown=markdown,
            page_count=page_count,
            metadata=metadata,
            usage=ParseUsage(
                job_id=job_id,
                pages=page_count,
                file_size=len(data),
                processing_time_ms=processing_ms,
                success=True,
            ),
        )

    def upload(self, data: bytes, filename: str) -> str:
        response = self.http.post(
            f"{self.base_url}/upload",
            headers=self._headers(),
            files={"file": (filename, data)},
            timeout=self.settings.parser_timeout_sec,
        )
        if response.status_code >= 400:
            raise RuntimeError(f"parser upload error: {response.status_code} {response.text[:500]}")
        payload = response.json()
        job_id = str(payload.get("job_id") or payload.get("id") or "")
        if not job_id:
            raise RuntimeError("no job id returned from upload")
        return job_id

    def poll_status(self, job_id: str) -> dict[str, Any]:
        response = self.http.get(
            f"{self.base_url}/job/{job_id}",
            headers=self._headers(),
            timeout=self.settings.parser_timeout_sec,
        )
        if response.status_code >= 400:
            raise RuntimeError(f"status check failed: {response.status_code}")
        payload = response.json()
        return payload if isinstance(payload, dict) else {}

    def fetch_markdown(self, job_id: str) -> str:
        response = self.http.get(
            f"{self.base_url}/job/{job_id}/result/markdown",
            headers=self._headers(),
            timeout=self.settings.parser_timeout_sec,
        )
        if response.status_code >= 400:
            raise RuntimeError(f"result fetch failed: {response.status_code}")
        if "application/json" in response.headers.get("content-type", ""):
            payload = response.json()
            if isinstance(payload, dict):
                return str(payload.get("markdown") or "")
        return response.text

    def _wait_for_completion(self, job_id: str) -> dict[str, Any]:
        max_attempts = self.settings.parser_max_poll_attempts
        interval = self.settings.parser_poll_interval_sec
        for attempt in range(1, max_attempts + 1):
            try:
                status = self.poll_status(job_id)
            except Exception as exc:
                if attempt == max_attempts:
                    raise
                logger.warning("Polling attempt %s for parse job %s failed, retrying: %s", attempt, job_id, exc)
                self.sleep(interval)
                continue

            state = str(status.get("status", "")).upper()
            if state in FAILURE_STATUSES:
                raise ParserJobFailed(f"job failed: {status.get('error') or 'unknown error'}")
            if state in SUCCESS_STATUSES:
                return status

            logger.debug("Parse job %s still processing (attempt %s/%s)", job_id, attempt, max_attempts)
            if attempt < max_attempts:
                self.sleep(interval)

        raise TimeoutError(f"parse job {job_id} did not complete within {max_attempts} attempts")

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.settings.parser_api_key}"}


def _page_count(status: dict[str, Any]) -> int:
    for key in ("page_count", "num_pages", "pages"):
        value = status.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return int(value)
    return 0


def parser_retry_policy(settings: Settings, sleep: Callable[[float], Any] = time.sleep) -> RetryPolicy:
    return RetryPolicy(
        max_retries=settings.parser_max_retries,
        backoff=exponential_backoff(settings.parser_retry_base_delay_sec),
        sleep=sleep,
        name="document parse",
    )


def parse_with_retry(parser: Any, data: bytes, filename: str, policy: RetryPolicy) -> ParseResult:
    return policy.call(lambda attempt: parser.parse(data, filename))
