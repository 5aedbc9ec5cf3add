from __future__ import annotations

import json
import logging
import time
from typing import Any

import requests
from bs4 import BeautifulSoup

from talentsift.config import Settings, get_settings
from talentsift.errors import ATSRequestError

logger = logging.getLogger(__name__)

TOKEN_EXPIRY_SKEW_SEC = 20
DEFAULT_TOKEN_TTL_SEC = 3600


def parse_token_payload(text: str) -> dict[str, Any]:
    """Read the auth token out of the ATS auth response, which is XML or JSON."""
    stripped = text.strip()
    if stripped.startswith("{"):
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError:
            data = {}
        if isinstance(data, dict) and data.get("access_token"):
            return {
                "access_token": str(data["access_token"]),
                "refresh_token": str(data.get("refresh_token") or ""),
                "expires_in": int(data.get("expires_in") or DEFAULT_TOKEN_TTL_SEC),
            }

    soup = BeautifulSoup(text, "html.parser")
    access = soup.find("access_token")
    if access is None or not access.get_text(strip=True):
        return {}
    refresh = soup.find("refresh_token")
    expires = soup.find("expires_in")
    try:
        expires_in = int(expires.get_text(strip=True)) if expires is not None else DEFAULT_TOKEN_TTL_SEC
    except ValueError:
        expires_in = DEFAULT_TOKEN_TTL_SEC
    return {
        "access_token": access.get_text(strip=True),
        "refresh_token": refresh.get_text(strip=True) if refresh is not None else "",
        "expires_in": expires_in,
    }


def first_record(payload: Any) -> dict[str, Any] | None:
    if isinstance(payload, list):
        return payload[0] if payload and isinstance(payload[0], dict) else None
    if isinstance(payload, dict):
        for key in ("results", "data"):
            if isinstance(payload.get(key), list):
                rows = payload[key]
                return rows[0] if rows and isinstance(rows[0], dict) else None
        return payload
    return None


class ATSClient:
    """Thin client for the ATS REST API: token auth, submissions, applicant detail, resume download."""

    def __init__(self, settings: Settings | None = None, *, session: requests.Session | None = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.ats_base_url.rstrip("/")
        self.timeout = self.settings.ats_timeout_sec
        self.http = session or requests.Session()
        self._access_token = self.settings.ats_access_token or ""
        self._refresh_token = ""
        self._expires_at = time.time() + DEFAULT_TOKEN_TTL_SEC if self._access_token else 0.0

    def list_submissions_modified_since(self, job_external_id: str, since: str | None = None) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "job_id": job_external_id,
            "isPipeline": 1,
            "page": 1,
            "limit": self.settings.ats_page_limit,
        }
        if since:
            params["modifiedAfter"] = since

        payload = self._request("GET", f"{self.base_url}/getSubmissionsList/", params=params)
        records = list(_results(payload))
        next_url = payload.get("next") if isinstance(payload, dict) else None
        pages = 1
        while next_url and pages < self.settings.ats_max_pages:
            payload = self._request("GET", next_url)
            records.extend(_results(payload))
            next_url = payload.get("next") if isinstance(payload, dict) else None
            pages += 1

        logger.info(
            "Fetched %s submissions for ATS job %s (pages=%s since=%s)",
            len(records),
            job_external_id,
            pages,
            since or "-",
        )
        return records

    def get_applicant_detail(self, applicant_id: str) -> dict[str, Any] | None:
        payload = self._request("GET", f"{self.base_url}/getApplicantDetails/", params={"id": applicant_id})
        return first_record(payload)

    def download_resume(self, url: str) -> bytes:
        self._ensure_token()
        response = self.http.get(url, headers=self._auth_headers(), timeout=self.timeout)
        if response.status_code >= 400:
            raise ATSRequestError(
                f"resume download failed: {response.status_code} {response.reason}",
                status_code=response.status_code,
            )
        return response.content

    def login(self) -> None:
        response = self.http.post(
            f"{self.base_url}/createAuthtoken",
            json={
                "email": self.settings.ats_email,
                "password": self.settings.ats_password,
                "api_key": self.settings.ats_api_key,
            },
            timeout=self.timeout,
        )
        if response.status_code >= 400:
            raise ATSRequestError(
                f"ATS login failed {response.status_code}: {response.text[:2000]}",
                status_code=response.status_code,
            )
        self._store_token(parse_token_payload(response.text))

    def refresh(self) -> None:
        if not self._refresh_token:
            self.login()
            return

        response = self.http.post(
            f"{self.base_url}/refreshToken/",
            json={"refresh_token": self._refresh_token},
            headers=self._auth_headers(),
            timeout=self.timeout,
        )
        if response.status_code >= 400:
            logger.warning("ATS token refresh failed status=%s; logging in again", response.status_code)
            self.login()
            return
        self._store_token(parse_token_payload(response.text))

    def _store_token(self, token: dict[str, Any]) -> None:
        if not token.get("access_token"):
            raise ATSRequestError("ATS auth response did not contain an access token")
        self._access_token = token["access_token"]
        self._refresh_token = token.get("refresh_token", "")
        ttl = max(0, int(token.get("expires_in", DEFAULT_TOKEN_TTL_SEC)) - TOKEN_EXPIRY_SKEW_SEC)
        self._expires_at = time.time() + ttl

    def _ensure_token(self) -> None:
        if self._access_token and time.time() < self._expires_at:
            return
        if self._refresh_token:
            self.refresh()
        else:
            self.login()

    def _auth_headers(self) -> dict[str, str]:
        if self._access_token:
            return {"Authorization": f"Bearer {self._access_token}"}
        return {"x-api-key": self.settings.ats_api_key}

    def _request(self, method: str, url: str, *, params: dict[str, Any] | None = None) -> Any:
        self._ensure_token()
        response = self.http.request(method, url, params=params, headers=self._auth_headers(), timeout=self.timeout)
        if response.status_code == 401:
            self.refresh()
            response = self.http.request(
                method, url, params=params, headers=self._auth_headers(), timeout=self.timeout
            )
        if response.status_code >= 400:
            raise ATSRequestError(
                f"ATS {method} {url} failed {response.status_code}: {response.text[:2000]}",
                status_code=response.status_code,
            )

        content_type = response.headers.get("content-type", "")
        text = response.text
        if "application/json" in content_type or text.strip()[:1] in {"{", "["}:
            try:
                return response.json()
            except ValueError:
                return text
        return text


def _results(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, list):
        return [row for row in payload if isinstance(row, dict)]
    if isinstance(payload, dict):
        for key in ("results", "data"):
            if isinstance(payload.get(key), list):
                return [row for row in payload[key] if isinstance(row, dict)]
    return []
