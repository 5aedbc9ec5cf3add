from __future__ import annotations

import os
import tempfile
from pathlib import Path

_TEST_ROOT = Path(tempfile.mkdtemp(prefix="talentsift-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_ROOT / 'test.db'}"
os.environ["DATA_DIR"] = str(_TEST_ROOT)
os.environ["STORAGE_ROOT"] = str(_TEST_ROOT / "storage")
os.environ["APP_ENV"] = "test"

from typing import Any  # noqa: E402

import pytest  # noqa: E402

from talentsift.config import Settings  # noqa: E402
from talentsift.core.embeddings import EmbeddingGenerator  # noqa: E402
from talentsift.core.extractor import ProfileExtractor  # noqa: E402
from talentsift.core.orchestrator import IngestionOrchestrator  # noqa: E402
from talentsift.core.storage import StorageAdapter, StoredObject  # noqa: E402
from talentsift.core.submissions import normalize_timestamp  # noqa: E402
from talentsift.db.base import Base  # noqa: E402
from talentsift.db.session import engine  # noqa: E402
from talentsift.errors import ParseFailed  # noqa: E402
from talentsift.types import ModelResponse, ParseResult, ParseUsage  # noqa: E402

EMBEDDING_DIMENSIONS = 8


@pytest.fixture(autouse=True)
def reset_db() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


class FakeATS:
    def __init__(self) -> None:
        self.submissions: list[dict[str, Any]] = []
        self.details: dict[str, dict[str, Any]] = {}
        self.resumes: dict[str, bytes | Exception] = {}
        self.since_calls: list[str | None] = []
        self.detail_calls: list[str] = []
        self.download_calls: list[str] = []
        self.honor_since = True
        self.list_error: Exception | None = None

    def list_submissions_modified_since(self, job_external_id: str, since: str | None = None) -> list[dict[str, Any]]:
        self.since_calls.append(since)
        if self.list_error is not None:
            raise self.list_error
        return [
            dict(record)
            for record in self.submissions
            if since is None or not self.honor_since or normalize_timestamp(record.get("modified")) > since
        ]

    def get_applicant_detail(self, applicant_id: str) -> dict[str, Any] | None:
        self.detail_calls.append(applicant_id)
        return self.details.get(applicant_id)

    def download_resume(self, url: str) -> bytes:
        self.download_calls.append(url)
        value = self.resumes.get(url, b"%PDF-1.4 fake resume")
        if isinstance(value, Exception):
            raise value
        return value


class FakeStorage(StorageAdapter):
    def __init__(self, failures: int = 0) -> None:
        self.objects: dict[str, bytes] = {}
        self.failures = failures
        self.put_calls = 0

    def put(self, key: str, data: bytes, content_type: str, metadata: dict[str, Any] | None = None) -> StoredObject:
        self.put_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise OSError("storage unavailable")
        self.objects[key] = data
        return StoredObject(key=key, uri=f"memory://{key}", size_bytes=len(data))

    def resolve_uri(self, key: str) -> str:
        return f"memory://{key}"


class FakeParser:
    def __init__(self, markdown: str = "# Jane Doe\nPython engineer", page_count: int = 2) -> None:
        self.result = ParseResult(
            markdown=markdown,
            page_count=page_count,
            metadata={"source": "fake"},
            usage=ParseUsage(job_id="parse-1", pages=page_count, success=True),
        )
        self.failures = 0
        self.calls: list[str] = []

    def parse(self, data: bytes, filename: str) -> ParseResult:
        self.calls.append(filename)
        if self.failures > 0:
            self.failures -= 1
            raise ParseFailed("parser unavailable", usage=ParseUsage(error="parser unavailable"))
        return self.result


class FakeProvider:
    """Stands in for LLMProvider: canned chat replies and fixed-size embeddings."""

    def __init__(self, reply: str = "{}", dimensions: int = EMBEDDING_DIMENSIONS) -> None:
        self.reply = reply
        self.dimensions = dimensions
        self.chat_error: Exception | None = None
        self.embed_error: Exception | None = None
        self.chat_calls: list[list[dict[str, str]]] = []

    def complete_chat(self, messages: list[dict[str, str]], models: list[str]) -> ModelResponse:
        self.chat_calls.append(messages)
        if self.chat_error is not None:
            raise self.chat_error
        return ModelResponse(content=self.reply, model=models[0], models_tried=[models[0]])

    def embed(self, text: str, model: str) -> list[float]:
        if self.embed_error is not None:
            raise self.embed_error
        return [0.5] * self.dimensions


@pytest.fixture
def settings() -> Settings:
    return Settings(
        embedding_dimensions=EMBEDDING_DIMENSIONS,
        storage_retry_delay_sec=0,
        parser_retry_base_delay_sec=0,
        parser_poll_interval_sec=0,
    )


@pytest.fixture
def fake_ats() -> FakeATS:
    return FakeATS()


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def fake_parser() -> FakeParser:
    return FakeParser()


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider(
        reply='{"fullName": "Jane Doe", "skills": ["Python", "SQL"], "titles": ["Engineer"], '
        '"location": "Austin", "totalExpMonths": 48}'
    )


@pytest.fixture
def make_orchestrator(settings, fake_ats, fake_storage, fake_parser, fake_provider):
    def _build(session, **overrides: Any) -> IngestionOrchestrator:
        options: dict[str, Any] = {
            "ats": fake_ats,
            "storage": fake_storage,
            "parser": fake_parser,
            "extractor": ProfileExtractor(settings, provider=fake_provider),
            "embedder": EmbeddingGenerator(settings, provider=fake_provider),
            "sleep": lambda seconds: None,
        }
        options.update(overrides)
        return IngestionOrchestrator(session, settings, **options)

    return _build


def make_submission(number: int, modified: str = "2026-01-10 09:00:00", **extra: Any) -> dict[str, Any]:
    record: dict[str, Any] = {
        "id": f"S{number}",
        "applicant_id": f"A{number}",
        "applicantName": f"Candidate {number}",
        "applicantEmail": f"candidate{number}@example.com",
        "resume": f"https://files.example.com/resumes/candidate-{number}.pdf",
        "modified": modified,
        "source": "LinkedIn",
    }
    record.update(extra)
    return record


@pytest.fixture
def submission_factory():
    return make_submission
