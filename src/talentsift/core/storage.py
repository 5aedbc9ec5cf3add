from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path, PurePosixPath
from typing import Any

from talentsift.config import get_settings

METADATA_SUFFIX = ".meta.json"


@dataclass(slots=True)
class StoredObject:
    key: str
    uri: str
    size_bytes: int


def _sanitize(value: str, pattern: str) -> str:
    return re.sub(pattern, "_", value)


def make_resume_key(job_code: str | None, applicant_external_id: str, filename: str) -> str:
    job_part = _sanitize(job_code or "", r"[^a-zA-Z0-9\-_]") or "unknown"
    file_part = _sanitize(filename, r"[^a-zA-Z0-9\-_.]")
    return f"resumes/{job_part}/{applicant_external_id}/{file_part}"


class StorageAdapter(ABC):
    @abstractmethod
    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> StoredObject:
        """Store bytes under key and return where they landed."""

    @abstractmethod
    def resolve_uri(self, key: str) -> str:
        """Return canonical storage URI for a key."""


class LocalStorageAdapter(StorageAdapter):
    def __init__(self, root: Path) -> None:
        self._root = root.resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    def _normalize_key(self, key: str) -> str:
        normalized = key.strip().lstrip("/")
        path_key = PurePosixPath(normalized)
        if not normalized or path_key.is_absolute() or ".." in path_key.parts:
            raise ValueError(f"invalid storage key: {key!r}")
        return str(path_key)

    def _path_for_key(self, key: str) -> Path:
        normalized = self._normalize_key(key)
        return self._root.joinpath(*PurePosixPath(normalized).parts)

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> StoredObject:
        path = self._path_for_key(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

        sidecar = path.with_name(path.name + METADATA_SUFFIX)
        sidecar.write_text(
            json.dumps({"content_type": content_type, "metadata": metadata or {}}, default=str),
            encoding="utf-8",
        )
        return StoredObject(key=self._normalize_key(key), uri=self.resolve_uri(key), size_bytes=len(data))

    def resolve_uri(self, key: str) -> str:
        normalized = self._normalize_key(key)
        return f"local://{normalized}"


def create_storage(backend: str | None = None, root: str | Path | None = None) -> StorageAdapter:
    settings = get_settings()
    selected_backend = (backend or settings.storage_backend).strip().lower()
    if selected_backend == "local":
        return LocalStorageAdapter(Path(root or settings.storage_root))
    raise ValueError(f"unsupported storage backend: {selected_backend}")


@lru_cache(maxsize=1)
def get_storage() -> StorageAdapter:
    return create_storage()
