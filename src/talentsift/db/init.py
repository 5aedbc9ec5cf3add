from __future__ import annotations

from pathlib import Path

from talentsift.config import get_settings
from talentsift.db import models  # noqa: F401
from talentsift.db.base import Base
from talentsift.db.session import engine


def ensure_data_directories() -> None:
    settings = get_settings()
    paths: list[Path] = [settings.data_dir, settings.storage_root]
    for path in paths:
        path.mkdir(parents=True, exist_ok=True)


def init_database() -> dict[str, list[str]]:
    ensure_data_directories()
    Base.metadata.create_all(bind=engine)
    return {"tables": sorted(Base.metadata.tables)}
