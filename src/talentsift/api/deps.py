from __future__ import annotations

from collections.abc import Generator
from functools import lru_cache

from sqlalchemy.orm import Session

from talentsift.config import Settings, get_settings
from talentsift.core.orchestrator import IngestionOrchestrator
from talentsift.core.ranking import RankingService
from talentsift.db.session import get_db_session


def get_db() -> Generator[Session, None, None]:
    yield from get_db_session()


class PipelineFactory:
    """Builds the pipeline services for a request-scoped session."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def orchestrator(self, session: Session) -> IngestionOrchestrator:
        return IngestionOrchestrator(session, self.settings)

    def ranking_service(self, session: Session) -> RankingService:
        return RankingService(session, self.settings)


@lru_cache(maxsize=1)
def get_pipeline_factory() -> PipelineFactory:
    return PipelineFactory()
