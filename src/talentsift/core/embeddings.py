from __future__ import annotations

import logging

from talentsift.config import Settings, get_settings
from talentsift.errors import EmbeddingError
from talentsift.llm.providers import LLMProvider, build_openai_provider

logger = logging.getLogger(__name__)

CANDIDATE_NAMESPACE = "candidate"


def candidate_embedding_text(markdown: str, skills: list[str], titles: list[str], max_chars: int) -> str:
    parts = [
        markdown or "",
        f"Skills: {', '.join(skills)}" if skills else "",
        f"Roles: {', '.join(titles)}" if titles else "",
    ]
    text = "\n\n".join(part for part in parts if part)
    return text[:max_chars]


class EmbeddingGenerator:
    def __init__(self, settings: Settings | None = None, *, provider: LLMProvider | None = None):
        self.settings = settings or get_settings()
        self.provider = provider or build_openai_provider(self.settings)

    @property
    def model(self) -> str:
        return self.settings.openai_embedding_model

    def embed(self, markdown: str, skills: list[str] | None = None, titles: list[str] | None = None) -> list[float]:
        text = candidate_embedding_text(markdown, skills or [], titles or [], self.settings.embedding_max_chars)
        if not text.strip():
            raise EmbeddingError("nothing to embed")

        try:
            vector = self.provider.embed(text, self.model)
        except Exception as exc:
            raise EmbeddingError(f"embedding call failed: {exc}") from exc

        expected = self.settings.embedding_dimensions
        if expected and len(vector) != expected:
            raise EmbeddingError(f"expected {expected} dimensions, got {len(vector)}")
        return vector
