from __future__ import annotations

import logging
from typing import Any

from talentsift.config import Settings, get_settings
from talentsift.llm.prompts import build_extraction_messages
from talentsift.llm.providers import LLMProvider, build_openai_provider, parse_json

logger = logging.getLogger(__name__)

MAX_LIST_ITEMS = 200


def job_context(title: str, description: str) -> str:
    return f"Job: {title or ''}\nDescription:\n{description or ''}"


class ProfileExtractor:
    def __init__(self, settings: Settings | None = None, *, provider: LLMProvider | None = None):
        self.settings = settings or get_settings()
        self.provider = provider or build_openai_provider(self.settings)

    def extract(self, markdown: str, context: str) -> dict[str, Any]:
        """Return the structured profile, or ``{}`` when the model call or its JSON fails."""
        messages = build_extraction_messages(markdown, context)
        try:
            response = self.provider.complete_chat(messages, self.settings.extractor_models)
        except Exception as exc:
            logger.warning("Profile extraction failed, storing markdown only: %s", exc)
            return {}
        return parse_json(response.content)


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if item is not None and str(item).strip()][:MAX_LIST_ITEMS]


def profile_columns(extracted: dict[str, Any]) -> dict[str, Any]:
    """Denormalized ParsedProfile columns derived from an extraction payload."""
    total = extracted.get("totalExpMonths")
    if isinstance(total, bool) or not isinstance(total, (int, float)):
        total_exp_months = None
    else:
        total_exp_months = int(total)

    location = extracted.get("location")
    return {
        "skills": _string_list(extracted.get("skills")),
        "titles": _string_list(extracted.get("titles")),
        "location": str(location).strip() if location else "",
        "total_exp_months": total_exp_months,
    }
