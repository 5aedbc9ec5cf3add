from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from openai import OpenAI

from talentsift.config import Settings
from talentsift.core.retry import RetryPolicy
from talentsift.types import ModelResponse

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ProviderConfig:
    name: str
    base_url: str
    api_key: str
    timeout_sec: int
    temperature: float = 0.4


class LLMProvider:
    def __init__(self, config: ProviderConfig):
        self.config = config
        self.client = OpenAI(
            base_url=config.base_url,
            api_key=config.api_key or "missing",
            timeout=float(config.timeout_sec),
        )

    def complete_chat(self, messages: list[dict[str, str]], models: list[str]) -> ModelResponse:
        """Run a chat completion, trying ``models`` in order until one answers."""
        candidates = [model for model in models if model]
        if not candidates:
            raise ValueError("at least one model is required")

        tried: list[str] = []

        def _attempt(attempt: int) -> ModelResponse:
            model = candidates[attempt]
            tried.append(model)
            return self._complete_via_chat_completions(model=model, messages=messages)

        policy = RetryPolicy(
            max_retries=len(candidates) - 1,
            backoff=lambda attempt: 0.0,
            name=f"chat completion via {self.config.name}",
        )
        response = policy.call(_attempt)
        response.models_tried = list(tried)
        return response

    def embed(self, text: str, model: str) -> list[float]:
        response = self.client.embeddings.create(model=model, input=text, encoding_format="float")
        data = getattr(response, "data", None) or []
        if not data:
            raise ValueError("no embedding data returned")
        vector = getattr(data[0], "embedding", None)
        if not isinstance(vector, list):
            raise ValueError("embedding payload is not a list")
        return [float(value) for value in vector]

    def _complete_via_chat_completions(self, *, model: str, messages: list[dict[str, str]]) -> ModelResponse:
        response = self.client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=self.config.temperature,
        )

        text = self._extract_chat_text(response).strip()
        if not text:
            raise ValueError(f"no content from model {model}")
        raw = response.model_dump() if hasattr(response, "model_dump") else {}
        if not isinstance(raw, dict):
            raw = {"raw": raw}
        return ModelResponse(content=text, model=model, raw=raw)

    @staticmethod
    def _extract_chat_text(response: Any) -> str:
        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""

        message = getattr(choices[0], "message", None)
        if message is None:
            return ""

        content = getattr(message, "content", "")
        if isinstance(content, str):
            return content
        if content is None:
            return ""
        return str(content)


def strip_code_fences(content: str) -> str:
    candidate = content.strip()
    if candidate.startswith("```"):
        first_newline = candidate.find("\n")
        candidate = candidate[first_newline + 1 :] if first_newline != -1 else candidate[3:]
        if candidate.rstrip().endswith("```"):
            candidate = candidate.rstrip()[:-3]
    return candidate.strip()


def extract_json(content: str | None) -> Any | None:
    """Leniently decode model output: fenced JSON, bare JSON, or the first complete ``{...}`` object."""
    if not content:
        return None
    candidate = strip_code_fences(content)
    if not candidate:
        return None

    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    decoder = json.JSONDecoder()
    start = candidate.find("{")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(candidate, start)
            return value
        except json.JSONDecodeError:
            start = candidate.find("{", start + 1)
    return None


def parse_json(content: str) -> dict[str, Any]:
    value = extract_json(content)
    if isinstance(value, dict):
        return value
    if content and content.strip():
        logger.warning("Failed to parse JSON model output")
    return {}


def build_openai_provider(settings: Settings) -> LLMProvider:
    return LLMProvider(
        ProviderConfig(
            name="openai",
            base_url=settings.openai_base_url,
            api_key=settings.openai_api_key,
            timeout_sec=settings.openai_timeout_sec,
            temperature=settings.openai_temperature,
        )
    )
