from __future__ import annotations

from types import SimpleNamespace

import pytest

from talentsift.llm.providers import LLMProvider, ProviderConfig


class FakeChatPayload:
    def __init__(self, *, content: str | None, raw: dict | None = None):
        self.choices = [SimpleNamespace(message=SimpleNamespace(content=content))]
        self._raw = raw or {}

    def model_dump(self) -> dict:
        return self._raw


class FakeCreateAPI:
    def __init__(self, fn):
        self._fn = fn

    def create(self, **kwargs):
        return self._fn(**kwargs)


class FakeClient:
    def __init__(self, *, chat_fn=None, embed_fn=None):
        self.chat = SimpleNamespace(completions=FakeCreateAPI(chat_fn))
        self.embeddings = FakeCreateAPI(embed_fn)


def _provider_with_fake_client(fake_client: FakeClient) -> LLMProvider:
    provider = LLMProvider(
        ProviderConfig(
            name="openai",
            base_url="http://localhost:9999/v1",
            api_key="dummy",
            timeout_sec=5,
        )
    )
    provider.client = fake_client
    return provider


def test_complete_chat_uses_primary_model_when_it_answers() -> None:
    seen: list[str] = []

    def chat_fn(**kwargs):
        seen.append(kwargs["model"])
        return FakeChatPayload(content="PRIMARY_OK", raw={"id": "chat_1"})

    provider = _provider_with_fake_client(FakeClient(chat_fn=chat_fn))
    result = provider.complete_chat([{"role": "user", "content": "ping"}], ["gpt-4o", "gpt-4o-mini"])

    assert result.content == "PRIMARY_OK"
    assert result.model == "gpt-4o"
    assert result.models_tried == ["gpt-4o"]
    assert seen == ["gpt-4o"]


def test_complete_chat_falls_back_to_next_model() -> None:
    def chat_fn(**kwargs):
        if kwargs["model"] == "gpt-4o":
            raise RuntimeError("rate limited")
        return FakeChatPayload(content="FALLBACK_OK")

    provider = _provider_with_fake_client(FakeClient(chat_fn=chat_fn))
    result = provider.complete_chat([{"role": "user", "content": "ping"}], ["gpt-4o", "gpt-4o-mini"])

    assert result.content == "FALLBACK_OK"
    assert result.model == "gpt-4o-mini"
    assert result.models_tried == ["gpt-4o", "gpt-4o-mini"]


def test_empty_completion_counts_as_a_failed_model() -> None:
    def chat_fn(**kwargs):
        if kwargs["model"] == "gpt-4o":
            return FakeChatPayload(content=None)
        return FakeChatPayload(content="OK")

    provider = _provider_with_fake_client(FakeClient(chat_fn=chat_fn))
    result = provider.complete_chat([{"role": "user", "content": "ping"}], ["gpt-4o", "gpt-4o-mini"])

    assert result.models_tried == ["gpt-4o", "gpt-4o-mini"]


def test_complete_chat_raises_when_every_model_fails() -> None:
    def chat_fn(**kwargs):
        raise RuntimeError(f"{kwargs['model']} failed")

    provider = _provider_with_fake_client(FakeClient(chat_fn=chat_fn))
    with pytest.raises(RuntimeError, match="gpt-4o-mini failed"):
        provider.complete_chat([{"role": "user", "content": "ping"}], ["gpt-4o", "gpt-4o-mini"])


def test_complete_chat_requires_a_model() -> None:
    provider = _provider_with_fake_client(FakeClient())
    with pytest.raises(ValueError):
        provider.complete_chat([{"role": "user", "content": "ping"}], ["", ""])


def test_embed_returns_float_vector() -> None:
    def embed_fn(**kwargs):
        assert kwargs["model"] == "text-embedding-3-small"
        return SimpleNamespace(data=[SimpleNamespace(embedding=[1, 0.5, 0])])

    provider = _provider_with_fake_client(FakeClient(embed_fn=embed_fn))
    assert provider.embed("resume text", "text-embedding-3-small") == [1.0, 0.5, 0.0]


def test_embed_rejects_empty_response() -> None:
    provider = _provider_with_fake_client(FakeClient(embed_fn=lambda **kwargs: SimpleNamespace(data=[])))
    with pytest.raises(ValueError):
        provider.embed("resume text", "text-embedding-3-small")
