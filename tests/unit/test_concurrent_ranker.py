from __future__ import annotations

import asyncio
import threading
import time

from talentsift.config import Settings
from talentsift.core.ranking import ConcurrentRanker, score_from_payload
from talentsift.types import CandidateInput, ModelResponse, RankingItem


class SlowProvider:
    def __init__(self, reply: str = '```json\n{"overall_rating": 7.2, "justification": "solid"}\n```') -> None:
        self.reply = reply
        self.lock = threading.Lock()
        self.active = 0
        self.peak = 0

    def complete_chat(self, messages, models) -> ModelResponse:
        with self.lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        time.sleep(0.02)
        with self.lock:
            self.active -= 1
        return ModelResponse(content=self.reply, model=models[0], models_tried=list(models[:1]))


class FailingProvider:
    def complete_chat(self, messages, models) -> ModelResponse:
        raise RuntimeError("model unavailable")


def _items(count: int) -> list[RankingItem]:
    return [
        RankingItem(jd="Backend engineer", candidate=CandidateInput(id=str(index), name=f"C{index}"))
        for index in range(count)
    ]


def test_rank_many_respects_concurrency_cap() -> None:
    provider = SlowProvider()
    ranker = ConcurrentRanker(Settings(), provider=provider)

    batch = asyncio.run(ranker.rank_many(_items(7), 3))

    assert len(batch.results) == 7
    assert {result.candidate_id for result in batch.results} == {str(index) for index in range(7)}
    assert 1 <= batch.diag.max_concurrent <= 3
    assert provider.peak <= 3
    assert len(batch.diag.timeline) == 14
    assert all(result.json_payload == {"overall_rating": 7.2, "justification": "solid"} for result in batch.results)


def test_rank_many_with_fewer_items_than_workers() -> None:
    batch = asyncio.run(ConcurrentRanker(Settings(), provider=SlowProvider()).rank_many(_items(2), 10))
    assert len(batch.results) == 2
    assert batch.diag.max_concurrent <= 2


def test_rank_many_with_no_items() -> None:
    batch = asyncio.run(ConcurrentRanker(Settings(), provider=SlowProvider()).rank_many([], 3))
    assert batch.results == []
    assert batch.diag.max_concurrent == 0


def test_rank_one_captures_errors_and_unparseable_output() -> None:
    failed = ConcurrentRanker(Settings(), provider=FailingProvider()).rank_one(_items(1)[0])
    assert failed.error == "model unavailable"
    assert failed.json_payload is None

    garbled = ConcurrentRanker(Settings(), provider=SlowProvider(reply="no json here")).rank_one(_items(1)[0])
    assert garbled.error == ""
    assert garbled.raw == "no json here"
    assert garbled.json_payload is None


def test_score_mapping() -> None:
    assert score_from_payload({"overall_rating": 7.25}, 50) == 72
    assert score_from_payload({"overall_rating": 12}, 50) == 100
    assert score_from_payload({"overall_rating": "high"}, 50) == 50
    assert score_from_payload(None, 50) == 50
