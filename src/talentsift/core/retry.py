from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def linear_backoff(base_delay_sec: float) -> Callable[[int], float]:
    """Delay before retry ``attempt`` (0-based): base, 2*base, 3*base..."""

    def _delay(attempt: int) -> float:
        return base_delay_sec * (attempt + 1)

    return _delay


def exponential_backoff(base_delay_sec: float) -> Callable[[int], float]:
    """Delay before retry ``attempt`` (0-based): base, 2*base, 4*base..."""

    def _delay(attempt: int) -> float:
        return base_delay_sec * (2**attempt)

    return _delay


def always_retry(exc: Exception) -> bool:
    return True


@dataclass(slots=True)
class RetryPolicy:
    """Run a callable up to ``max_retries + 1`` times.

    The callable receives the 0-based attempt number, which lets callers vary
    their behaviour per attempt (the LLM layer uses it to step through a list of
    fallback models). Errors for which ``retryable`` returns False are raised
    immediately.
    """

    max_retries: int = 2
    backoff: Callable[[int], float] = field(default_factory=lambda: linear_backoff(1.0))
    retryable: Callable[[Exception], bool] = always_retry
    sleep: Callable[[float], Any] = time.sleep
    name: str = "operation"

    def call(self, fn: Callable[[int], T]) -> T:
        last_exc: Exception | None = None
        for attempt in range(self.max_retries + 1):
            try:
                return fn(attempt)
            except Exception as exc:
                last_exc = exc
                if not self.retryable(exc) or attempt >= self.max_retries:
                    raise
                delay = self.backoff(attempt)
                logger.warning(
                    "%s attempt %s/%s failed (%s); retrying in %.1fs",
                    self.name,
                    attempt + 1,
                    self.max_retries + 1,
                    exc,
                    delay,
                )
                if delay > 0:
                    self.sleep(delay)

        # unreachable: the final attempt either returns or raises
        raise RuntimeError(f"{self.name} exhausted retries") from last_exc
