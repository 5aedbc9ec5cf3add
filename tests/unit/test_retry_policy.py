import pytest

from talentsift.core.retry import RetryPolicy, exponential_backoff, linear_backoff


def test_backoff_schedules() -> None:
    assert [linear_backoff(1.0)(attempt) for attempt in range(3)] == [1.0, 2.0, 3.0]
    assert [exponential_backoff(2.0)(attempt) for attempt in range(3)] == [2.0, 4.0, 8.0]


def test_retries_until_success_and_sleeps_between_attempts() -> None:
    delays: list[float] = []
    attempts: list[int] = []

    def flaky(attempt: int) -> str:
        attempts.append(attempt)
        if attempt < 2:
            raise OSError("temporary")
        return "ok"

    policy = RetryPolicy(max_retries=2, backoff=exponential_backoff(2.0), sleep=delays.append)

    assert policy.call(flaky) == "ok"
    assert attempts == [0, 1, 2]
    assert delays == [2.0, 4.0]


def test_final_failure_is_raised_after_budget() -> None:
    delays: list[float] = []
    policy = RetryPolicy(max_retries=2, backoff=linear_backoff(1.0), sleep=delays.append)

    def always_fails(attempt: int) -> None:
        raise OSError(f"attempt {attempt}")

    with pytest.raises(OSError, match="attempt 2"):
        policy.call(always_fails)
    assert delays == [1.0, 2.0]


def test_non_retryable_errors_are_raised_immediately() -> None:
    delays: list[float] = []
    calls: list[int] = []
    policy = RetryPolicy(
        max_retries=3,
        retryable=lambda exc: not isinstance(exc, ValueError),
        sleep=delays.append,
    )

    def invalid(attempt: int) -> None:
        calls.append(attempt)
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        policy.call(invalid)
    assert calls == [0]
    assert delays == []
