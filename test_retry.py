"""Retry policy: backoff schedule, re-raise after the budget, non-retryable errors."""
import asyncio

import pytest

from niche_engine.tools.retry import RetryPolicy


def test_delay_schedule_is_exponential_and_capped():
    policy = RetryPolicy(base_delay=1.0, multiplier=2.0, max_delay=5.0)
    assert [policy.delay_for(a) for a in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]


def test_rejects_zero_attempts():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


def test_succeeds_after_transient_failures(fast_policy, fast_sleep):
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("reset")
        return "ok"

    assert asyncio.run(fast_policy.run(flaky)) == "ok"
    assert len(calls) == 3
    assert fast_sleep.delays == [1.0, 2.0]


def test_reraises_last_error_when_budget_exhausted(fast_policy, fast_sleep):
    calls = []

    async def always_down():
        calls.append(1)
        raise TimeoutError(f"attempt {len(calls)}")

    with pytest.raises(TimeoutError, match="attempt 3"):
        asyncio.run(fast_policy.run(always_down, label="always_down"))
    assert len(calls) == 3
    # No sleep after the final attempt
    assert len(fast_sleep.delays) == 2


def test_errors_outside_retry_on_propagate_immediately(fast_sleep):
    policy = RetryPolicy(max_attempts=3, retry_on=(ConnectionError,), sleep=fast_sleep)
    calls = []

    async def bad_input():
        calls.append(1)
        raise ValueError("not retryable")

    with pytest.raises(ValueError):
        asyncio.run(policy.run(bad_input))
    assert len(calls) == 1
    assert fast_sleep.delays == []


def test_from_settings_applies_overrides(monkeypatch):
    from niche_engine.config import get_settings

    monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "5")
    get_settings.cache_clear()
    policy = RetryPolicy.from_settings(base_delay=0.0)
    assert policy.max_attempts == 5
    assert policy.base_delay == 0.0
