"""
Unit tests for the LLM guard: sliding-window rate limiting and the
circuit breaker around language-model calls.
"""

from typing import Any

import pytest

from ontomigrate.exceptions import CircuitBreakerOpenError, RateLimitExceededError
from ontomigrate.llm import (
    CircuitBreaker,
    CircuitState,
    GuardedLLMClient,
    LLMClient,
    LLMGuardConfig,
    LLMProfile,
    SlidingWindowRateLimiter,
    estimate_tokens,
)
from tests.fixtures import FakeLLMClient


class FakeClock:
    """Manual clock; sleep() advances it instead of waiting."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedProvider:
    """Provider returning queued replies; Exception instances are raised."""

    def __init__(self, *replies: Any) -> None:
        self.replies = list(replies)
        self.calls = 0

    async def get_json_response(self, **kwargs: Any) -> dict[str, Any] | None:
        self.calls += 1
        reply = self.replies.pop(0) if self.replies else {"ok": True}
        if isinstance(reply, Exception):
            raise reply
        return reply


async def _call(client: GuardedLLMClient) -> dict[str, Any] | None:
    return await client.get_json_response(
        system_prompt="system",
        user_prompt="user",
        profile=LLMProfile.FAST,
        operation_type="ontology_migration.template_scoring",
    )


class TestLLMGuardConfig:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"requests_per_minute": 0},
            {"tokens_per_minute": 0},
            {"failure_threshold": 0},
            {"success_threshold": 0},
            {"reset_timeout_seconds": -1},
        ],
    )
    def test_rejects_invalid_values(self, kwargs: dict[str, Any]) -> None:
        with pytest.raises(ValueError):
            LLMGuardConfig(**kwargs)

    def test_estimate_tokens(self) -> None:
        assert estimate_tokens("abcd", "efgh") == 2
        assert estimate_tokens("") == 1


class TestSlidingWindowRateLimiter:
    """Tests for SlidingWindowRateLimiter."""

    @pytest.mark.asyncio
    async def test_waits_when_request_budget_spent(self) -> None:
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(2, 1000, clock=clock, sleep=clock.sleep)

        await limiter.acquire(10)
        clock.now = 5.0
        await limiter.acquire(10)
        await limiter.acquire(10)

        assert clock.sleeps == [55.0]
        assert limiter.requests_in_window == 2

    @pytest.mark.asyncio
    async def test_waits_when_token_budget_spent(self) -> None:
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(100, 100, clock=clock, sleep=clock.sleep)

        await limiter.acquire(80)
        await limiter.acquire(30)

        assert clock.sleeps == [60.0]

    @pytest.mark.asyncio
    async def test_oversized_request_rejected(self) -> None:
        limiter = SlidingWindowRateLimiter(10, 100)

        with pytest.raises(RateLimitExceededError) as exc_info:
            await limiter.acquire(101)
        assert exc_info.value.estimated_tokens == 101

    @pytest.mark.asyncio
    async def test_window_slides(self) -> None:
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(1, 1000, clock=clock, sleep=clock.sleep)

        await limiter.acquire(1)
        clock.now = 61.0

        assert limiter.requests_in_window == 0
        await limiter.acquire(1)
        assert clock.sleeps == []


class TestCircuitBreaker:
    """Tests for CircuitBreaker."""

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self) -> None:
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=2, reset_timeout_seconds=30, clock=clock)

        await breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED
        await breaker.record_failure()
        assert breaker.state == CircuitState.OPEN

        clock.now = 10.0
        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            breaker.check("scoring")
        assert exc_info.value.time_until_retry == pytest.approx(20.0)

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self) -> None:
        breaker = CircuitBreaker(failure_threshold=2)

        await breaker.record_failure()
        await breaker.record_success()
        await breaker.record_failure()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_half_open_probe(self) -> None:
        """After the timeout one probe runs; success closes, failure re-opens."""
        clock = FakeClock()
        breaker = CircuitBreaker(failure_threshold=1, reset_timeout_seconds=30, clock=clock)
        await breaker.record_failure()

        clock.now = 30.0
        breaker.check("scoring")
        assert breaker.state == CircuitState.HALF_OPEN

        await breaker.record_failure()
        assert breaker.state == CircuitState.OPEN

        clock.now = 60.0
        breaker.check("scoring")
        await breaker.record_success()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.get_time_until_retry() == 0.0

    @pytest.mark.asyncio
    async def test_reset(self) -> None:
        breaker = CircuitBreaker(failure_threshold=1)
        await breaker.record_failure()

        breaker.reset()

        assert breaker.state == CircuitState.CLOSED
        breaker.check("scoring")


class TestGuardedLLMClient:
    """Tests for GuardedLLMClient."""

    @pytest.mark.asyncio
    async def test_passes_through_replies(self) -> None:
        fake = FakeLLMClient(scores={"task.base": 50})
        client = GuardedLLMClient(fake, enable_tracing=False)

        reply = await client.get_json_response(
            system_prompt="s",
            user_prompt="Template: Task (task.base)",
            operation_type="ontology_migration.template_scoring",
        )

        assert reply == {"score": 50, "rationale": "scripted"}
        assert fake.calls[0]["operation_type"] == "ontology_migration.template_scoring"
        assert client.rate_limiter.requests_in_window == 1

    def test_satisfies_client_protocol(self) -> None:
        client = GuardedLLMClient(FakeLLMClient(), enable_tracing=False)
        assert isinstance(client, LLMClient)

    @pytest.mark.asyncio
    async def test_errors_propagate_and_open_circuit(self) -> None:
        provider = ScriptedProvider(RuntimeError("boom"), RuntimeError("boom"))
        client = GuardedLLMClient(
            provider, LLMGuardConfig(failure_threshold=2), enable_tracing=False
        )

        for _ in range(2):
            with pytest.raises(RuntimeError):
                await _call(client)

        assert client.circuit_state == CircuitState.OPEN
        with pytest.raises(CircuitBreakerOpenError):
            await _call(client)
        assert provider.calls == 2

    @pytest.mark.asyncio
    async def test_none_reply_counts_as_failure(self) -> None:
        provider = ScriptedProvider(None)
        client = GuardedLLMClient(
            provider, LLMGuardConfig(failure_threshold=1), enable_tracing=False
        )

        assert await _call(client) is None
        assert client.circuit_state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_recovers_after_timeout(self) -> None:
        clock = FakeClock()
        provider = ScriptedProvider(RuntimeError("boom"), {"score": 90})
        client = GuardedLLMClient(
            provider,
            LLMGuardConfig(failure_threshold=1, reset_timeout_seconds=10),
            clock=clock,
            sleep=clock.sleep,
            enable_tracing=False,
        )

        with pytest.raises(RuntimeError):
            await _call(client)
        clock.now = 10.0

        assert await _call(client) == {"score": 90}
        assert client.circuit_state == CircuitState.CLOSED
