"""
Rate limiting and circuit breaking for language-model calls.

GuardedLLMClient wraps any LLMClient. Before each call it waits for
capacity in a one-minute sliding window (requests and estimated tokens);
around each call it feeds a circuit breaker that rejects calls with
CircuitBreakerOpenError after repeated failures.

Call sites treat a rejection like any other failed LLM call, so an open
circuit degrades classification to its heuristic defaults instead of
failing the run.

Usage:
    >>> guarded = GuardedLLMClient(provider, LLMGuardConfig(requests_per_minute=30))
    >>> payload = await guarded.get_json_response(system_prompt=..., user_prompt=...)
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ontomigrate.exceptions import CircuitBreakerOpenError, RateLimitExceededError
from ontomigrate.llm.client import LLMClient, LLMProfile, ResponseValidation
from ontomigrate.observability import Tracer, create_tracer
from ontomigrate.observability.attributes import ATTR_LLM_OPERATION, ATTR_LLM_PROFILE

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0

# Rough provider-independent estimate
CHARS_PER_TOKEN = 4


@dataclass(frozen=True)
class LLMGuardConfig:
    """
    Configuration for GuardedLLMClient.

    Attributes:
        requests_per_minute: Calls allowed per sliding minute.
        tokens_per_minute: Estimated prompt tokens allowed per sliding minute.
        failure_threshold: Consecutive failures before the circuit opens.
        reset_timeout_seconds: Seconds an open circuit waits before a probe.
        success_threshold: Probe successes needed to close the circuit.
    """

    requests_per_minute: int = 60
    tokens_per_minute: int = 100_000
    failure_threshold: int = 5
    reset_timeout_seconds: float = 60.0
    success_threshold: int = 1

    def __post_init__(self) -> None:
        if self.requests_per_minute < 1:
            raise ValueError(f"requests_per_minute must be >= 1, got {self.requests_per_minute}")
        if self.tokens_per_minute < 1:
            raise ValueError(f"tokens_per_minute must be >= 1, got {self.tokens_per_minute}")
        if self.failure_threshold < 1:
            raise ValueError(f"failure_threshold must be >= 1, got {self.failure_threshold}")
        if self.success_threshold < 1:
            raise ValueError(f"success_threshold must be >= 1, got {self.success_threshold}")
        if self.reset_timeout_seconds < 0:
            raise ValueError(
                f"reset_timeout_seconds must be >= 0, got {self.reset_timeout_seconds}"
            )


class CircuitState(Enum):
    """State of the circuit breaker."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


def estimate_tokens(*texts: str) -> int:
    """Estimate prompt tokens from character length."""
    return max(1, math.ceil(sum(len(text) for text in texts) / CHARS_PER_TOKEN))


class SlidingWindowRateLimiter:
    """
    Request and token budget over a sliding one-minute window.

    acquire() waits until both budgets have room, then records the call.
    """

    def __init__(
        self,
        requests_per_minute: int,
        tokens_per_minute: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._requests_per_minute = requests_per_minute
        self._tokens_per_minute = tokens_per_minute
        self._clock = clock
        self._sleep = sleep
        self._calls: deque[tuple[float, int]] = deque()
        self._lock = asyncio.Lock()

    def _evict(self, now: float) -> None:
        while self._calls and now - self._calls[0][0] >= WINDOW_SECONDS:
            self._calls.popleft()

    def _tokens_in_window(self) -> int:
        return sum(tokens for _, tokens in self._calls)

    @property
    def requests_in_window(self) -> int:
        self._evict(self._clock())
        return len(self._calls)

    async def acquire(self, estimated_tokens: int) -> None:
        """
        Wait for capacity and record one call.

        Raises:
            RateLimitExceededError: If the request alone exceeds the token budget
        """
        if estimated_tokens > self._tokens_per_minute:
            raise RateLimitExceededError(estimated_tokens, self._tokens_per_minute)

        async with self._lock:
            while True:
                now = self._clock()
                self._evict(now)
                over_requests = len(self._calls) >= self._requests_per_minute
                over_tokens = (
                    self._tokens_in_window() + estimated_tokens > self._tokens_per_minute
                )
                if not (over_requests or over_tokens):
                    self._calls.append((now, estimated_tokens))
                    return

                wait = max(0.0, WINDOW_SECONDS - (now - self._calls[0][0]))
                logger.debug("LLM rate limit reached, waiting %.1fs", wait)
                await self._sleep(wait)


class CircuitBreaker:
    """
    Circuit breaker for language-model calls.

    Opens after `failure_threshold` consecutive failures, rejects calls
    until `reset_timeout_seconds` have passed, then lets probe calls
    through in the half-open state.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout_seconds: float = 60.0,
        success_threshold: int = 1,
        name: str = "llm",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self._failure_threshold = failure_threshold
        self._reset_timeout_seconds = reset_timeout_seconds
        self._success_threshold = success_threshold
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at: float | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def get_time_until_retry(self) -> float:
        """Seconds until an open circuit lets a probe through."""
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return 0.0
        elapsed = self._clock() - self._opened_at
        return max(0.0, self._reset_timeout_seconds - elapsed)

    def check(self, operation_name: str) -> None:
        """
        Reject the call if the circuit is open.

        Raises:
            CircuitBreakerOpenError: If the circuit is open
        """
        if self._state == CircuitState.OPEN and self.get_time_until_retry() <= 0.0:
            logger.info("Circuit breaker '%s' transitioning to half-open", self.name)
            self._state = CircuitState.HALF_OPEN
            self._success_count = 0

        if self._state == CircuitState.OPEN:
            raise CircuitBreakerOpenError(
                operation_name=operation_name,
                time_until_retry=self.get_time_until_retry(),
            )

    async def record_success(self) -> None:
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self._success_threshold:
                    logger.info(
                        "Circuit breaker '%s' closing after %d successes",
                        self.name,
                        self._success_count,
                    )
                    self._state = CircuitState.CLOSED
                    self._failure_count = 0
            elif self._state == CircuitState.CLOSED:
                self._failure_count = 0

    async def record_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1
            if self._state == CircuitState.HALF_OPEN:
                logger.warning(
                    "Circuit breaker '%s' opening from half-open after failure",
                    self.name,
                )
                self._open()
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self._failure_threshold
            ):
                logger.warning(
                    "Circuit breaker '%s' opening after %d failures",
                    self.name,
                    self._failure_count,
                )
                self._open()

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()

    def reset(self) -> None:
        """Force the circuit closed."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at = None


class GuardedLLMClient:
    """
    LLMClient decorator adding rate limiting and circuit breaking.

    A None reply counts as a failure for the breaker but is still returned
    to the caller unchanged.

    Example:
        >>> client = GuardedLLMClient(provider)
        >>> client.circuit_state
        <CircuitState.CLOSED: 'closed'>
    """

    def __init__(
        self,
        inner: LLMClient,
        config: LLMGuardConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._inner = inner
        self.config = config or LLMGuardConfig()
        self._limiter = SlidingWindowRateLimiter(
            self.config.requests_per_minute,
            self.config.tokens_per_minute,
            clock=clock,
            sleep=sleep,
        )
        self._breaker = CircuitBreaker(
            failure_threshold=self.config.failure_threshold,
            reset_timeout_seconds=self.config.reset_timeout_seconds,
            success_threshold=self.config.success_threshold,
            clock=clock,
        )

    @property
    def circuit_state(self) -> CircuitState:
        return self._breaker.state

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def rate_limiter(self) -> SlidingWindowRateLimiter:
        return self._limiter

    async def get_json_response(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        profile: LLMProfile = LLMProfile.BALANCED,
        temperature: float = 0.2,
        validation: ResponseValidation | None = None,
        operation_type: str = "ontology_migration",
    ) -> dict[str, Any] | None:
        with self._tracer.span(
            "ontomigrate.llm.get_json_response",
            {ATTR_LLM_OPERATION: operation_type, ATTR_LLM_PROFILE: profile.value},
        ):
            self._breaker.check(operation_type)
            await self._limiter.acquire(estimate_tokens(system_prompt, user_prompt))

            try:
                response = await self._inner.get_json_response(
                    system_prompt=system_prompt,
                    user_prompt=user_prompt,
                    profile=profile,
                    temperature=temperature,
                    validation=validation,
                    operation_type=operation_type,
                )
            except Exception:
                await self._breaker.record_failure()
                raise

            if response is None:
                await self._breaker.record_failure()
            else:
                await self._breaker.record_success()
            return response


__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "GuardedLLMClient",
    "LLMGuardConfig",
    "SlidingWindowRateLimiter",
    "estimate_tokens",
]
