"""
Language-model access for the ontology migration engine.

Example:
    >>> from ontomigrate.llm import GuardedLLMClient, LLMGuardConfig
    >>> client = GuardedLLMClient(provider, LLMGuardConfig(requests_per_minute=30))
"""

from ontomigrate.llm.client import LLMClient, LLMProfile, ResponseValidation
from ontomigrate.llm.guard import (
    CircuitBreaker,
    CircuitState,
    GuardedLLMClient,
    LLMGuardConfig,
    SlidingWindowRateLimiter,
    estimate_tokens,
)

__all__ = [
    # Client interface
    "LLMClient",
    "LLMProfile",
    "ResponseValidation",
    # Guard
    "GuardedLLMClient",
    "LLMGuardConfig",
    "CircuitBreaker",
    "CircuitState",
    "SlidingWindowRateLimiter",
    "estimate_tokens",
]
