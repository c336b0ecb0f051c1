"""
Language-model client interface.

The engine treats inference as an opaque typed-prompt-in, JSON-out
function. Any provider SDK can be adapted by implementing LLMClient.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class LLMProfile(Enum):
    """Latency/quality trade-off requested from the provider."""

    FAST = "fast"
    BALANCED = "balanced"
    POWERFUL = "powerful"


@dataclass(frozen=True)
class ResponseValidation:
    """
    How hard the provider should try to return parseable JSON.

    Attributes:
        retry_on_parse_error: Re-ask when the reply is not valid JSON.
        max_retries: Maximum re-asks.
    """

    retry_on_parse_error: bool = True
    max_retries: int = 2

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")


@runtime_checkable
class LLMClient(Protocol):
    """
    Protocol for JSON-returning language-model calls.

    Implementations return the parsed JSON object, or None when the
    provider produced nothing usable. They may also raise; every call site
    in the engine handles both outcomes.
    """

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
        """
        Send one prompt and parse the JSON reply.

        Args:
            system_prompt: Instructions for the model
            user_prompt: The request payload
            profile: Latency/quality profile
            temperature: Sampling temperature
            validation: Parse-retry policy
            operation_type: Label used for usage accounting

        Returns:
            Parsed JSON object, or None
        """
        ...


__all__ = [
    "LLMClient",
    "LLMProfile",
    "ResponseValidation",
]
