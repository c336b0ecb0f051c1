"""
Scripted language-model client for tests.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from ontomigrate.llm.client import LLMProfile, ResponseValidation
from ontomigrate.templates.classifier import (
    EXTRACTION_OPERATION,
    PLAN_SYNTHESIS_OPERATION,
    SCORING_OPERATION,
    SUGGESTION_OPERATION,
)


class FakeLLMClient:
    """
    Scripted LLMClient.

    Scores are looked up by the "(type_key)" marker of the scoring prompt;
    other operations return the configured payload. Operations listed in
    `failing` raise RuntimeError like a provider outage would.
    """

    def __init__(
        self,
        *,
        scores: dict[str, float] | None = None,
        suggestion: dict[str, Any] | None = None,
        extraction: dict[str, Any] | None = None,
        plans: dict[str, Any] | None = None,
        failing: Iterable[str] = (),
    ) -> None:
        self.scores = dict(scores or {})
        self.suggestion = suggestion
        self.extraction = (
            extraction if extraction is not None else {"props": {}, "confidence": 0.9}
        )
        self.plans = plans
        self.failing = set(failing)
        self.calls: list[dict[str, Any]] = []

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
        self.calls.append(
            {
                "operation_type": operation_type,
                "profile": profile,
                "temperature": temperature,
                "user_prompt": user_prompt,
            }
        )
        if operation_type in self.failing:
            raise RuntimeError(f"{operation_type} unavailable")

        if operation_type == SCORING_OPERATION:
            for type_key, score in self.scores.items():
                if f"({type_key})" in user_prompt:
                    return {"score": score, "rationale": "scripted"}
            return {"score": 0, "rationale": "no match"}
        if operation_type == SUGGESTION_OPERATION:
            return self.suggestion
        if operation_type == EXTRACTION_OPERATION:
            return self.extraction
        if operation_type == PLAN_SYNTHESIS_OPERATION:
            return self.plans
        return None

    def calls_for(self, operation_type: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["operation_type"] == operation_type]


__all__ = ["FakeLLMClient"]
