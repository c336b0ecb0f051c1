"""
Exceptions for the ontology migration engine.

Exception Hierarchy:
    OntologyMigrationError (base)
    +-- RunNotFoundError
    +-- RunStateError
    +-- TemplateError
    |   +-- TemplateNotFoundError
    |   +-- CircularTemplateError
    |   +-- TemplateDepthExceededError
    |   +-- TemplateNotInstantiableError
    +-- PropertyValidationError
    +-- ExternalCallError
    |   +-- LLMCallError
    |   +-- StoreWriteError
    +-- CircuitBreakerOpenError
    +-- RateLimitExceededError
    +-- OrchestrationError

Error Classification:
    Every exception carries an ErrorClassification describing severity,
    recoverability and operator guidance. Migrators return explicit
    per-entity results for expected failures; these exceptions surface
    where a failure has to cross a component boundary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID


class ErrorSeverity(Enum):
    """
    Severity level of migration errors.

    Attributes:
        CRITICAL: Whole-run failure (candidate fetch or audit write failed).
        ERROR: A project or entity failed to migrate.
        WARNING: Degraded path taken (fallback score, circuit open).
        INFO: Informational condition, not a failure.
    """

    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def should_alert(self) -> bool:
        """True for CRITICAL and ERROR levels."""
        return self in (ErrorSeverity.CRITICAL, ErrorSeverity.ERROR)

    @property
    def log_level(self) -> int:
        """Corresponding Python logging level."""
        level_map = {
            ErrorSeverity.CRITICAL: logging.CRITICAL,
            ErrorSeverity.ERROR: logging.ERROR,
            ErrorSeverity.WARNING: logging.WARNING,
            ErrorSeverity.INFO: logging.INFO,
        }
        return level_map[self]


class ErrorRecoverability(Enum):
    """
    Recoverability classification for migration errors.

    Attributes:
        RECOVERABLE: Re-running the migration after operator action succeeds.
            Idempotent re-runs skip everything already in the ledger.
        TRANSIENT: Temporary external failure; a later re-run may succeed
            without any change.
        FATAL: The input itself is wrong (bad template chain, invalid
            props); re-running unchanged fails the same way.
    """

    RECOVERABLE = "recoverable"
    TRANSIENT = "transient"
    FATAL = "fatal"

    @property
    def should_retry(self) -> bool:
        """True only for TRANSIENT errors."""
        return self == ErrorRecoverability.TRANSIENT


@dataclass(frozen=True)
class ErrorClassification:
    """
    Rich metadata for error classification.

    Attributes:
        severity: The severity level of the error.
        recoverability: How the error can be recovered from.
        error_code: Unique error code for programmatic handling.
        category: Error category for grouping related errors.
        suggested_action: Human-readable guidance for operators.
    """

    severity: ErrorSeverity
    recoverability: ErrorRecoverability
    error_code: str
    category: str
    suggested_action: str

    def to_dict(self) -> dict[str, Any]:
        """Convert classification to dictionary for serialization."""
        return {
            "severity": self.severity.value,
            "recoverability": self.recoverability.value,
            "error_code": self.error_code,
            "category": self.category,
            "suggested_action": self.suggested_action,
        }


class OntologyMigrationError(Exception):
    """
    Base exception for all ontology migration errors.

    Attributes:
        message: Human-readable error description.
        run_id: The migration run involved, if applicable.
        legacy_id: The legacy record involved, if applicable.
        recoverable: Whether a re-run can succeed after operator action.
        suggested_action: Suggested action for recovery.
    """

    _default_classification: ErrorClassification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="ONTOLOGY_MIGRATION_ERROR",
        category="general",
        suggested_action="Review the migration log rows for this run",
    )

    def __init__(
        self,
        message: str,
        *,
        run_id: UUID | None = None,
        legacy_id: str | None = None,
        recoverable: bool = False,
        suggested_action: str | None = None,
    ) -> None:
        self.message = message
        self.run_id = run_id
        self.legacy_id = legacy_id
        self.recoverable = recoverable
        self.suggested_action = suggested_action
        super().__init__(message)

    def __str__(self) -> str:
        """Return formatted error string with context."""
        parts = [self.message]
        if self.run_id:
            parts.append(f"run_id={self.run_id}")
        if self.legacy_id:
            parts.append(f"legacy_id={self.legacy_id}")
        if self.recoverable:
            parts.append("(recoverable)")
        return " ".join(parts)

    @property
    def classification(self) -> ErrorClassification:
        """Error classification for this exception type."""
        return self._default_classification

    @property
    def severity(self) -> ErrorSeverity:
        return self.classification.severity

    @property
    def recoverability_type(self) -> ErrorRecoverability:
        return self.classification.recoverability

    @property
    def error_code(self) -> str:
        return self.classification.error_code

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "message": self.message,
            "run_id": str(self.run_id) if self.run_id else None,
            "legacy_id": self.legacy_id,
            "error_code": self.error_code,
            "classification": self.classification.to_dict(),
        }


class RunNotFoundError(OntologyMigrationError):
    """
    Raised when a migration run has no run row in the log.

    Typically a mistyped run id passed to validate, pause or resume.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="RUN_NOT_FOUND",
        category="lookup",
        suggested_action="Verify the run id against get_status()",
    )

    def __init__(self, run_id: UUID) -> None:
        super().__init__(message=f"Migration run not found: {run_id}", run_id=run_id)


class RunStateError(OntologyMigrationError):
    """
    Raised when a run status transition is not allowed.

    Attributes:
        current_status: The run's status value at the time of the request.
        requested_status: The status value that was requested.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="INVALID_RUN_TRANSITION",
        category="state",
        suggested_action="Check the run status before pausing or resuming",
    )

    def __init__(self, run_id: UUID, current_status: str, requested_status: str) -> None:
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            message=f"Cannot move run from {current_status} to {requested_status}",
            run_id=run_id,
        )


class TemplateError(OntologyMigrationError):
    """Base class for template directory and resolution errors."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="TEMPLATE_ERROR",
        category="template",
        suggested_action="Inspect the template chain in the template directory",
    )

    def __init__(self, message: str, *, type_key: str | None = None) -> None:
        self.type_key = type_key
        super().__init__(message)


class TemplateNotFoundError(TemplateError):
    """
    Raised when a type key has no template.

    Callers treat this as "create a new template", never as silent success.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="TEMPLATE_NOT_FOUND",
        category="template",
        suggested_action="Create the template or let the classifier suggest one",
    )

    def __init__(self, type_key: str, scope: str | None = None) -> None:
        self.scope = scope
        suffix = f" in scope {scope}" if scope else ""
        super().__init__(f"Template not found: {type_key}{suffix}", type_key=type_key)


class CircularTemplateError(TemplateError):
    """Raised when a template's parent chain revisits a template."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="TEMPLATE_CIRCULAR_INHERITANCE",
        category="template",
        suggested_action="Break the cycle in parent_template_id links",
    )

    def __init__(self, type_key: str, chain: list[str]) -> None:
        self.chain = chain
        super().__init__(
            f"Circular template inheritance detected for {type_key}: {' -> '.join(chain)}",
            type_key=type_key,
        )


class TemplateDepthExceededError(TemplateError):
    """Raised when a parent chain is deeper than the resolver allows."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="TEMPLATE_DEPTH_EXCEEDED",
        category="template",
        suggested_action="Flatten the template hierarchy",
    )

    def __init__(self, type_key: str, max_depth: int) -> None:
        self.max_depth = max_depth
        super().__init__(
            f"Template inheritance for {type_key} exceeds max depth {max_depth}",
            type_key=type_key,
        )


class TemplateNotInstantiableError(TemplateError):
    """Raised when an entity would be created from an abstract or inactive template."""

    def __init__(self, type_key: str, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Template {type_key} cannot be instantiated: {reason}", type_key=type_key)


class PropertyValidationError(OntologyMigrationError):
    """
    Raised when extracted properties fail the template schema.

    Attributes:
        type_key: Template the properties were validated against.
        errors: Individual validation messages.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.FATAL,
        error_code="PROPERTY_VALIDATION_FAILED",
        category="validation",
        suggested_action="Review the extracted props against the template schema",
    )

    def __init__(self, type_key: str, errors: list[str], legacy_id: str | None = None) -> None:
        self.type_key = type_key
        self.errors = errors
        super().__init__(
            f"Properties for {type_key} failed validation: {'; '.join(errors)}",
            legacy_id=legacy_id,
        )


class ExternalCallError(OntologyMigrationError):
    """
    Base class for failures of an external collaborator.

    Attributes:
        operation: The operation that was being attempted.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="EXTERNAL_CALL_FAILED",
        category="external",
        suggested_action="Re-run the migration; already migrated records are skipped",
    )

    def __init__(self, operation: str, message: str, *, legacy_id: str | None = None) -> None:
        self.operation = operation
        super().__init__(f"{operation} failed: {message}", legacy_id=legacy_id, recoverable=True)


class LLMCallError(ExternalCallError):
    """Raised when a language-model call fails or returns an unusable payload."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="LLM_CALL_FAILED",
        category="llm",
        suggested_action="Check language-model availability and quota, then re-run",
    )


class StoreWriteError(ExternalCallError):
    """Raised when the record store rejects a write."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="STORE_WRITE_FAILED",
        category="store",
        suggested_action="Check store connectivity and constraints, then re-run",
    )


class CircuitBreakerOpenError(OntologyMigrationError):
    """
    Raised when a call is rejected because the circuit breaker is open.

    Attributes:
        operation_name: Name of the operation that was rejected.
        time_until_retry: Seconds until the circuit will try again.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.TRANSIENT,
        error_code="CIRCUIT_BREAKER_OPEN",
        category="circuit_breaker",
        suggested_action="Wait for the breaker timeout; investigate repeated LLM failures",
    )

    def __init__(self, operation_name: str, time_until_retry: float) -> None:
        self.operation_name = operation_name
        self.time_until_retry = time_until_retry
        super().__init__(
            message=(
                f"Circuit breaker open for '{operation_name}'. Retry after {time_until_retry:.1f}s"
            ),
            recoverable=True,
            suggested_action=f"Wait {time_until_retry:.0f}s before retrying",
        )


class RateLimitExceededError(OntologyMigrationError):
    """Raised when a single request needs more tokens than the per-minute budget."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        recoverability=ErrorRecoverability.FATAL,
        error_code="RATE_LIMIT_EXCEEDED",
        category="rate_limit",
        suggested_action="Raise tokens_per_minute or shorten the prompt",
    )

    def __init__(self, estimated_tokens: int, tokens_per_minute: int) -> None:
        self.estimated_tokens = estimated_tokens
        self.tokens_per_minute = tokens_per_minute
        super().__init__(
            f"Request needs ~{estimated_tokens} tokens; budget is {tokens_per_minute}/min"
        )


class OrchestrationError(OntologyMigrationError):
    """
    Raised when a project cascade fails outside any single entity.

    The orchestrator catches it at the per-project boundary and records a
    failed project row; other projects in the run continue.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        recoverability=ErrorRecoverability.RECOVERABLE,
        error_code="ORCHESTRATION_FAILED",
        category="orchestration",
        suggested_action="Fix the failing stage and re-run; completed entities are skipped",
    )


__all__ = [
    "ErrorSeverity",
    "ErrorRecoverability",
    "ErrorClassification",
    "OntologyMigrationError",
    "RunNotFoundError",
    "RunStateError",
    "TemplateError",
    "TemplateNotFoundError",
    "CircularTemplateError",
    "TemplateDepthExceededError",
    "TemplateNotInstantiableError",
    "PropertyValidationError",
    "ExternalCallError",
    "LLMCallError",
    "StoreWriteError",
    "CircuitBreakerOpenError",
    "RateLimitExceededError",
    "OrchestrationError",
]
