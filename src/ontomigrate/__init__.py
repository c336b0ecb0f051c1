"""
ontomigrate - Migrate legacy projects into a template-driven ontology.

This library provides:
- Mapping ledger and append-only migration log with PostgreSQL, SQLite
  and in-memory backends
- Template resolver with inheritance chains and property validation
- LLM-backed template classifier with a bounded score cache
- Project, plan, task and calendar migrators
- MigrationOrchestrator with analyze, preview, start, status, validate,
  rollback, pause and resume
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ontomigrate")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from ontomigrate.exceptions import (
    CircuitBreakerOpenError,
    ErrorClassification,
    ErrorRecoverability,
    ErrorSeverity,
    ExternalCallError,
    LLMCallError,
    OntologyMigrationError,
    OrchestrationError,
    PropertyValidationError,
    RateLimitExceededError,
    RunNotFoundError,
    RunStateError,
    StoreWriteError,
    TemplateError,
    TemplateNotFoundError,
)
from ontomigrate.llm import GuardedLLMClient, LLMClient, LLMGuardConfig, LLMProfile
from ontomigrate.models import (
    EntityScope,
    EntityStatus,
    LegacyMapping,
    LogOperation,
    MigrationLogEntry,
    MigrationOptions,
    RollbackResult,
    RunStatus,
    RunSummary,
    StartResult,
    ValidationReport,
)
from ontomigrate.observability import Tracer, create_tracer
from ontomigrate.orchestrator import AnalysisReport, MigrationOrchestrator
from ontomigrate.templates import ClassifierConfig, TemplateClassifier, TemplateResolver

__all__ = [
    "__version__",
    # Orchestrator
    "MigrationOrchestrator",
    "AnalysisReport",
    # Configuration
    "MigrationOptions",
    "ClassifierConfig",
    "LLMGuardConfig",
    # Models
    "RunStatus",
    "EntityScope",
    "EntityStatus",
    "LogOperation",
    "LegacyMapping",
    "MigrationLogEntry",
    "RunSummary",
    "StartResult",
    "ValidationReport",
    "RollbackResult",
    # Templates
    "TemplateClassifier",
    "TemplateResolver",
    # LLM
    "LLMClient",
    "LLMProfile",
    "GuardedLLMClient",
    # Observability
    "Tracer",
    "create_tracer",
    # Exceptions
    "OntologyMigrationError",
    "ErrorClassification",
    "ErrorSeverity",
    "ErrorRecoverability",
    "RunNotFoundError",
    "RunStateError",
    "TemplateError",
    "TemplateNotFoundError",
    "PropertyValidationError",
    "ExternalCallError",
    "LLMCallError",
    "StoreWriteError",
    "CircuitBreakerOpenError",
    "RateLimitExceededError",
    "OrchestrationError",
]
