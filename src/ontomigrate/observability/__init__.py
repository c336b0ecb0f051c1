"""
Observability utilities for ontomigrate.

Provides the composition-based tracer used by every component and the
standard span attribute names.

Example:
    >>> from ontomigrate.observability import create_tracer
    >>>
    >>> class MyStore:
    ...     def __init__(self, enable_tracing: bool = True):
    ...         self._tracer = create_tracer(__name__, enable_tracing)
    ...         self._enable_tracing = self._tracer.enabled
"""

from ontomigrate.observability.attributes import (
    ATTR_BATCH_ID,
    ATTR_CANDIDATE_COUNT,
    ATTR_CONCURRENCY,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_DRY_RUN,
    ATTR_ENTITY_COUNT,
    ATTR_ENTITY_SCOPE,
    ATTR_ENTITY_STATUS,
    ATTR_ERROR_TYPE,
    ATTR_LEGACY_ID,
    ATTR_LEGACY_TABLE,
    ATTR_LLM_OPERATION,
    ATTR_LLM_PROFILE,
    ATTR_MATCH_SCORE,
    ATTR_ONTO_TABLE,
    ATTR_RUN_ID,
    ATTR_RUN_STATUS,
    ATTR_TEMPLATE_OUTCOME,
    ATTR_TEMPLATE_SCOPE,
    ATTR_TYPE_KEY,
)
from ontomigrate.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    RecordedSpan,
    SpanHandle,
    Tracer,
    create_tracer,
)

__all__ = [
    # Tracers
    "SpanHandle",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "RecordedSpan",
    "create_tracer",
    # Attributes - Run
    "ATTR_RUN_ID",
    "ATTR_BATCH_ID",
    "ATTR_DRY_RUN",
    "ATTR_RUN_STATUS",
    "ATTR_CANDIDATE_COUNT",
    "ATTR_CONCURRENCY",
    # Attributes - Entity
    "ATTR_ENTITY_SCOPE",
    "ATTR_LEGACY_TABLE",
    "ATTR_LEGACY_ID",
    "ATTR_ONTO_TABLE",
    "ATTR_ENTITY_STATUS",
    "ATTR_ENTITY_COUNT",
    # Attributes - Template
    "ATTR_TYPE_KEY",
    "ATTR_TEMPLATE_SCOPE",
    "ATTR_MATCH_SCORE",
    "ATTR_TEMPLATE_OUTCOME",
    # Attributes - LLM
    "ATTR_LLM_OPERATION",
    "ATTR_LLM_PROFILE",
    # Attributes - Database
    "ATTR_DB_SYSTEM",
    "ATTR_DB_OPERATION",
    # Attributes - Error
    "ATTR_ERROR_TYPE",
]
