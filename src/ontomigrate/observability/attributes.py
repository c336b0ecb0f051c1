"""
Standard span attributes for ontomigrate.

Attribute names used across repositories, the classifier, migrators and
the orchestrator so that traces of a migration run can be filtered and
grouped consistently. Database and LLM attributes follow OpenTelemetry
semantic conventions where one exists.

Example:
    >>> from ontomigrate.observability.attributes import ATTR_RUN_ID, ATTR_ENTITY_SCOPE
    >>>
    >>> with tracer.span(
    ...     "ontomigrate.orchestrator.start",
    ...     {ATTR_RUN_ID: str(run_id), ATTR_ENTITY_SCOPE: "project"},
    ... ):
    ...     pass
"""

# =============================================================================
# Run Attributes
# =============================================================================

ATTR_RUN_ID = "ontomigrate.run.id"
"""Migration run identifier (UUID string)."""

ATTR_BATCH_ID = "ontomigrate.run.batch_id"
"""Batch identifier allocated alongside the run (UUID string)."""

ATTR_DRY_RUN = "ontomigrate.run.dry_run"
"""Whether the run computes previews only (boolean)."""

ATTR_RUN_STATUS = "ontomigrate.run.status"
"""Run status value (string)."""

ATTR_CANDIDATE_COUNT = "ontomigrate.run.candidate_count"
"""Number of candidate legacy projects selected for a run (integer)."""

ATTR_CONCURRENCY = "ontomigrate.run.concurrency"
"""Chunk size used for a bounded fan-out (integer)."""

# =============================================================================
# Entity Attributes
# =============================================================================

ATTR_ENTITY_SCOPE = "ontomigrate.entity.scope"
"""Entity scope bucket: run, project, phase, task or calendar (string)."""

ATTR_LEGACY_TABLE = "ontomigrate.entity.legacy_table"
"""Legacy table name of the migrated record (string)."""

ATTR_LEGACY_ID = "ontomigrate.entity.legacy_id"
"""Legacy record identifier (string)."""

ATTR_ONTO_TABLE = "ontomigrate.entity.onto_table"
"""Ontology table the record migrates into (string)."""

ATTR_ENTITY_STATUS = "ontomigrate.entity.status"
"""Migration outcome status of one entity (string)."""

ATTR_ENTITY_COUNT = "ontomigrate.entity.count"
"""Number of entities handled by an operation (integer)."""

# =============================================================================
# Template Attributes
# =============================================================================

ATTR_TYPE_KEY = "ontomigrate.template.type_key"
"""Template type key (string)."""

ATTR_TEMPLATE_SCOPE = "ontomigrate.template.scope"
"""Template scope (string)."""

ATTR_MATCH_SCORE = "ontomigrate.template.match_score"
"""Best discovery score between 0 and 1 (float)."""

ATTR_TEMPLATE_OUTCOME = "ontomigrate.template.outcome"
"""Classifier outcome kind: reused, created or plan_only (string)."""

# =============================================================================
# LLM Attributes
# =============================================================================

ATTR_LLM_OPERATION = "ontomigrate.llm.operation"
"""Operation type passed to the language-model service (string)."""

ATTR_LLM_PROFILE = "ontomigrate.llm.profile"
"""Model profile requested for the call (string)."""

# =============================================================================
# Database Attributes (OpenTelemetry semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (e.g., 'postgresql', 'sqlite', 'memory')."""

ATTR_DB_OPERATION = "db.operation"
"""Database operation name (e.g., 'INSERT', 'SELECT')."""

# =============================================================================
# Error Attributes
# =============================================================================

ATTR_ERROR_TYPE = "error.type"
"""Exception class name when an operation fails (string)."""


__all__ = [
    "ATTR_RUN_ID",
    "ATTR_BATCH_ID",
    "ATTR_DRY_RUN",
    "ATTR_RUN_STATUS",
    "ATTR_CANDIDATE_COUNT",
    "ATTR_CONCURRENCY",
    "ATTR_ENTITY_SCOPE",
    "ATTR_LEGACY_TABLE",
    "ATTR_LEGACY_ID",
    "ATTR_ONTO_TABLE",
    "ATTR_ENTITY_STATUS",
    "ATTR_ENTITY_COUNT",
    "ATTR_TYPE_KEY",
    "ATTR_TEMPLATE_SCOPE",
    "ATTR_MATCH_SCORE",
    "ATTR_TEMPLATE_OUTCOME",
    "ATTR_LLM_OPERATION",
    "ATTR_LLM_PROFILE",
    "ATTR_DB_SYSTEM",
    "ATTR_DB_OPERATION",
    "ATTR_ERROR_TYPE",
]
