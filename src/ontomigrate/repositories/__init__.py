"""
Repositories for the ontology migration engine.

Each store is a Protocol with PostgreSQL (SQLAlchemy async) and
in-memory implementations; the two tables the engine owns, the mapping
ledger and the migration log, also have aiosqlite implementations.
"""

from ontomigrate.repositories._connection import execute_with_connection
from ontomigrate.repositories.legacy import (
    InMemoryLegacySource,
    LegacySource,
    PostgreSQLLegacySource,
)
from ontomigrate.repositories.mapping import (
    InMemoryLegacyMappingRepository,
    LegacyMappingRepository,
    PostgreSQLLegacyMappingRepository,
    SQLiteLegacyMappingRepository,
)
from ontomigrate.repositories.migration_log import (
    InMemoryMigrationLogRepository,
    MigrationLogRepository,
    PostgreSQLMigrationLogRepository,
    SQLiteMigrationLogRepository,
)
from ontomigrate.repositories.ontology import (
    ONTO_ENTITY_TABLES,
    InMemoryOntologyStore,
    OntologyStore,
    PostgreSQLOntologyStore,
)
from ontomigrate.repositories.templates import (
    InMemoryTemplateRepository,
    PostgreSQLTemplateRepository,
    TemplateRepository,
)

__all__ = [
    # Connection helper
    "execute_with_connection",
    # Mapping ledger
    "LegacyMappingRepository",
    "PostgreSQLLegacyMappingRepository",
    "SQLiteLegacyMappingRepository",
    "InMemoryLegacyMappingRepository",
    # Migration log
    "MigrationLogRepository",
    "PostgreSQLMigrationLogRepository",
    "SQLiteMigrationLogRepository",
    "InMemoryMigrationLogRepository",
    # Templates
    "TemplateRepository",
    "PostgreSQLTemplateRepository",
    "InMemoryTemplateRepository",
    # Legacy source
    "LegacySource",
    "PostgreSQLLegacySource",
    "InMemoryLegacySource",
    # Ontology store
    "OntologyStore",
    "PostgreSQLOntologyStore",
    "InMemoryOntologyStore",
    "ONTO_ENTITY_TABLES",
]
