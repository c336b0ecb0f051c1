"""
Template directory repositories.

Responsibilities:
    - Look up a template by type key (optionally within a scope) or by id
    - List active templates of a scope, filtered by realm or search text
    - Store new templates created from classifier suggestions

Database Table:
    onto_templates (type_key UNIQUE)
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ontomigrate.exceptions import TemplateError
from ontomigrate.observability import Tracer, create_tracer
from ontomigrate.observability.attributes import (
    ATTR_DB_SYSTEM,
    ATTR_TEMPLATE_SCOPE,
    ATTR_TYPE_KEY,
)
from ontomigrate.repositories._connection import (
    decode_json,
    encode_json,
    execute_with_connection,
)
from ontomigrate.templates.models import Template

_COLUMNS = """
    id, type_key, scope, name, schema, fsm, metadata, facet_defaults,
    default_props, default_views, parent_template_id, is_abstract, status,
    created_by, created_at
"""


@runtime_checkable
class TemplateRepository(Protocol):
    """Protocol for template directory access."""

    async def get_by_type_key(self, type_key: str, scope: str | None = None) -> Template | None:
        """
        Get a template by type key.

        Args:
            type_key: Dotted type key
            scope: Optional scope the template must belong to

        Returns:
            The template, or None if absent
        """
        ...

    async def get_by_id(self, template_id: str) -> Template | None:
        """Get a template by id, or None if absent."""
        ...

    async def list_active(
        self,
        scope: str,
        realm: str | None = None,
        search: str | None = None,
        limit: int | None = None,
    ) -> list[Template]:
        """
        List active templates of a scope.

        Args:
            scope: Template scope
            realm: Only templates whose metadata realm or type key mentions it
            search: Case-insensitive substring over type_key and name
            limit: Maximum number of templates

        Returns:
            Templates ordered by name
        """
        ...

    async def create(self, template: Template) -> Template:
        """
        Store a new template.

        Args:
            template: Template to store (id and created_at are assigned)

        Returns:
            The stored template
        """
        ...


class PostgreSQLTemplateRepository:
    """PostgreSQL implementation of TemplateRepository."""

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._conn = conn

    async def get_by_type_key(self, type_key: str, scope: str | None = None) -> Template | None:
        with self._tracer.span(
            "ontomigrate.template_repo.get_by_type_key",
            {ATTR_TYPE_KEY: type_key, ATTR_DB_SYSTEM: "postgresql"},
        ):
            conditions = ["type_key = :type_key"]
            params: dict[str, Any] = {"type_key": type_key}
            if scope is not None:
                conditions.append("scope = :scope")
                params["scope"] = scope

            where_clause = " AND ".join(conditions)
            query = text(f"""
                SELECT {_COLUMNS}
                FROM onto_templates
                WHERE {where_clause}
                LIMIT 1
            """)  # nosec B608 - where_clause built from hardcoded conditions

            async with execute_with_connection(self._conn, transactional=False) as conn:
                result = await conn.execute(query, params)
                row = result.fetchone()

            return self._row_to_template(row) if row is not None else None

    async def get_by_id(self, template_id: str) -> Template | None:
        with self._tracer.span(
            "ontomigrate.template_repo.get_by_id",
            {ATTR_DB_SYSTEM: "postgresql"},
        ):
            query = text(f"""
                SELECT {_COLUMNS}
                FROM onto_templates
                WHERE id = :id
            """)  # nosec B608 - column list is a module constant

            async with execute_with_connection(self._conn, transactional=False) as conn:
                result = await conn.execute(query, {"id": template_id})
                row = result.fetchone()

            return self._row_to_template(row) if row is not None else None

    async def list_active(
        self,
        scope: str,
        realm: str | None = None,
        search: str | None = None,
        limit: int | None = None,
    ) -> list[Template]:
        with self._tracer.span(
            "ontomigrate.template_repo.list_active",
            {ATTR_TEMPLATE_SCOPE: scope, ATTR_DB_SYSTEM: "postgresql"},
        ):
            conditions = ["scope = :scope", "status = 'active'"]
            params: dict[str, Any] = {"scope": scope}

            if realm:
                conditions.append(
                    "(type_key ILIKE :realm_key OR metadata->>'realm' ILIKE :realm_meta)"
                )
                params["realm_key"] = f"%.{realm}.%"
                params["realm_meta"] = f"%{realm}%"

            if search:
                conditions.append("(name ILIKE :search OR type_key ILIKE :search)")
                params["search"] = f"%{search}%"

            where_clause = " AND ".join(conditions)
            limit_clause = f"LIMIT {int(limit)}" if limit else ""

            # where_clause built from hardcoded conditions; limit_clause is an integer
            query = text(f"""
                SELECT {_COLUMNS}
                FROM onto_templates
                WHERE {where_clause}
                ORDER BY name ASC
                {limit_clause}
            """)  # nosec B608 - no user input in SQL construction

            async with execute_with_connection(self._conn, transactional=False) as conn:
                result = await conn.execute(query, params)
                rows = result.fetchall()

            return [self._row_to_template(row) for row in rows]

    async def create(self, template: Template) -> Template:
        with self._tracer.span(
            "ontomigrate.template_repo.create",
            {
                ATTR_TYPE_KEY: template.type_key,
                ATTR_TEMPLATE_SCOPE: template.scope,
                ATTR_DB_SYSTEM: "postgresql",
            },
        ):
            template_id = template.id or str(uuid4())
            created_at = datetime.now(UTC)
            query = text("""
                INSERT INTO onto_templates (
                    id, type_key, scope, name, schema, fsm, metadata,
                    facet_defaults, default_props, default_views,
                    parent_template_id, is_abstract, status, created_by, created_at
                ) VALUES (
                    :id, :type_key, :scope, :name, CAST(:schema AS JSONB),
                    CAST(:fsm AS JSONB), CAST(:metadata AS JSONB),
                    CAST(:facet_defaults AS JSONB), CAST(:default_props AS JSONB),
                    CAST(:default_views AS JSONB), :parent_template_id,
                    :is_abstract, :status, :created_by, :created_at
                )
            """)

            params = {
                "id": template_id,
                "type_key": template.type_key,
                "scope": template.scope,
                "name": template.name,
                "schema": encode_json(template.schema),
                "fsm": encode_json(template.fsm),
                "metadata": encode_json(template.metadata),
                "facet_defaults": encode_json(template.facet_defaults),
                "default_props": encode_json(template.default_props),
                "default_views": encode_json(template.default_views),
                "parent_template_id": template.parent_template_id,
                "is_abstract": template.is_abstract,
                "status": template.status,
                "created_by": template.created_by,
                "created_at": created_at,
            }

            async with execute_with_connection(self._conn, transactional=True) as conn:
                await conn.execute(query, params)

            return replace(template, id=template_id, created_at=created_at)

    def _row_to_template(self, row: Sequence[Any]) -> Template:
        return Template(
            id=str(row[0]),
            type_key=row[1],
            scope=row[2],
            name=row[3],
            schema=decode_json(row[4], {}),
            fsm=decode_json(row[5]),
            metadata=decode_json(row[6], {}),
            facet_defaults=decode_json(row[7], {}),
            default_props=decode_json(row[8], {}),
            default_views=decode_json(row[9], []),
            parent_template_id=str(row[10]) if row[10] is not None else None,
            is_abstract=bool(row[11]),
            status=row[12],
            created_by=row[13],
            created_at=row[14],
        )


class InMemoryTemplateRepository:
    """
    In-memory implementation of TemplateRepository for testing.

    Example:
        >>> repo = InMemoryTemplateRepository()
        >>> base = await repo.create(Template(type_key="task.base", scope="task", name="Task"))
        >>> (await repo.get_by_type_key("task.base")).id == base.id
        True
    """

    def __init__(
        self,
        templates: Sequence[Template] = (),
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._templates: dict[str, Template] = {}
        self._lock: asyncio.Lock = asyncio.Lock()
        for template in templates:
            stored = template if template.id else replace(template, id=str(uuid4()))
            self._templates[stored.id] = stored  # type: ignore[index]

    async def get_by_type_key(self, type_key: str, scope: str | None = None) -> Template | None:
        with self._tracer.span(
            "ontomigrate.template_repo.get_by_type_key",
            {ATTR_TYPE_KEY: type_key},
        ):
            async with self._lock:
                for template in self._templates.values():
                    if template.type_key == type_key and (scope is None or template.scope == scope):
                        return template
                return None

    async def get_by_id(self, template_id: str) -> Template | None:
        with self._tracer.span("ontomigrate.template_repo.get_by_id", {}):
            async with self._lock:
                return self._templates.get(template_id)

    async def list_active(
        self,
        scope: str,
        realm: str | None = None,
        search: str | None = None,
        limit: int | None = None,
    ) -> list[Template]:
        with self._tracer.span(
            "ontomigrate.template_repo.list_active",
            {ATTR_TEMPLATE_SCOPE: scope},
        ):
            async with self._lock:
                candidates = [
                    template
                    for template in self._templates.values()
                    if template.scope == scope and template.status == "active"
                ]

            if realm:
                needle = realm.lower()
                candidates = [
                    template
                    for template in candidates
                    if f".{needle}." in template.type_key.lower()
                    or needle in str(template.metadata.get("realm", "")).lower()
                ]

            if search:
                needle = search.lower()
                candidates = [
                    template
                    for template in candidates
                    if needle in template.type_key.lower() or needle in template.name.lower()
                ]

            candidates.sort(key=lambda template: template.name)
            return candidates[:limit] if limit else candidates

    async def create(self, template: Template) -> Template:
        with self._tracer.span(
            "ontomigrate.template_repo.create",
            {ATTR_TYPE_KEY: template.type_key, ATTR_TEMPLATE_SCOPE: template.scope},
        ):
            async with self._lock:
                if any(t.type_key == template.type_key for t in self._templates.values()):
                    raise TemplateError(
                        f"Template already exists: {template.type_key}",
                        type_key=template.type_key,
                    )
                stored = replace(
                    template,
                    id=template.id or str(uuid4()),
                    created_at=template.created_at or datetime.now(UTC),
                )
                self._templates[stored.id] = stored  # type: ignore[index]
                return stored

    async def all_templates(self) -> list[Template]:
        async with self._lock:
            return list(self._templates.values())

    async def count(self) -> int:
        async with self._lock:
            return len(self._templates)


__all__ = [
    "TemplateRepository",
    "PostgreSQLTemplateRepository",
    "InMemoryTemplateRepository",
]
