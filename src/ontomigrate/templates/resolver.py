"""
Template inheritance resolution.

A type key names a leaf in the template tree. Resolution walks the
parent chain up to MAX_DEPTH templates, then merges the chain root to leaf
into one ResolvedTemplate (merge rules are documented on the class).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ontomigrate.exceptions import (
    CircularTemplateError,
    TemplateDepthExceededError,
    TemplateNotFoundError,
    TemplateNotInstantiableError,
)
from ontomigrate.observability import Tracer, create_tracer
from ontomigrate.observability.attributes import ATTR_TEMPLATE_SCOPE, ATTR_TYPE_KEY
from ontomigrate.templates.models import ResolvedTemplate, Template

if TYPE_CHECKING:
    from ontomigrate.repositories.templates import TemplateRepository

logger = logging.getLogger(__name__)

MAX_DEPTH = 10


def merge_chain(chain: list[Template]) -> ResolvedTemplate:
    """
    Merge a root-to-leaf chain of templates.

    Args:
        chain: Templates ordered from root ancestor to leaf

    Returns:
        The merged definition carrying the leaf's identity
    """
    if not chain:
        raise ValueError("Cannot merge an empty template chain")

    leaf = chain[-1]
    properties: dict[str, Any] = {}
    required: list[str] = []
    fsm: dict[str, Any] | None = None
    metadata: dict[str, Any] = {}
    facet_defaults: dict[str, Any] = {}
    default_props: dict[str, Any] = {}
    default_views: list[dict[str, Any]] = []

    for template in chain:
        schema = template.schema or {}
        properties.update(schema.get("properties") or {})
        for key in schema.get("required") or []:
            if key not in required:
                required.append(key)
        if template.fsm is not None:
            fsm = template.fsm
        metadata.update(template.metadata)
        facet_defaults.update(template.facet_defaults)
        default_props.update(template.default_props)
        if template.default_views:
            default_views = list(template.default_views)

    return ResolvedTemplate(
        id=leaf.id,
        scope=leaf.scope,
        type_key=leaf.type_key,
        name=leaf.name,
        status=leaf.status,
        parent_template_id=leaf.parent_template_id,
        schema={"type": "object", "properties": properties, "required": required},
        fsm=fsm,
        metadata=metadata,
        facet_defaults=facet_defaults,
        default_props=default_props,
        default_views=default_views,
        is_abstract=leaf.is_abstract,
        inheritance_chain=[template.type_key for template in chain],
    )


class TemplateResolver:
    """
    Resolves type keys into merged template definitions.

    Example:
        >>> resolver = TemplateResolver(templates)
        >>> resolved = await resolver.resolve("project.writer.book", "project")
        >>> resolved.inheritance_chain
        ['project.base', 'project.writer.base', 'project.writer.book']
    """

    def __init__(
        self,
        templates: TemplateRepository,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._templates = templates

    async def load_chain(self, type_key: str, scope: str | None = None) -> list[Template]:
        """
        Load the inheritance chain of a type key, root first.

        Raises:
            TemplateNotFoundError: If the type key does not exist
            CircularTemplateError: If a template is visited twice
            TemplateDepthExceededError: If the chain is longer than MAX_DEPTH templates
        """
        leaf = await self._templates.get_by_type_key(type_key, scope)
        if leaf is None:
            raise TemplateNotFoundError(type_key, scope)

        chain = [leaf]
        visited = {leaf.id or leaf.type_key}
        current = leaf
        while current.parent_template_id is not None:
            if len(chain) >= MAX_DEPTH:
                raise TemplateDepthExceededError(type_key, MAX_DEPTH)
            if current.parent_template_id in visited:
                raise CircularTemplateError(
                    type_key, [template.type_key for template in reversed(chain)]
                )

            parent = await self._templates.get_by_id(current.parent_template_id)
            if parent is None:
                logger.warning(
                    "Parent template %s of %s is missing; chain truncated",
                    current.parent_template_id,
                    current.type_key,
                )
                break

            visited.add(current.parent_template_id)
            chain.append(parent)
            current = parent

        chain.reverse()
        return chain

    async def resolve(self, type_key: str, scope: str | None = None) -> ResolvedTemplate:
        """
        Resolve a type key into its merged definition.

        Args:
            type_key: Leaf type key
            scope: Scope the leaf must belong to

        Returns:
            ResolvedTemplate with the root-to-leaf inheritance chain

        Raises:
            TemplateNotFoundError: If the type key does not exist
            CircularTemplateError: If the parent chain loops
            TemplateDepthExceededError: If the chain is longer than MAX_DEPTH templates
        """
        with self._tracer.span(
            "ontomigrate.template_resolver.resolve",
            {ATTR_TYPE_KEY: type_key, ATTR_TEMPLATE_SCOPE: scope or ""},
        ):
            return merge_chain(await self.load_chain(type_key, scope))

    def validate_instantiable(self, template: ResolvedTemplate) -> None:
        """
        Check that entities may be created from a template.

        Raises:
            TemplateNotInstantiableError: If the template is abstract or inactive
        """
        if template.is_abstract:
            raise TemplateNotInstantiableError(template.type_key, "template is abstract")
        if template.status != "active":
            raise TemplateNotInstantiableError(
                template.type_key, f"template status is {template.status}"
            )


__all__ = [
    "MAX_DEPTH",
    "TemplateResolver",
    "merge_chain",
]
