"""
Tracers injected into ontomigrate components.

No component talks to OpenTelemetry directly. Repositories, the
classifier, the migrators and the orchestrator take a `Tracer` in their
constructor (or build one with `create_tracer`) and open spans with:

    with self._tracer.span("ontomigrate.task_migrator.migrate", attrs) as span:
        ...
        if span:
            span.set_attribute(ATTR_ENTITY_COUNT, len(tasks))

The yielded span is None when tracing is disabled, which is why attribute
calls made after the span opens sit behind `if span:`.

Tracers:
    - NullTracer: tracing disabled
    - OpenTelemetryTracer: spans from the host application's provider
    - MockTracer: keeps every span in memory, nested, for assertions
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from contextlib import AbstractContextManager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from opentelemetry import trace


class SpanHandle(Protocol):
    """The part of a span the migration code uses."""

    def set_attribute(self, key: str, value: Any) -> None: ...


@runtime_checkable
class Tracer(Protocol):
    """
    Anything that can open a span around a unit of migration work.

    `span()` returns a context manager yielding a SpanHandle, or None when
    nothing is recorded. `enabled` lets callers skip building attributes
    that would be thrown away.
    """

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[SpanHandle | None]: ...

    @property
    def enabled(self) -> bool: ...


class NullTracer:
    """Tracer used when tracing is turned off; every span is None."""

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Iterator[None]:
        yield None

    @property
    def enabled(self) -> bool:
        return False


class OpenTelemetryTracer:
    """
    Tracer backed by the OpenTelemetry API.

    Without a configured tracer provider the API hands out non-recording
    spans, so this is safe to use in libraries and scripts alike.

    Args:
        tracer_name: Instrumentation scope, normally the module's __name__
    """

    def __init__(self, tracer_name: str) -> None:
        self._name = tracer_name
        self._tracer = trace.get_tracer(tracer_name)

    @property
    def name(self) -> str:
        return self._name

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[SpanHandle | None]:
        return self._tracer.start_as_current_span(name, attributes=attributes or {})

    @property
    def enabled(self) -> bool:
        return True


@dataclass
class RecordedSpan:
    """One span captured by MockTracer."""

    name: str
    attributes: dict[str, Any] = field(default_factory=dict)
    parent: RecordedSpan | None = None

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    @property
    def ancestors(self) -> list[str]:
        """Names of the enclosing spans, innermost first."""
        names = []
        node = self.parent
        while node is not None:
            names.append(node.name)
            node = node.parent
        return names


class MockTracer:
    """
    In-memory tracer for tests.

    Spans are kept in the order they were opened. Each span knows the span
    that was current when it opened; the current span is tracked per task
    so spans opened under asyncio.gather still nest correctly.

    Example:
        >>> tracer = MockTracer()
        >>> with tracer.span("ontomigrate.orchestrator.start", {"run": "r-1"}):
        ...     with tracer.span("ontomigrate.task_migrator.migrate") as span:
        ...         span.set_attribute("count", 3)
        >>> tracer.span_names
        ['ontomigrate.orchestrator.start', 'ontomigrate.task_migrator.migrate']
        >>> tracer.find("ontomigrate.task_migrator.migrate")[0].ancestors
        ['ontomigrate.orchestrator.start']
    """

    def __init__(self) -> None:
        self.spans: list[RecordedSpan] = []
        self._current: ContextVar[RecordedSpan | None] = ContextVar(
            f"ontomigrate_mock_span_{id(self)}", default=None
        )

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Iterator[RecordedSpan]:
        recorded = RecordedSpan(name, dict(attributes or {}), self._current.get())
        self.spans.append(recorded)
        token = self._current.set(recorded)
        try:
            yield recorded
        finally:
            self._current.reset(token)

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        return [recorded.name for recorded in self.spans]

    def find(self, name: str) -> list[RecordedSpan]:
        """All recorded spans with this name, in opening order."""
        return [recorded for recorded in self.spans if recorded.name == name]

    def clear(self) -> None:
        self.spans.clear()


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """
    Build the default tracer for a component.

    Components call this from their constructor when no tracer is
    injected:

        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    Returns:
        OpenTelemetryTracer named `name`, or NullTracer when disabled
    """
    return OpenTelemetryTracer(name) if enable_tracing else NullTracer()


__all__ = [
    "SpanHandle",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "RecordedSpan",
    "MockTracer",
    "create_tracer",
]
