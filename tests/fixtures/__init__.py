"""
Shared test fixtures for the ontomigrate library.

This module provides reusable test data:
- FakeLLMClient: scripted LLMClient keyed by operation type
- build_templates: a small template tree (project, task and plan scopes)
- seed_legacy: one legacy writing project with phases, tasks and events
- make_context: run context with fresh ids

Usage:
    from tests.fixtures import FakeLLMClient, PROJECT_ID, make_context
"""

from tests.fixtures.legacy import NOW, PROJECT_ID, build_templates, make_context, seed_legacy
from tests.fixtures.llm import FakeLLMClient

__all__ = [
    "FakeLLMClient",
    "NOW",
    "PROJECT_ID",
    "build_templates",
    "make_context",
    "seed_legacy",
]
