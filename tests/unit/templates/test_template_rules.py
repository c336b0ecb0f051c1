"""
Unit tests for type key rules, state machine construction, property
merging and property validation.
"""

import pytest

from ontomigrate.templates import (
    WorkflowState,
    base_type_key,
    build_fsm,
    build_schema,
    deep_merge,
    is_valid_type_key,
    json_type,
    normalize_slug,
    normalize_type_key,
    validate_props,
)


class TestTypeKeys:
    """Tests for slug and type key normalization."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Mobile App!", "mobile_app"),
            ("3D Printing", "d_printing"),
            ("  ", None),
            (None, None),
            ("123", None),
        ],
    )
    def test_normalize_slug(self, raw: str | None, expected: str | None) -> None:
        assert normalize_slug(raw) == expected

    @pytest.mark.parametrize(
        ("raw", "scope", "expected"),
        [
            ("Writer.Book", "project", "project.writer.book"),
            ("project.writer.book", "project", "project.writer.book"),
            ("deep work", "task", "task.deep_work"),
            ("book", "project", None),
            ("task", "task", None),
            ("a.b.c.d.e", "task", "task.a.b.c"),
            ("plan..phase", "plan", "plan.phase"),
            ("", "task", None),
        ],
    )
    def test_normalize_type_key(self, raw: str, scope: str, expected: str | None) -> None:
        """Keys get the scope prefix, lose empty parts and stop at four parts."""
        assert normalize_type_key(raw, scope) == expected

    def test_is_valid_type_key(self) -> None:
        assert is_valid_type_key("project.writer.book", "project")
        assert not is_valid_type_key("project.writer", "project")
        assert is_valid_type_key("task.deep_work", "task")
        assert not is_valid_type_key("task.Deep", "task")
        assert not is_valid_type_key("task.base", "unknown")

    def test_base_type_key(self) -> None:
        assert base_type_key("project.writer.book.memoir", "project") == "project.writer.book"
        assert base_type_key("project.writer.book", "project") is None
        assert base_type_key("task.coordinate.meeting", "task") == "task.coordinate"


class TestBuildFsm:
    """Tests for build_fsm."""

    def test_sequential_advance_transitions(self) -> None:
        fsm = build_fsm(
            [WorkflowState("Outline"), WorkflowState("Draft"), WorkflowState("Polish")],
            "task.write",
            "task",
        )

        assert fsm["initial"] == "outline"
        assert [s["key"] for s in fsm["states"]] == ["outline", "draft", "polish"]
        assert fsm["states"][0]["initial"] and fsm["states"][-1]["final"]
        assert fsm["transitions"] == [
            {"id": "outline_to_draft", "from": "outline", "to": "draft", "on": "advance"},
            {"id": "draft_to_polish", "from": "draft", "to": "polish", "on": "advance"},
        ]

    def test_duplicate_states_collapse(self) -> None:
        fsm = build_fsm(
            [WorkflowState("todo"), WorkflowState("Todo"), WorkflowState("done")],
            "task.x",
            "task",
        )
        assert [s["key"] for s in fsm["states"]] == ["todo", "done"]

    def test_falls_back_to_scope_defaults(self) -> None:
        """Fewer than two usable states use the scope's default workflow."""
        fsm = build_fsm([WorkflowState("only")], "plan.sprint", "plan")

        assert fsm["initial"] == "draft"
        assert [s["key"] for s in fsm["states"]] == ["draft", "active", "complete"]
        assert fsm["transitions"][0] == {
            "id": "draft_to_active",
            "from": "draft",
            "to": "active",
            "on": "start",
        }

    def test_unknown_scope_fallback_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown template scope"):
            build_fsm([], "widget.x", "widget")


class TestBuildSchema:
    def test_builds_object_schema(self) -> None:
        schema = build_schema(
            {
                "genre": {"type": "string", "required": True, "description": "Genre"},
                "pages": {"type": "integer", "default": 300},
                "notes": {},
            }
        )

        assert schema["required"] == ["genre"]
        assert schema["properties"]["genre"] == {"type": "string", "description": "Genre"}
        assert schema["properties"]["pages"] == {"type": "integer", "default": 300}
        assert schema["properties"]["notes"] == {"type": "string"}


class TestDeepMerge:
    """Tests for deep_merge."""

    def test_nested_mappings_merge(self) -> None:
        merged = deep_merge(
            {"facets": {"scale": "small", "stage": "planning"}, "keep": 1},
            {"facets": {"scale": "large"}, "budget": 10},
        )

        assert merged == {
            "facets": {"scale": "large", "stage": "planning"},
            "keep": 1,
            "budget": 10,
        }

    def test_lists_replaced(self) -> None:
        assert deep_merge({"tags": ["a"]}, {"tags": ["b"]}) == {"tags": ["b"]}

    def test_inputs_not_modified(self) -> None:
        defaults = {"facets": {"scale": "small"}}
        deep_merge(defaults, {"facets": {"scale": "large"}})
        assert defaults == {"facets": {"scale": "small"}}


class TestValidateProps:
    """Tests for validate_props."""

    SCHEMA = {
        "properties": {
            "genre": {"type": "string"},
            "word_count_target": {"type": "integer"},
            "published": {"type": "boolean"},
        },
        "required": ["genre"],
    }

    def test_valid_props(self) -> None:
        result = validate_props({"genre": "fiction", "word_count_target": 80000}, self.SCHEMA)

        assert result.valid
        assert result.errors == []

    def test_missing_required(self) -> None:
        result = validate_props({"genre": None}, self.SCHEMA)

        assert not result.valid
        assert result.errors == ["Required field missing: genre"]

    def test_unknown_key_is_warning(self) -> None:
        result = validate_props({"genre": "x", "mood": "dark"}, self.SCHEMA)

        assert result.valid
        assert result.warnings == ["Property mood not defined in schema"]

    def test_type_mismatch(self) -> None:
        result = validate_props({"genre": 5, "published": "yes"}, self.SCHEMA)

        assert result.errors == [
            "Type mismatch for genre: expected string, got number",
            "Type mismatch for published: expected boolean, got string",
        ]

    def test_integer_accepts_whole_float(self) -> None:
        assert validate_props({"genre": "x", "word_count_target": 80000.0}, self.SCHEMA).valid
        assert not validate_props({"genre": "x", "word_count_target": 1.5}, self.SCHEMA).valid

    @pytest.mark.parametrize(
        ("value", "name"),
        [(None, "null"), (True, "boolean"), (1, "number"), ([], "array"), ({}, "object")],
    )
    def test_json_type(self, value: object, name: str) -> None:
        assert json_type(value) == name
