"""Unit tests for DialectValidator and the dialect registry."""

import pytest

from src.schemas import DiagramBlock
from src.services import DialectValidator
from src.services.dialects import (
    Dialect,
    DialectRegistry,
    declaration,
    default_registry,
    non_empty,
)


def block(dialect, content):
    return DiagramBlock(dialect=dialect, content=content, start=0, end=len(content))


class TestDialectValidator:
    """Test cases for DialectValidator class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.validator = DialectValidator()

    @pytest.mark.parametrize(
        "content",
        [
            "graph TD\n    A --> B",
            "flowchart LR\n    A --> B",
            "  graph\n    A --> B",
            "graph TD;\n    A --> B",
            "%% title\ngraph BT\n    A --> B",
        ],
    )
    def test_valid_flow(self, content):
        """Test flow blocks with an accepted declaration."""
        result = self.validator.validate(block("flow", content))

        assert result.valid is True
        assert result.errors == []

    def test_flow_missing_declaration(self):
        """Test that a flow block without a declaration is rejected."""
        result = self.validator.validate(block("flow", "A[Start] --> B[End]"))

        assert result.valid is False
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Invalid or missing diagram type declaration")

    def test_flow_bad_direction(self):
        """Test that an unknown direction does not count as a declaration."""
        result = self.validator.validate(block("flow", "graph XY\n    A --> B"))

        assert result.valid is False

    def test_empty_content_stops_at_first_rule(self):
        """Test that empty content reports only the emptiness problem."""
        result = self.validator.validate(block("flow", "   \n\t\n"))

        assert result.errors == ["Empty diagram content"]

    @pytest.mark.parametrize(
        "dialect,content",
        [
            ("sequence", "sequenceDiagram\n    A->>B: hi"),
            ("entity-relationship", "erDiagram\n    USER ||--o{ ORDER : places"),
            ("uml-class", "classDiagram\n    class Animal"),
            ("mermaid", "stateDiagram-v2\n    [*] --> Idle"),
            ("mermaid", "pie\n    \"a\" : 1"),
            ("plantuml", "@startuml\nAlice -> Bob\n@enduml"),
        ],
    )
    def test_valid_builtin_dialects(self, dialect, content):
        """Test one accepted block per built-in dialect."""
        assert self.validator.validate(block(dialect, content)).valid is True

    @pytest.mark.parametrize(
        "dialect",
        ["sequence", "entity-relationship", "uml-class", "mermaid"],
    )
    def test_missing_declaration_builtin_dialects(self, dialect):
        """Test that mermaid-family dialects require their declaration."""
        result = self.validator.validate(block(dialect, "A --> B"))

        assert result.valid is False
        assert "declaration" in result.errors[0]

    def test_plantuml_reports_both_missing_markers(self):
        """Test that every problem of the failing rule is returned."""
        result = self.validator.validate(block("plantuml", "Alice -> Bob"))

        assert result.errors == [
            "Missing @startuml declaration",
            "Missing @enduml declaration",
        ]

    def test_plantuml_markers_out_of_order(self):
        """Test that @enduml before @startuml is rejected."""
        result = self.validator.validate(block("plantuml", "@enduml\nAlice -> Bob\n@startuml"))

        assert result.errors == ["@enduml appears before @startuml"]

    def test_unsupported_dialect(self):
        """Test a block whose dialect has no rule set."""
        result = self.validator.validate(block("graphviz", "digraph G {}"))

        assert result.valid is False
        assert result.errors == ["Unsupported diagram dialect: graphviz"]

    def test_validation_is_deterministic(self):
        """Test that the same block always gives the same result."""
        sample = block("plantuml", "Alice -> Bob")

        first = self.validator.validate(sample)
        second = self.validator.validate(sample)

        assert first == second

    def test_validate_all_keeps_order(self):
        """Test that results line up with the given blocks."""
        results = self.validator.validate_all(
            [block("flow", "graph TD"), block("flow", "A --> B"), block("sequence", "sequenceDiagram")]
        )

        assert [result.valid for result in results] == [True, False, True]

    def test_registered_dialect_is_validated(self):
        """Test that adding a dialect needs no validator changes."""
        registry = default_registry()
        registry.register(
            Dialect(
                name="graphviz",
                aliases=("dot",),
                rules=(non_empty, declaration(r"^\s*digraph\b", "'digraph'")),
            )
        )
        validator = DialectValidator(registry)

        assert validator.validate(block("graphviz", "digraph G { a -> b }")).valid is True
        assert validator.validate(block("graphviz", "a -> b")).valid is False


class TestDialectRegistry:
    """Test cases for DialectRegistry class."""

    def test_resolve_names_and_aliases(self):
        """Test tag resolution, case-insensitively."""
        registry = default_registry()

        assert registry.resolve("flow") == "flow"
        assert registry.resolve("ER") == "entity-relationship"
        assert registry.resolve("class") == "uml-class"
        assert registry.resolve("mmd") == "mermaid"
        assert registry.resolve("puml") == "plantuml"
        assert registry.resolve("python") is None

    def test_names(self):
        """Test the sorted list of built-in dialects."""
        assert default_registry().names() == [
            "entity-relationship",
            "flow",
            "mermaid",
            "plantuml",
            "sequence",
            "uml-class",
        ]

    def test_conflicting_alias_rejected(self):
        """Test that a tag can only belong to one dialect."""
        registry = default_registry()

        with pytest.raises(ValueError, match="puml"):
            registry.register(Dialect(name="other", aliases=("puml",), rules=()))

    def test_reregistering_replaces_rules(self):
        """Test that a dialect can be registered again under its own name."""
        registry = DialectRegistry()
        registry.register(Dialect(name="flow", rules=()))
        registry.register(Dialect(name="flow", rules=(non_empty,)))

        assert registry.get("flow").rules == (non_empty,)
