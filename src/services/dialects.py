"""Diagram dialects and the rule sets that validate them.

A rule takes the raw block content and returns the list of problems it found
(empty when the content passes). A dialect is a name, optional fence aliases
and an ordered tuple of rules. New dialects are added with
``DialectRegistry.register`` and never require changes to the validator.
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

Rule = Callable[[str], List[str]]


@dataclass(frozen=True)
class Dialect:
    name: str
    rules: Tuple[Rule, ...]
    aliases: Tuple[str, ...] = ()


def non_empty(content: str) -> List[str]:
    if not content.strip():
        return ["Empty diagram content"]
    return []


def declaration(pattern: str, description: str) -> Rule:
    """Build a rule requiring a line that matches ``pattern``."""
    compiled = re.compile(pattern, re.MULTILINE)

    def rule(content: str) -> List[str]:
        if compiled.search(content):
            return []
        return [f"Invalid or missing diagram type declaration: expected {description}"]

    return rule


def paired_markers(start: str, end: str) -> Rule:
    """Build a rule requiring ``start`` and ``end`` markers, in that order."""

    def rule(content: str) -> List[str]:
        errors = []
        start_at = content.find(start)
        end_at = content.rfind(end)
        if start_at < 0:
            errors.append(f"Missing {start} declaration")
        if end_at < 0:
            errors.append(f"Missing {end} declaration")
        if not errors and end_at < start_at:
            errors.append(f"{end} appears before {start}")
        return errors

    return rule


class DialectRegistry:
    """Maps fence tags (dialect names and aliases) to dialects."""

    def __init__(self, dialects: Iterable[Dialect] = ()):
        self._dialects: Dict[str, Dialect] = {}
        self._tags: Dict[str, str] = {}
        for dialect in dialects:
            self.register(dialect)

    def register(self, dialect: Dialect) -> None:
        for tag in (dialect.name, *dialect.aliases):
            tag = tag.lower()
            owner = self._tags.get(tag)
            if owner is not None and owner != dialect.name:
                raise ValueError(f"Fence tag {tag!r} already belongs to {owner!r}")
            self._tags[tag] = dialect.name
        self._dialects[dialect.name] = dialect

    def resolve(self, tag: str) -> Optional[str]:
        """Return the dialect name for a fence tag, or None when unsupported."""
        return self._tags.get(tag.lower())

    def get(self, name: str) -> Optional[Dialect]:
        return self._dialects.get(name)

    def names(self) -> List[str]:
        return sorted(self._dialects)


_MERMAID_KINDS = (
    "graph",
    "flowchart",
    "sequenceDiagram",
    "classDiagram",
    "erDiagram",
    "stateDiagram(?:-v2)?",
    "gantt",
    "pie",
    "journey",
)

BUILTIN_DIALECTS = (
    Dialect(
        name="flow",
        rules=(
            non_empty,
            declaration(
                r"^\s*(?:graph|flowchart)(?:\s+(?:TB|TD|BT|RL|LR))?\s*;?\s*$",
                "'graph' or 'flowchart' with an optional direction",
            ),
        ),
    ),
    Dialect(
        name="sequence",
        rules=(non_empty, declaration(r"^\s*sequenceDiagram\b", "'sequenceDiagram'")),
    ),
    Dialect(
        name="entity-relationship",
        aliases=("er",),
        rules=(non_empty, declaration(r"^\s*erDiagram\b", "'erDiagram'")),
    ),
    Dialect(
        name="uml-class",
        aliases=("class",),
        rules=(non_empty, declaration(r"^\s*classDiagram\b", "'classDiagram'")),
    ),
    Dialect(
        name="mermaid",
        aliases=("mmd",),
        rules=(
            non_empty,
            declaration(
                r"^\s*(?:%s)\b" % "|".join(_MERMAID_KINDS),
                "one of graph, flowchart, sequenceDiagram, classDiagram, erDiagram, "
                "stateDiagram, gantt, pie, journey",
            ),
        ),
    ),
    Dialect(
        name="plantuml",
        aliases=("puml",),
        rules=(non_empty, paired_markers("@startuml", "@enduml")),
    ),
)


def default_registry() -> DialectRegistry:
    return DialectRegistry(BUILTIN_DIALECTS)
