import re
from typing import Iterable

from src.schemas import ComplexityMetrics

_NODE_PATTERN = re.compile(r"\[[^\]]+\]")
_EDGE_TOKEN = "-->"


def complexity_score(line_count: int, node_count: int, edge_count: int) -> int:
    """Round half up of the summed counts divided by ten, never below zero."""
    return max(0, (line_count + node_count + edge_count + 5) // 10)


class ComplexityAnalyzer:
    """Computes structural metrics for diagram content."""

    def analyze(self, content: str) -> ComplexityMetrics:
        line_count = sum(1 for line in content.splitlines() if line.strip())
        node_count = len(_NODE_PATTERN.findall(content))
        edge_count = content.count(_EDGE_TOKEN)
        return ComplexityMetrics(
            line_count=line_count,
            node_count=node_count,
            edge_count=edge_count,
            score=complexity_score(line_count, node_count, edge_count),
        )

    def aggregate(self, metrics: Iterable[ComplexityMetrics]) -> ComplexityMetrics:
        """Sum counts across blocks and recompute the score from the sums."""
        line_count = node_count = edge_count = 0
        for item in metrics:
            line_count += item.line_count
            node_count += item.node_count
            edge_count += item.edge_count
        return ComplexityMetrics(
            line_count=line_count,
            node_count=node_count,
            edge_count=edge_count,
            score=complexity_score(line_count, node_count, edge_count),
        )
