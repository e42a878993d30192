from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DiagramBlock(BaseModel):
    """A fenced diagram block found inside a file."""

    model_config = ConfigDict(frozen=True)

    dialect: str
    content: str
    start: int  # UTF-8 byte offset of the first content byte
    end: int  # UTF-8 byte offset just past the last content byte


class ValidationResult(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)


class ValidationFailure(BaseModel):
    """Invalid blocks of one file. Routed to issue creation, never raised."""

    path: str
    blocks: List[DiagramBlock]
    results: List[ValidationResult]

    @property
    def dialects(self) -> List[str]:
        return sorted({block.dialect for block in self.blocks})


class ComplexityMetrics(BaseModel):
    """Structural size of a diagram. The score is derived from the three counts."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    line_count: int = 0
    node_count: int = 0
    edge_count: int = 0
    score: int = 0


class DiagramMetadata(BaseModel):
    """Sidecar record persisted next to a diagram-bearing file."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    dialect: str
    dialects: List[str]
    block_count: int
    generated_at: datetime
    source_file: str
    complexity: ComplexityMetrics


class FileAnalysis(BaseModel):
    """Everything the per-file stages learned about one diagram change."""

    path: str
    deleted: bool = False
    blocks: List[DiagramBlock] = Field(default_factory=list)
    results: List[ValidationResult] = Field(default_factory=list)
    metrics: Optional[ComplexityMetrics] = None
    metadata: Optional[str] = None  # Rendered sidecar record, only when every block is valid

    @property
    def valid(self) -> bool:
        return all(result.valid for result in self.results)

    def failure(self) -> Optional[ValidationFailure]:
        invalid = [
            (block, result)
            for block, result in zip(self.blocks, self.results)
            if not result.valid
        ]
        if not invalid:
            return None
        return ValidationFailure(
            path=self.path,
            blocks=[block for block, _ in invalid],
            results=[result for _, result in invalid],
        )
