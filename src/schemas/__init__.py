"""Schemas for the application."""

from .diagram import (
    ComplexityMetrics,
    DiagramBlock,
    DiagramMetadata,
    FileAnalysis,
    ValidationFailure,
    ValidationResult,
)
from .events import ChangedFile, ChangeEvent, DiagramChange, FileStatus
from .reconcile import (
    FileOperation,
    IssueRecord,
    PipelineState,
    ReconciliationBatch,
    RunOutcome,
    RunReport,
)

__all__ = [
    "ChangeEvent",
    "ChangedFile",
    "ComplexityMetrics",
    "DiagramBlock",
    "DiagramChange",
    "DiagramMetadata",
    "FileAnalysis",
    "FileOperation",
    "FileStatus",
    "IssueRecord",
    "PipelineState",
    "ReconciliationBatch",
    "RunOutcome",
    "RunReport",
    "ValidationFailure",
    "ValidationResult",
]
