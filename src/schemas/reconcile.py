from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class FileOperation(BaseModel):
    """A single write (content set) or delete (content None) in a batch."""

    path: str
    content: Optional[str] = None

    @property
    def is_delete(self) -> bool:
        return self.content is None


class ReconciliationBatch(BaseModel):
    """Every metadata write/delete for one ChangeEvent, applied atomically."""

    operations: List[FileOperation] = Field(default_factory=list)
    message: str = ""

    @property
    def written(self) -> List[str]:
        return [op.path for op in self.operations if not op.is_delete]

    @property
    def deleted(self) -> List[str]:
        return [op.path for op in self.operations if op.is_delete]


class IssueRecord(BaseModel):
    """A tracked issue for validation failures, keyed for idempotency."""

    path: str
    dialects: List[str]
    key: str
    title: str
    body: str
    labels: List[str] = Field(default_factory=list)
    number: Optional[int] = None
    created: bool = False


class PipelineState(str, Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    PROCESSING = "processing"
    RECONCILING = "reconciling"
    FAILED = "failed"


class RunOutcome(str, Enum):
    COMMITTED = "committed"
    ISSUED = "issued"
    COMMITTED_WITH_ISSUES = "committed_with_issues"
    NO_CHANGES = "no_changes"
    FAILED = "failed"


class RunReport(BaseModel):
    """Final acknowledgement of one processed ChangeEvent."""

    repository: str
    commit_sha: str
    outcome: RunOutcome
    new_commit_sha: Optional[str] = None
    written: List[str] = Field(default_factory=list)
    deleted: List[str] = Field(default_factory=list)
    issues: List[IssueRecord] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
