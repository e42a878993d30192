from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class FileStatus(str, Enum):
    """Enum for file change statuses."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


class ChangedFile(BaseModel):
    """One touched file of a webhook delivery."""

    path: str
    status: FileStatus
    patch: str = ""
    previous_path: Optional[str] = None  # For renamed files


class ChangeEvent(BaseModel):
    """One webhook delivery, consumed exactly once per commit_sha."""

    event_type: str = "push"
    repository: str
    branch: str = "main"
    commit_sha: str
    parent_sha: Optional[str] = None
    changed_files: List[ChangedFile] = Field(default_factory=list)
    timestamp: Optional[datetime] = None

    @model_validator(mode="after")
    def _split_renames(self) -> "ChangeEvent":
        # A rename is a delete of the old path followed by an add of the new one
        files: List[ChangedFile] = []
        for changed in self.changed_files:
            if changed.status != FileStatus.RENAMED:
                files.append(changed)
                continue
            if changed.previous_path:
                files.append(
                    ChangedFile(path=changed.previous_path, status=FileStatus.DELETED)
                )
            files.append(
                ChangedFile(
                    path=changed.path, status=FileStatus.ADDED, patch=changed.patch
                )
            )
        self.changed_files = files
        return self


class DiagramChange(BaseModel):
    """A ChangeEvent entry narrowed to a diagram-bearing file."""

    path: str
    status: FileStatus
    patch: str = ""
    previous_content: Optional[str] = None
