"""Hosting platform protocol interface."""

from typing import List, Optional, Protocol, runtime_checkable

from ..schemas import FileOperation


def issue_marker(key: str) -> str:
    """Hidden marker embedded in issue bodies so issues can be found by key."""
    return f"<!-- diagram-sync:key={key} -->"


@runtime_checkable
class HostingPlatformProtocol(Protocol):
    """Calls the pipeline issues against the platform hosting one repository.

    Implementations raise TransientPlatformError for failures worth retrying
    and PermanentPlatformError for everything else.
    """

    @property
    def repository(self) -> str:
        """Repository in owner/name form."""
        ...

    def fetch_file(self, path: str, ref: str) -> Optional[bytes]:
        """Raw file bytes at ``ref``, or None when the file does not exist there."""
        ...

    def commit_batch(
        self, operations: List[FileOperation], message: str, branch: str
    ) -> str:
        """Apply every operation in one new commit on ``branch``. Returns its sha.

        Raises ReconciliationConflict when the branch moved during the call.
        """
        ...

    def find_open_issue(self, key: str) -> Optional[int]:
        """Number of an open issue carrying the idempotency key, if any."""
        ...

    def create_issue(self, title: str, body: str, labels: List[str]) -> int:
        """Open an issue and return its number."""
        ...
