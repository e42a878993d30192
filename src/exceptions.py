"""Error taxonomy for the diagram sync pipeline."""

from typing import Optional


class DiagramSyncError(Exception):
    """Base class for every error raised by the pipeline."""


class ConfigurationError(DiagramSyncError):
    """Raised when a RepoTarget or the settings are unusable. Fatal at startup."""


class PlatformError(DiagramSyncError):
    """A call to the hosting platform failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientPlatformError(PlatformError):
    """Timeouts, transport errors and rate limiting. Retried with backoff."""


class PermanentPlatformError(PlatformError):
    """Authentication, permission and not-found failures. Never retried."""


class ReconciliationConflict(TransientPlatformError):
    """The target branch moved while a batch commit was being built."""


class QueueFullError(DiagramSyncError):
    """The per-repository queue reached its configured depth."""

    def __init__(self, repository: str, depth: int):
        super().__init__(f"Queue for {repository} is full ({depth} events)")
        self.repository = repository
        self.depth = depth
