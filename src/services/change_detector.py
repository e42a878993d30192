from pathlib import PurePosixPath
from typing import List, Optional

from src.config.logging import get_logger
from src.exceptions import PlatformError
from src.models import RepoTarget
from src.schemas import ChangeEvent, DiagramChange, FileStatus

from ..protocols.platform_protocol import HostingPlatformProtocol

logger = get_logger("change_detector")


class ChangeDetector:
    """Narrows a ChangeEvent down to the files that can carry diagrams."""

    @staticmethod
    def is_diagram_path(target: RepoTarget, path: str) -> bool:
        in_scope = any(path.startswith(prefix) for prefix in target.include_paths)
        excluded = any(path.startswith(prefix) for prefix in target.exclude_paths)
        extension = PurePosixPath(path).suffix.lower()
        return in_scope and not excluded and extension in target.extensions

    def detect(
        self,
        target: RepoTarget,
        event: ChangeEvent,
        platform: Optional[HostingPlatformProtocol] = None,
    ) -> List[DiagramChange]:
        """Diagram changes of ``event`` in delivery order.

        For modified files the pre-change content is fetched from the parent
        commit when a platform is given. The fetch is best-effort: a missing
        file or a failing call leaves ``previous_content`` empty.
        """
        changes = []
        for changed in event.changed_files:
            if not self.is_diagram_path(target, changed.path):
                continue

            previous = None
            if (
                changed.status == FileStatus.MODIFIED
                and platform is not None
                and event.parent_sha
            ):
                previous = self._previous_content(platform, changed.path, event.parent_sha)

            changes.append(
                DiagramChange(
                    path=changed.path,
                    status=changed.status,
                    patch=changed.patch,
                    previous_content=previous,
                )
            )

        logger.debug(
            "%d of %d files in %s are diagram changes",
            len(changes),
            len(event.changed_files),
            event.commit_sha[:7],
        )
        return changes

    @staticmethod
    def _previous_content(
        platform: HostingPlatformProtocol, path: str, parent_sha: str
    ) -> Optional[str]:
        try:
            raw = platform.fetch_file(path, parent_sha)
        except PlatformError as e:
            logger.warning("Could not fetch previous content of %s: %s", path, e)
            return None
        if raw is None:
            return None
        return raw.decode("utf-8", errors="replace")
