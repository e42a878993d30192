import shutil
from pathlib import Path
from typing import List, Optional

from git import GitCommandError, Repo

from src.config.logging import get_logger
from src.schemas import ChangedFile, ChangeEvent, FileStatus

logger = get_logger("git_manager")

_STATUS_BY_CHANGE_TYPE = {
    "A": FileStatus.ADDED,
    "D": FileStatus.DELETED,
    "M": FileStatus.MODIFIED,
    "T": FileStatus.MODIFIED,
    "R": FileStatus.RENAMED,
}


def _status_of(item) -> FileStatus:
    # Patch-format diffs leave change_type unset, the flags are always filled
    if item.new_file:
        return FileStatus.ADDED
    if item.deleted_file:
        return FileStatus.DELETED
    if item.renamed_file:
        return FileStatus.RENAMED
    return _STATUS_BY_CHANGE_TYPE.get(item.change_type, FileStatus.MODIFIED)


class GitManager:
    """Local mirror of a monitored repository, used to replay past commits."""

    def __init__(
        self,
        repo_url: str,
        local_path: str,
        branch: str = "main",
        github_token: str = "",
    ):
        self.repo_url = repo_url
        self.local_path = Path(local_path)
        self.branch = branch
        self.github_token = github_token
        self.repo: Optional[Repo] = None

    def setup_repository(self) -> bool:
        """Clone the repository, or open and fetch an existing clone."""
        try:
            if self.local_path.exists() and (self.local_path / ".git").exists():
                self.repo = Repo(self.local_path)
                try:
                    self.repo.remotes.origin.fetch()
                except GitCommandError as e:
                    logger.warning("Failed to fetch %s, using local objects: %s", self.repo_url, e)
                return True

            # If directory exists but is not a git repo, clear it
            if self.local_path.exists() and any(self.local_path.iterdir()):
                logger.info("Clearing existing directory contents: %s", self.local_path)
                shutil.rmtree(self.local_path)
            self.local_path.mkdir(parents=True, exist_ok=True)

            logger.info("Cloning repository from %s", self.repo_url)
            self.repo = Repo.clone_from(
                self._build_clone_url(), self.local_path, branch=self.branch
            )
            return True
        except (GitCommandError, OSError) as e:
            logger.error("Failed to setup repository %s: %s", self.repo_url, e)
            return False

    def _build_clone_url(self) -> str:
        """Build clone URL with token for private repositories."""
        if self.github_token and self.repo_url.startswith("https://"):
            return self.repo_url.replace(
                "https://", f"https://x-access-token:{self.github_token}@", 1
            )
        return self.repo_url

    def build_change_event(self, commit_sha: str, repository: str) -> ChangeEvent:
        """Rebuild the push event of a commit from its diff against the first parent."""
        if not self.repo:
            raise RuntimeError("Repository not initialized")

        commit = self.repo.commit(commit_sha)
        parent = commit.parents[0] if commit.parents else None

        files: List[ChangedFile] = []
        if parent is None:
            # Root commit: everything in the tree was added
            for item in commit.tree.traverse():
                if item.type == "blob":
                    files.append(ChangedFile(path=item.path, status=FileStatus.ADDED))
        else:
            for item in parent.diff(commit, create_patch=True):
                status = _status_of(item)
                patch = item.diff.decode("utf-8", errors="replace") if item.diff else ""
                if status == FileStatus.DELETED:
                    path = item.a_path
                else:
                    path = item.b_path or item.a_path
                files.append(
                    ChangedFile(
                        path=path,
                        status=status,
                        patch=patch,
                        previous_path=item.a_path if status == FileStatus.RENAMED else None,
                    )
                )

        return ChangeEvent(
            event_type="push",
            repository=repository,
            branch=self.branch,
            commit_sha=commit.hexsha,
            parent_sha=parent.hexsha if parent is not None else None,
            changed_files=files,
            timestamp=commit.committed_datetime,
        )
