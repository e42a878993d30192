"""Shared fixtures: an in-memory hosting platform, sample documents and a local repository."""

from pathlib import Path
from types import SimpleNamespace
from typing import Dict, List, Optional, Tuple

import pytest
from git import Actor, Repo

from src.exceptions import ReconciliationConflict
from src.models import RepoTarget
from src.protocols.platform_protocol import issue_marker
from src.schemas import FileOperation

FLOW_DIAGRAM = """graph TD
    A[Start]
    B[Load]
    C[Check]
    D[Done]
    A --> B
    B --> C
    C --> D
    style A fill:#f9f
    style B fill:#bbf
    style C fill:#bfb
    style D fill:#fbb"""

BROKEN_DIAGRAM = "A[Start] --> B[End]"

AUTHOR = Actor("Docs Bot", "docs-bot@example.com")


def fenced(dialect: str, content: str) -> str:
    return f"```{dialect}\n{content}\n```\n"


class FakePlatform:
    """Hosting platform double keeping one branch head and a set of issues."""

    def __init__(self, repository: str = "acme/docs", branch: str = "main"):
        self._repository = repository
        self.branch = branch
        self.head: Dict[str, bytes] = {}
        self.snapshots: Dict[str, Dict[str, bytes]] = {}
        self.commits: List[Tuple[List[FileOperation], str]] = []
        self.issues: Dict[int, Dict] = {}
        self.fetches: List[Tuple[str, str]] = []
        self.commit_error: Optional[Exception] = None
        self.conflicts = 0
        self.closed = False

    @property
    def repository(self) -> str:
        return self._repository

    def put(self, ref: str, path: str, content: str) -> None:
        self.snapshots.setdefault(ref, {})[path] = content.encode("utf-8")

    def fetch_file(self, path: str, ref: str) -> Optional[bytes]:
        self.fetches.append((path, ref))
        if ref == self.branch:
            return self.head.get(path)
        return self.snapshots.get(ref, {}).get(path)

    def commit_batch(self, operations: List[FileOperation], message: str, branch: str) -> str:
        if self.commit_error is not None:
            raise self.commit_error
        if self.conflicts:
            self.conflicts -= 1
            raise ReconciliationConflict(f"{branch} moved")
        for op in operations:
            if op.is_delete:
                self.head.pop(op.path, None)
            else:
                self.head[op.path] = op.content.encode("utf-8")
        self.commits.append((list(operations), message))
        return f"c{len(self.commits):039d}"

    def find_open_issue(self, key: str) -> Optional[int]:
        for number, issue in self.issues.items():
            if issue["state"] == "open" and issue_marker(key) in issue["body"]:
                return number
        return None

    def create_issue(self, title: str, body: str, labels: List[str]) -> int:
        number = len(self.issues) + 1
        self.issues[number] = {
            "title": title,
            "body": body,
            "labels": labels,
            "state": "open",
        }
        return number

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def target() -> RepoTarget:
    return RepoTarget(repository="acme/docs")


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def make_platform():
    """The FakePlatform class, for tests that need several repositories."""
    return FakePlatform


@pytest.fixture
def flow_diagram() -> str:
    """Flow diagram with 12 non-empty lines, 4 node labels and 3 connectors."""
    return FLOW_DIAGRAM


@pytest.fixture
def flow_document() -> str:
    return "# Pipeline\n\nHow a job moves through the system.\n\n" + fenced("flow", FLOW_DIAGRAM)


@pytest.fixture
def broken_document() -> str:
    return "# Broken\n\n" + fenced("flow", BROKEN_DIAGRAM)


def commit_files(repo: Repo, message: str, write=None, remove=()):
    root = Path(repo.working_tree_dir)
    for path, content in (write or {}).items():
        target = root / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
    if write:
        repo.index.add(list(write))
    if remove:
        repo.index.remove(list(remove), working_tree=True)
    return repo.index.commit(message, author=AUTHOR, committer=AUTHOR)


@pytest.fixture
def origin(tmp_path, flow_document):
    """A local repository with a root commit and one follow-up commit on main."""
    repo = Repo.init(tmp_path / "origin")
    root = commit_files(
        repo,
        "Initial docs",
        write={
            "docs/pipeline.md": flow_document,
            "docs/old.md": "# Old\n",
            "README.md": "# Readme\n",
        },
    )
    repo.git.branch("-M", "main")
    second = commit_files(
        repo,
        "Rework docs",
        write={
            "docs/pipeline.md": flow_document + "\nMore prose.\n",
            "diagrams/auth.puml": "@startuml\nAlice -> Bob\n@enduml\n",
        },
        remove=["docs/old.md"],
    )
    return SimpleNamespace(
        path=repo.working_tree_dir, root_sha=root.hexsha, second_sha=second.hexsha
    )
