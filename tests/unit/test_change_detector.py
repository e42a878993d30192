"""Unit tests for ChangeDetector class."""

import pytest

from src.exceptions import TransientPlatformError
from src.models import RepoTarget
from src.schemas import ChangedFile, ChangeEvent, FileStatus
from src.services import ChangeDetector

PATHS = [
    "docs/flow.md",
    "docs/Flow.MD",
    "docs/nested/deep/seq.mmd",
    "diagrams/auth.puml",
    "diagrams/auth.plantuml",
    ".github/architecture.mermaid",
    "docs/notes.txt",
    "docs/diagram.json",
    "src/flow.md",
    "README.md",
    "node_modules/pkg/docs/readme.md",
    "docs/flow",
    "docsflow.md",
]


def event_for(paths, status=FileStatus.ADDED, parent_sha="p" * 40):
    return ChangeEvent(
        repository="acme/docs",
        commit_sha="c" * 40,
        parent_sha=parent_sha,
        changed_files=[ChangedFile(path=path, status=status) for path in paths],
    )


class TestChangeDetector:
    """Test cases for ChangeDetector class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.detector = ChangeDetector()

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("docs/flow.md", True),
            ("docs/Flow.MD", True),
            ("diagrams/auth.puml", True),
            (".github/architecture.mermaid", True),
            ("docs/notes.txt", False),
            ("src/flow.md", False),
            ("docs/flow", False),
            ("docsflow.md", False),
        ],
    )
    def test_is_diagram_path_defaults(self, target, path, expected):
        """Test the include/exclude/extension predicate with default configuration."""
        assert self.detector.is_diagram_path(target, path) is expected

    def test_excluded_prefix_wins_over_included_prefix(self):
        """Test that an excluded prefix removes a path even when it is included."""
        target = RepoTarget(
            repository="acme/docs",
            include_paths=("docs/",),
            exclude_paths=("docs/generated/",),
        )

        assert self.detector.is_diagram_path(target, "docs/flow.md")
        assert not self.detector.is_diagram_path(target, "docs/generated/flow.md")

    def test_detect_output_matches_predicate(self, target):
        """Test that the output is exactly the qualifying files, in event order."""
        changes = self.detector.detect(target, event_for(PATHS))

        expected = [p for p in PATHS if self.detector.is_diagram_path(target, p)]
        assert [change.path for change in changes] == expected
        assert expected == [
            "docs/flow.md",
            "docs/Flow.MD",
            "docs/nested/deep/seq.mmd",
            "diagrams/auth.puml",
            "diagrams/auth.plantuml",
            ".github/architecture.mermaid",
        ]

    def test_detect_skips_fetch_for_deleted_files(self, target, platform):
        """Test that deleted files cause no platform calls."""
        changes = self.detector.detect(
            target, event_for(["docs/flow.md"], FileStatus.DELETED), platform
        )

        assert len(changes) == 1
        assert changes[0].status == FileStatus.DELETED
        assert changes[0].previous_content is None
        assert platform.fetches == []

    def test_detect_fetches_previous_content_for_modified_files(self, target, platform):
        """Test that modified files carry the parent commit's content."""
        platform.put("p" * 40, "docs/flow.md", "old content")

        changes = self.detector.detect(
            target, event_for(["docs/flow.md"], FileStatus.MODIFIED), platform
        )

        assert changes[0].previous_content == "old content"
        assert platform.fetches == [("docs/flow.md", "p" * 40)]

    def test_detect_tolerates_missing_previous_content(self, target, platform):
        """Test that a missing previous version is not an error."""
        changes = self.detector.detect(
            target, event_for(["docs/flow.md"], FileStatus.MODIFIED), platform
        )

        assert changes[0].previous_content is None

    def test_detect_tolerates_failing_previous_fetch(self, target, platform):
        """Test that a failing previous-content fetch leaves the field empty."""

        def failing_fetch(path, ref):
            raise TransientPlatformError("timed out")

        platform.fetch_file = failing_fetch

        changes = self.detector.detect(
            target, event_for(["docs/flow.md"], FileStatus.MODIFIED), platform
        )

        assert len(changes) == 1
        assert changes[0].previous_content is None

    def test_detect_without_parent_sha(self, target, platform):
        """Test that no fetch is attempted when the parent commit is unknown."""
        changes = self.detector.detect(
            target,
            event_for(["docs/flow.md"], FileStatus.MODIFIED, parent_sha=None),
            platform,
        )

        assert changes[0].previous_content is None
        assert platform.fetches == []

    def test_renamed_files_become_delete_and_add(self, target):
        """Test that a rename is split into a delete of the old path and an add."""
        event = ChangeEvent(
            repository="acme/docs",
            commit_sha="c" * 40,
            changed_files=[
                ChangedFile(
                    path="docs/new.md",
                    previous_path="docs/old.md",
                    status=FileStatus.RENAMED,
                )
            ],
        )

        changes = self.detector.detect(target, event)

        assert [(c.path, c.status) for c in changes] == [
            ("docs/old.md", FileStatus.DELETED),
            ("docs/new.md", FileStatus.ADDED),
        ]
