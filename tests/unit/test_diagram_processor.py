"""Unit tests for DiagramProcessor class."""

import json
from datetime import datetime, timezone

import pytest

from src.schemas import DiagramChange, FileStatus
from src.services import DiagramProcessor

GENERATED_AT = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)


class TestDiagramProcessor:
    """Test cases for DiagramProcessor class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.processor = DiagramProcessor()

    def change(self, path="docs/pipeline.md", status=FileStatus.ADDED):
        return DiagramChange(path=path, status=status)

    def test_process_valid_file(self, flow_document):
        """Test a file whose blocks are all valid."""
        analysis = self.processor.process(self.change(), flow_document, GENERATED_AT)

        assert analysis.valid
        assert analysis.failure() is None
        assert analysis.metrics.score == 2
        record = json.loads(analysis.metadata)
        assert record["sourceFile"] == "docs/pipeline.md"
        assert record["complexity"]["lineCount"] == 12

    def test_process_invalid_file(self, broken_document):
        """Test that an invalid block suppresses metadata and yields a failure."""
        analysis = self.processor.process(self.change("docs/broken.md"), broken_document, GENERATED_AT)

        assert not analysis.valid
        assert analysis.metadata is None
        assert analysis.metrics is None
        failure = analysis.failure()
        assert failure.path == "docs/broken.md"
        assert failure.dialects == ["flow"]
        assert "declaration" in failure.results[0].errors[0]

    def test_failure_lists_only_invalid_blocks(self, flow_document, broken_document):
        """Test a file mixing valid and invalid blocks."""
        analysis = self.processor.process(
            self.change(), flow_document + broken_document, GENERATED_AT
        )

        failure = analysis.failure()
        assert len(analysis.blocks) == 2
        assert len(failure.blocks) == 1
        assert failure.blocks[0].content == "A[Start] --> B[End]"

    def test_process_file_without_blocks(self):
        """Test a diagram-path file that holds no diagrams."""
        analysis = self.processor.process(self.change(), "# Notes\n", GENERATED_AT)

        assert analysis.blocks == []
        assert analysis.metadata is None
        assert analysis.failure() is None

    def test_process_deleted_file(self):
        """Test that deletions need no content."""
        analysis = self.processor.process(
            self.change(status=FileStatus.DELETED), None, GENERATED_AT
        )

        assert analysis.deleted

    def test_process_requires_content(self):
        """Test that a non-deleted file without content is an error."""
        with pytest.raises(ValueError):
            self.processor.process(self.change(), None, GENERATED_AT)

    def test_inspect(self, flow_document, broken_document):
        """Test the dry run report over raw text."""
        report = self.processor.inspect(flow_document + broken_document)

        assert [entry["valid"] for entry in report] == [True, False]
        assert report[0]["metrics"]["score"] == 2
        assert report[1]["errors"]
        assert report[0]["start"] < report[0]["end"] < report[1]["start"]
