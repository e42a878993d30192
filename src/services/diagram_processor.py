from datetime import datetime
from typing import Dict, List, Optional

from src.schemas import DiagramChange, FileAnalysis, FileStatus

from .block_extractor import BlockExtractor
from .complexity_analyzer import ComplexityAnalyzer
from .dialect_validator import DialectValidator
from .dialects import DialectRegistry, default_registry
from .metadata_writer import MetadataWriter


class DiagramProcessor:
    """Runs the per-file stages: extract, validate, analyze, write.

    Every stage is pure, so files of one event can be processed concurrently.
    """

    def __init__(self, registry: Optional[DialectRegistry] = None):
        self.registry = registry or default_registry()
        self.extractor = BlockExtractor(self.registry)
        self.validator = DialectValidator(self.registry)
        self.analyzer = ComplexityAnalyzer()
        self.writer = MetadataWriter()

    def process(
        self, change: DiagramChange, content: Optional[str], generated_at: datetime
    ) -> FileAnalysis:
        """Analyze the current content of one changed file."""
        if change.status == FileStatus.DELETED:
            return FileAnalysis(path=change.path, deleted=True)
        if content is None:
            raise ValueError(f"No content for {change.status.value} file {change.path}")

        blocks = self.extractor.extract(content)
        if not blocks:
            return FileAnalysis(path=change.path)

        results = self.validator.validate_all(blocks)
        analysis = FileAnalysis(path=change.path, blocks=blocks, results=results)
        if not analysis.valid:
            return analysis

        analysis.metrics = self.analyzer.aggregate(
            self.analyzer.analyze(block.content) for block in blocks
        )
        analysis.metadata = self.writer.write(
            change.path, blocks, analysis.metrics, generated_at
        )
        return analysis

    def inspect(self, text: str) -> List[Dict]:
        """Dry run over raw text: every block with its validation and metrics."""
        report = []
        for block in self.extractor.extract(text):
            result = self.validator.validate(block)
            report.append(
                {
                    "dialect": block.dialect,
                    "start": block.start,
                    "end": block.end,
                    "valid": result.valid,
                    "errors": result.errors,
                    "metrics": self.analyzer.analyze(block.content).model_dump(),
                }
            )
        return report
