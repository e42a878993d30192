import json
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import List, Optional

from src.schemas import ComplexityMetrics, DiagramBlock, DiagramMetadata

METADATA_SUFFIX = ".diagram-meta.json"
_VOLATILE_KEYS = ("generatedAt",)


def sidecar_path(source_path: str) -> str:
    """Metadata path for a source file: same directory, same stem, fixed suffix."""
    source = PurePosixPath(source_path)
    return str(source.with_name(source.stem + METADATA_SUFFIX))


class MetadataWriter:
    """Builds and serializes sidecar records. Performs no I/O."""

    def build(
        self,
        source_path: str,
        blocks: List[DiagramBlock],
        metrics: ComplexityMetrics,
        generated_at: datetime,
    ) -> DiagramMetadata:
        if not blocks:
            raise ValueError(f"No diagram blocks to describe for {source_path}")
        if generated_at.tzinfo is None:
            generated_at = generated_at.replace(tzinfo=timezone.utc)
        return DiagramMetadata(
            dialect=blocks[0].dialect,
            dialects=sorted({block.dialect for block in blocks}),
            block_count=len(blocks),
            generated_at=generated_at.astimezone(timezone.utc),
            source_file=source_path,
            complexity=metrics,
        )

    def render(self, metadata: DiagramMetadata) -> str:
        return metadata.model_dump_json(by_alias=True, indent=2) + "\n"

    def write(
        self,
        source_path: str,
        blocks: List[DiagramBlock],
        metrics: ComplexityMetrics,
        generated_at: datetime,
    ) -> str:
        """Serialized record for ``source_path``; same input gives the same text."""
        return self.render(self.build(source_path, blocks, metrics, generated_at))

    @staticmethod
    def same_record(existing: Optional[str], rendered: str) -> bool:
        """True when two records differ at most in their generation timestamp."""
        if existing is None:
            return False
        try:
            old = json.loads(existing)
            new = json.loads(rendered)
        except json.JSONDecodeError:
            return False
        if not isinstance(old, dict) or not isinstance(new, dict):
            return False
        for key in _VOLATILE_KEYS:
            old.pop(key, None)
            new.pop(key, None)
        return old == new
