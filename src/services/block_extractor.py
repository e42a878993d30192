import re
from typing import List, Optional

from src.schemas import DiagramBlock

from .dialects import DialectRegistry, default_registry

_OPEN_FENCE = re.compile(r"^ {0,3}(?P<fence>`{3,}|~{3,})[ \t]*(?P<info>[^`\r\n]*)$")
_CLOSE_FENCE = re.compile(r"^ {0,3}(?P<fence>`{3,}|~{3,})[ \t]*$")


class _OpenFence:
    def __init__(self, marker: str, dialect: Optional[str], start: int, start_byte: int):
        self.marker = marker
        self.dialect = dialect
        self.start = start
        self.start_byte = start_byte

    def closed_by(self, line: str) -> bool:
        match = _CLOSE_FENCE.match(line)
        if not match:
            return False
        fence = match.group("fence")
        return fence[0] == self.marker[0] and len(fence) >= len(self.marker)


class BlockExtractor:
    """Extracts fenced diagram blocks from document text.

    Extraction is purely lexical. Fences whose info string does not name a
    registered dialect are skipped as a whole, so their content is never
    scanned for openings. Nested fences are not supported: a region ends at
    the first closing fence of the same kind, and a fence left open at the end
    of the text yields no block.
    """

    def __init__(self, registry: Optional[DialectRegistry] = None):
        self.registry = registry or default_registry()

    def extract(self, text: str) -> List[DiagramBlock]:
        blocks: List[DiagramBlock] = []
        current: Optional[_OpenFence] = None
        pos = 0
        byte_pos = 0

        for line in text.splitlines(keepends=True):
            bare = line.rstrip("\r\n")
            line_end = pos + len(line)
            line_end_byte = byte_pos + len(line.encode("utf-8"))

            if current is None:
                match = _OPEN_FENCE.match(bare)
                if match:
                    info = match.group("info").split()
                    dialect = self.registry.resolve(info[0]) if info else None
                    current = _OpenFence(match.group("fence"), dialect, line_end, line_end_byte)
            elif current.closed_by(bare):
                if current.dialect is not None:
                    blocks.append(self._make_block(text, current, pos))
                current = None

            pos = line_end
            byte_pos = line_end_byte

        return blocks

    def _make_block(self, text: str, fence: _OpenFence, close_pos: int) -> DiagramBlock:
        content = text[fence.start:close_pos]
        # The newline before the closing fence belongs to the fence, not the diagram
        for newline in ("\r\n", "\n", "\r"):
            if content.endswith(newline):
                content = content[: -len(newline)]
                break
        end_byte = fence.start_byte + len(content.encode("utf-8"))
        return DiagramBlock(
            dialect=fence.dialect,
            content=content,
            start=fence.start_byte,
            end=end_byte,
        )


def embed(block: DiagramBlock, fence: str = "```") -> str:
    """Render a block back into a fenced region of its declared dialect."""
    return f"{fence}{block.dialect}\n{block.content}\n{fence}\n"
