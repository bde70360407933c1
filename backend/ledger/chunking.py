"""
Chunker - groups ordered pages into fixed-size chunks for extraction calls.

Pages inside a chunk are joined with PAGE_SEPARATOR so the extraction
capability can still see where one page ends and the next begins.
"""
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from .config import Config

PAGE_SEPARATOR = "\n\n--- PAGE BREAK ---\n\n"


@dataclass(frozen=True)
class Chunk:
    index: int
    pages: Tuple[str, ...]

    @property
    def text(self) -> str:
        return PAGE_SEPARATOR.join(self.pages)

    def __len__(self) -> int:
        return len(self.pages)


def chunk_pages(pages: Sequence[str], size: int = Config.CHUNK_SIZE) -> List[Chunk]:
    """
    Split pages into ceil(len(pages) / size) chunks, preserving order.
    The last chunk may be smaller than size; no pages means no chunks.
    """
    if size < 1:
        raise ValueError(f"Chunk size must be at least 1, got {size}")
    return [
        Chunk(index=i // size, pages=tuple(pages[i:i + size]))
        for i in range(0, len(pages), size)
    ]
