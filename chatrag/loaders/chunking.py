from __future__ import annotations

"""Overlapping character-window chunking with boundary snapping."""

from dataclasses import dataclass
from typing import Iterator

# Preferred break points, strongest first.
_SEPARATORS = ("\n\n", "\n", ". ", "! ", "? ", " ")


@dataclass(frozen=True)
class TextChunk:
    """Slice of source text and its position in the chunk sequence."""
    text: str
    index: int


@dataclass(frozen=True)
class ChunkSequence:
    """Lazy, restartable sequence of chunks for one text."""
    text: str
    size: int
    overlap: int

    def __iter__(self) -> Iterator[TextChunk]:
        return _iter_chunks(self.text, self.size, self.overlap)


def chunk_text(text: str, size: int = 1000, overlap: int = 100) -> ChunkSequence:
    """Split text into overlapping chunks of at most ``size`` characters.

    Consecutive chunks share exactly ``overlap`` characters. Each chunk ends at
    the strongest natural boundary found in the second half of its window, or
    at a hard cut when none exists. Empty or whitespace-only text yields no
    chunks.
    """
    return ChunkSequence(text=text, size=size, overlap=overlap)


def _iter_chunks(text: str, size: int, overlap: int) -> Iterator[TextChunk]:
    if not text or not text.strip():
        return
    if size <= 0:
        yield TextChunk(text=text, index=0)
        return
    if overlap >= size:
        overlap = max(0, size // 4)
    overlap = max(0, overlap)

    length = len(text)
    start = 0
    index = 0
    while start < length:
        end = min(length, start + size)
        if end < length:
            end = _snap_end(text, start, end, min_end=start + max(overlap + 1, size // 2))
        yield TextChunk(text=text[start:end], index=index)
        index += 1
        if end >= length:
            break
        start = end - overlap


def _snap_end(text: str, start: int, end: int, min_end: int) -> int:
    """Return the best break position in ``(min_end, end]``, else ``end``."""
    window = text[start:end]
    floor = min_end - start
    for separator in _SEPARATORS:
        position = window.rfind(separator)
        if position < 0:
            continue
        cut = position + len(separator)
        if cut > floor:
            return start + cut
    return end
