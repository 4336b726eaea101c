"""Text chunking — paragraph-first splitting with overlap.

Text is packed into chunks paragraph by paragraph.  A piece that cannot
fit under ``max_size`` is broken at the next finer granularity
(paragraph → sentence → word → fixed-width slice) and packed with the
same rule, so no chunk outgrows the hard limit.  Original separators are
kept, which makes every chunk a contiguous substring of the normalised
text; consecutive chunks share an ``overlap``-character seam.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from formbridge_rag.config import settings


@dataclass(frozen=True)
class TextChunk:
    """One chunk of a document and its position in the sequence."""

    text: str
    index: int


# Splitters ordered from coarsest to finest; each keeps its separator as a
# capture group so pieces can be rejoined losslessly.
_LEVELS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(\n{2,})"),
    re.compile(r"(?<=[.!?])(\s+)"),
    re.compile(r"(\s+)"),
)


def normalize_text(text: str) -> str:
    """Collapse whitespace runs while keeping blank-line paragraph breaks."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[^\S\n]+", " ", text)  # collapse spaces (keep \n)
    text = re.sub(r" ?\n ?", "\n", text)  # no spaces around line breaks
    text = re.sub(r"\n{3,}", "\n\n", text)  # max two consecutive newlines
    return text.strip()


def _split(piece: str, level: int) -> list[tuple[str, str]]:
    """Split *piece* with splitter *level* into ``(separator, text)`` pairs."""
    parts = _LEVELS[level].split(piece)
    pairs = [("", parts[0])]
    pairs.extend(zip(parts[1::2], parts[2::2]))
    return [(sep, text) for sep, text in pairs if text]


class _ChunkPacker:
    """Accumulates pieces into chunks; see :func:`chunk_text`."""

    def __init__(self, target_size: int, min_size: int, max_size: int, overlap: int) -> None:
        self.target_size = target_size
        self.min_size = min_size
        self.max_size = max_size
        self.overlap = overlap
        # Width of last-resort slices for unbroken runs of text, chosen so a
        # slice always fits next to a sub-minimum buffer.
        self.slice_width = max(1, min(target_size - overlap, max_size - min_size - 1))

        self.chunks: list[str] = []
        self._buffer = ""
        # Offset where text not yet emitted starts; None while the buffer
        # holds only the overlap seed carried from the previous chunk.
        self._fresh_from: int | None = None
        self._fresh_sep = ""

    def add(self, piece: str, sep: str, level: int) -> None:
        if self._buffer and len(self._buffer) >= self.min_size and self._joined_length(piece, sep) > self.target_size:
            self._flush()

        if self._joined_length(piece, sep) <= self.max_size:
            self._append(piece, sep)
            return

        next_level = level + 1
        if next_level < len(_LEVELS):
            sub_pieces = _split(piece, next_level)
        elif next_level == len(_LEVELS):
            width = self.slice_width
            sub_pieces = [("", piece[i : i + width]) for i in range(0, len(piece), width)]
        else:
            # Degenerate size settings; nothing finer to split into.
            self._append(piece, sep)
            return

        first_sep, first = sub_pieces[0]
        sub_pieces[0] = (sep + first_sep, first)
        for sub_sep, sub_piece in sub_pieces:
            self.add(sub_piece, sub_sep, next_level)

    def finish(self) -> list[str]:
        if self._fresh_from is None:
            # Only the overlap seed is left; its text is already emitted.
            return self.chunks
        if len(self._buffer) >= self.min_size or not self.chunks:
            self.chunks.append(self._buffer)
            return self.chunks

        merged = self.chunks[-1] + self._fresh_sep + self._buffer[self._fresh_from :]
        if len(merged) <= self.max_size:
            self.chunks[-1] = merged
        else:
            # Re-cut the tail as its own minimum-size chunk instead of
            # stretching the previous chunk past max_size.
            start = len(merged) - self.min_size
            while start > 0 and merged[start].isspace():
                start -= 1
            self.chunks.append(merged[start:])
        return self.chunks

    # -- internals ------------------------------------------------------------

    def _joined_length(self, piece: str, sep: str) -> int:
        if not self._buffer:
            return len(piece)
        return len(self._buffer) + len(sep) + len(piece)

    def _append(self, piece: str, sep: str) -> None:
        if not self._buffer:
            self._buffer = piece
            self._fresh_from = 0
            self._fresh_sep = sep
            return
        if self._fresh_from is None:
            self._fresh_from = len(self._buffer) + len(sep)
            self._fresh_sep = sep
        self._buffer += sep + piece

    def _flush(self) -> None:
        self.chunks.append(self._buffer)
        self._buffer = self._buffer[-self.overlap :].lstrip() if self.overlap else ""
        self._fresh_from = None
        self._fresh_sep = ""


def chunk_text(
    text: str,
    *,
    target_size: int = settings.chunk_target_size,
    min_size: int = settings.chunk_min_size,
    max_size: int = settings.chunk_max_size,
    overlap: int = settings.chunk_overlap,
) -> list[TextChunk]:
    """Split *text* into ordered, overlapping chunks.

    Parameters
    ----------
    text:
        Raw document text; whitespace is normalised first.
    target_size:
        A chunk is closed once the next piece would take it past this
        length (and it already holds at least ``min_size`` characters).
    min_size:
        Minimum chunk length.  A short trailing remainder is merged into
        the previous chunk rather than emitted on its own.
    max_size:
        Hard upper bound on chunk length.  Documents no longer than this
        become a single chunk, whatever their size.
    overlap:
        Number of trailing characters of a chunk repeated at the start of
        the next one.

    Returns
    -------
    list[TextChunk]
        Chunks with contiguous indexes starting at 0; empty for blank input.
    """
    if not 0 <= overlap < min_size <= target_size <= max_size:
        raise ValueError(
            "chunk sizes must satisfy 0 <= overlap < min_size <= target_size <= max_size "
            f"(got overlap={overlap}, min={min_size}, target={target_size}, max={max_size})"
        )

    clean = normalize_text(text)
    if not clean:
        return []
    if len(clean) <= max_size:
        return [TextChunk(text=clean, index=0)]

    packer = _ChunkPacker(target_size, min_size, max_size, overlap)
    for sep, paragraph in _split(clean, 0):
        packer.add(paragraph, sep, 0)
    return [TextChunk(text=chunk, index=i) for i, chunk in enumerate(packer.finish())]
