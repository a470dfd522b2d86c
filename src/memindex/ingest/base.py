"""Base chunker interface: boundary detection + size normalisation.

Subclasses only decide where logical units start (``find_boundaries``).
The base class turns those boundaries into line-addressed chunks that respect
``min_chars`` / ``max_chars``:

- units shorter than ``min_chars`` are merged into the following unit
  (or the previous one at end of file);
- units longer than ``max_chars`` are split at the last line boundary that
  fits, and a single overlong line is cut into ``max_chars`` slices;
- leading/trailing blank lines are trimmed; line numbers are 1-based and
  inclusive.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from memindex.db.models import ChunkSpan

# (start, end) half-open, 0-based line indices.
_Span = tuple[int, int]


class BaseChunker(ABC):
    """Abstract base for all chunkers."""

    #: Stripped-line prefixes that stay attached to the declaration below them.
    attach_prefixes: tuple[str, ...] = ()

    def __init__(self, min_chars: int = 200, max_chars: int = 4_000) -> None:
        if min_chars < 1:
            raise ValueError("min_chars must be >= 1")
        if max_chars <= min_chars:
            raise ValueError("max_chars must be greater than min_chars")
        self.min_chars = min_chars
        self.max_chars = max_chars

    @abstractmethod
    def find_boundaries(self, lines: list[str]) -> list[int]:
        """Return 0-based line indices where a new logical unit begins."""

    def chunk(self, content: str, language: str | None = None) -> list[ChunkSpan]:
        """Split *content* into ordered chunks. Empty content yields ``[]``."""
        if not content.strip():
            return []

        lines = content.splitlines()
        boundaries = sorted({0, *self._attach(lines, self.find_boundaries(lines))})
        boundaries = [b for b in boundaries if 0 <= b < len(lines)]
        units: list[_Span] = [
            (start, boundaries[i + 1] if i + 1 < len(boundaries) else len(lines))
            for i, start in enumerate(boundaries)
        ]

        chunks: list[ChunkSpan] = []
        for unit in self._merge_small(lines, units):
            for piece in self._split_large(lines, unit):
                if isinstance(piece, ChunkSpan):
                    piece.language = language
                    chunks.append(piece)
                    continue
                chunk = self._make_chunk(lines, piece[0], piece[1], language)
                if chunk is not None:
                    chunks.append(chunk)
        return chunks

    # ------------------------------------------------------------------
    # Boundary helpers
    # ------------------------------------------------------------------

    def _attach(self, lines: list[str], boundaries: list[int]) -> list[int]:
        """Move each boundary up over directly attached decorator/comment lines."""
        if not self.attach_prefixes:
            return boundaries
        moved: list[int] = []
        for b in boundaries:
            i = b
            while i > 0:
                prev = lines[i - 1].strip()
                if not prev or not prev.startswith(self.attach_prefixes):
                    break
                i -= 1
            moved.append(i)
        return moved

    # ------------------------------------------------------------------
    # Size normalisation
    # ------------------------------------------------------------------

    @staticmethod
    def _chars(lines: list[str], start: int, end: int) -> int:
        return len("\n".join(lines[start:end]).strip())

    def _merge_small(self, lines: list[str], units: list[_Span]) -> list[_Span]:
        merged: list[_Span] = []
        current: _Span | None = None
        for unit in units:
            if current is None:
                current = unit
            elif self._chars(lines, *current) < self.min_chars:
                current = (current[0], unit[1])
            else:
                merged.append(current)
                current = unit
        if current is not None:
            if merged and self._chars(lines, *current) < self.min_chars:
                merged[-1] = (merged[-1][0], current[1])
            else:
                merged.append(current)
        return merged

    def _split_large(
        self, lines: list[str], unit: _Span
    ) -> list[_Span | ChunkSpan]:
        start, end = unit
        if self._chars(lines, start, end) <= self.max_chars:
            return [unit]

        pieces: list[_Span | ChunkSpan] = []
        piece_start = start
        size = 0
        for i in range(start, end):
            if len(lines[i]) > self.max_chars:
                if i > piece_start:
                    pieces.append((piece_start, i))
                pieces.extend(self._slice_line(lines[i], i))
                piece_start, size = i + 1, 0
                continue
            line_len = len(lines[i]) + (1 if i > piece_start else 0)
            if size + line_len > self.max_chars and i > piece_start:
                pieces.append((piece_start, i))
                piece_start, size = i, len(lines[i])
            else:
                size += line_len
        if piece_start < end:
            tail = (piece_start, end)
            last = pieces[-1] if pieces else None
            if (
                isinstance(last, tuple)
                and self._chars(lines, *tail) < self.min_chars
                and self._chars(lines, last[0], end) <= self.max_chars
            ):
                pieces[-1] = (last[0], end)
            else:
                pieces.append(tail)
        return pieces

    def _slice_line(self, line: str, index: int) -> list[ChunkSpan]:
        """Cut one overlong line into ``max_chars`` slices sharing its line number."""
        return [
            ChunkSpan(text=line[pos : pos + self.max_chars], start_line=index + 1, end_line=index + 1)
            for pos in range(0, len(line), self.max_chars)
            if line[pos : pos + self.max_chars].strip()
        ]

    @staticmethod
    def _make_chunk(
        lines: list[str], start: int, end: int, language: str | None
    ) -> ChunkSpan | None:
        while start < end and not lines[start].strip():
            start += 1
        while end > start and not lines[end - 1].strip():
            end -= 1
        if start >= end:
            return None
        return ChunkSpan(
            text="\n".join(lines[start:end]),
            start_line=start + 1,
            end_line=end,
            language=language,
        )
