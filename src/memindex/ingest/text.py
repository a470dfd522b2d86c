"""Paragraph and Markdown chunkers for prose and unstructured files."""

from __future__ import annotations

import re

from memindex.ingest.base import BaseChunker

# Matches H1, H2, H3 headings at the start of a line.
_HEADING_RE = re.compile(r"^#{1,3} .+")
# Fenced code block delimiter.
_FENCE_RE = re.compile(r"^\s*(```|~~~)")


class ParagraphChunker(BaseChunker):
    """Start a new unit at every non-blank line that follows a blank line."""

    def find_boundaries(self, lines: list[str]) -> list[int]:
        return [
            i
            for i in range(1, len(lines))
            if lines[i].strip() and not lines[i - 1].strip()
        ]


class MarkdownChunker(ParagraphChunker):
    """Split Markdown on H1/H2/H3 heading boundaries.

    Headings inside fenced code blocks are ignored. A document without any
    H1/H2/H3 heading falls back to paragraph boundaries.
    """

    def find_boundaries(self, lines: list[str]) -> list[int]:
        boundaries: list[int] = []
        in_fence = False
        for i, line in enumerate(lines):
            if _FENCE_RE.match(line):
                in_fence = not in_fence
                continue
            if not in_fence and _HEADING_RE.match(line):
                boundaries.append(i)
        if not boundaries:
            return super().find_boundaries(lines)
        return boundaries
