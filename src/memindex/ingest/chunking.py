"""Chunker dispatch: language detection, unsupported-file checks, chunk_file().

Language is inferred from the file extension. Files with an unknown extension
and minified bundles are unsupported: ``chunk_file`` returns ``None`` and the
indexer counts them as skipped, not failed.
"""

from __future__ import annotations

from memindex.db.models import ChunkSpan
from memindex.ingest.base import BaseChunker
from memindex.ingest.code import DeclarationChunker
from memindex.ingest.files import path_extension
from memindex.ingest.text import MarkdownChunker, ParagraphChunker

LANGUAGE_MAP: dict[str, str] = {
    "ts": "typescript",
    "tsx": "typescript",
    "js": "javascript",
    "jsx": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "py": "python",
    "md": "markdown",
    "markdown": "markdown",
    "json": "json",
    "sql": "sql",
    "css": "css",
    "scss": "scss",
    "html": "html",
    "yaml": "yaml",
    "yml": "yaml",
    "txt": "text",
    "rst": "text",
}

_DECLARATION_LANGUAGES = frozenset({"typescript", "javascript", "python"})

# Minified-file heuristic
_MINIFIED_SUFFIXES = (".min.js", ".min.css")
# Languages whose content is checked for bundle shape.
_BUNDLED_LANGUAGES = frozenset({"javascript", "typescript", "css", "scss"})
_MINIFIED_LONG_LINE = 1_000
_MINIFIED_AVG_LINE = 300


def detect_language(path: str) -> str | None:
    """Return the language name for *path*, or None if the extension is unknown."""
    return LANGUAGE_MAP.get(path_extension(path))


def is_minified(path: str, content: str) -> bool:
    """True for ``*.min.js``/``*.min.css``, or script/stylesheet content shaped like a bundle."""
    if path.lower().endswith(_MINIFIED_SUFFIXES):
        return True
    if detect_language(path) not in _BUNDLED_LANGUAGES:
        return False
    lines = content.splitlines()
    if not lines:
        return False
    avg = sum(len(line) for line in lines) / len(lines)
    return avg > _MINIFIED_AVG_LINE and any(len(line) > _MINIFIED_LONG_LINE for line in lines)


def get_chunker(
    language: str, min_chars: int = 200, max_chars: int = 4_000
) -> BaseChunker:
    """Return the chunker for *language*."""
    if language in _DECLARATION_LANGUAGES:
        return DeclarationChunker(language, min_chars=min_chars, max_chars=max_chars)
    if language == "markdown":
        return MarkdownChunker(min_chars=min_chars, max_chars=max_chars)
    return ParagraphChunker(min_chars=min_chars, max_chars=max_chars)


def chunk_file(
    path: str,
    content: str,
    min_chars: int = 200,
    max_chars: int = 4_000,
) -> list[ChunkSpan] | None:
    """Split one file into ordered chunks.

    Args:
        path: Repository-relative path; its extension selects the language.
        content: Decoded UTF-8 text of the file.
        min_chars: Units shorter than this are merged with a neighbour.
        max_chars: Units longer than this are split at line boundaries.

    Returns:
        Chunks in file order (``[]`` for empty content), or ``None`` when the
        file type is unsupported.
    """
    language = detect_language(path)
    if language is None:
        return None
    if is_minified(path, content):
        return None
    return get_chunker(language, min_chars, max_chars).chunk(content, language)
