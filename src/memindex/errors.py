"""Exception taxonomy for the memindex core.

Skip signals (``UnsupportedContent``, ``FingerprintUnchanged``) are not
failures: the indexer counts them separately and moves on. The remaining
classes name the boundary that failed so callers can tell "no matches" apart
from "search is broken".
"""

from __future__ import annotations


class MemindexError(Exception):
    """Base class for all memindex errors."""


# ---------------------------------------------------------------------------
# Skip signals
# ---------------------------------------------------------------------------


class UnsupportedContent(MemindexError):
    """The chunker declined a file (binary, minified, or unknown extension)."""

    def __init__(self, path: str, reason: str = "unsupported file type") -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class FingerprintUnchanged(MemindexError):
    """The stored content hash matches the file on disk."""

    def __init__(self, path: str) -> None:
        super().__init__(f"{path}: unchanged")
        self.path = path


# ---------------------------------------------------------------------------
# Boundary failures
# ---------------------------------------------------------------------------


class EmbeddingProviderError(MemindexError):
    """The embedding provider rejected or failed a request.

    Carries the provider's message verbatim in ``message``.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class StoreError(MemindexError):
    """A vector store operation failed."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
        self.message = message


class EmbeddingModelMismatch(StoreError):
    """Vectors from a different model (or dimensionality) than the index holds."""

    def __init__(self, stored: str, incoming: str) -> None:
        super().__init__(
            "write",
            f"index was built with {stored}, refusing vectors from {incoming}",
        )
        self.stored = stored
        self.incoming = incoming


class NotFound(MemindexError):
    """A work item, memory, or collection does not exist."""

    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"{kind} not found: {key}")
        self.kind = kind
        self.key = key


class IndexRootError(MemindexError):
    """The repository root for an indexing run is missing or unreadable."""

    def __init__(self, root: str) -> None:
        super().__init__(f"Repository path not found: {root}")
        self.root = root
