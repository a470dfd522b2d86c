"""memindex ingest pipeline: chunkers, fingerprints, embeddings, indexer."""

from memindex.ingest.base import BaseChunker
from memindex.ingest.code import DeclarationChunker
from memindex.ingest.text import MarkdownChunker, ParagraphChunker

__all__ = [
    "BaseChunker",
    "DeclarationChunker",
    "MarkdownChunker",
    "ParagraphChunker",
]
