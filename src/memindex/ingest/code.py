"""Declaration-aware chunker for TypeScript, JavaScript and Python."""

from __future__ import annotations

import re

from memindex.ingest.base import BaseChunker

# Top-level TS/JS declarations, optionally export/default/async/abstract/declare prefixed.
_TS_DECL_RE = re.compile(
    r"^(?:export\s+)?(?:default\s+)?(?:declare\s+)?(?:async\s+)?(?:abstract\s+)?"
    r"(?:function\b|class\b|interface\b|type\s+\w+|enum\b|namespace\b)"
)
# const/let/var bound to an arrow function or function expression.
_TS_FUNC_VAR_RE = re.compile(
    r"^(?:export\s+)?(?:const|let|var)\s+[\w$]+\s*(?::[^=]+)?=\s*"
    r"(?:async\s+)?(?:function\b|\([^)]*\)\s*(?::[^=]+)?=>|[\w$]+\s*=>|<)"
)

# Python def/class up to one indentation level (methods included).
_PY_DECL_RE = re.compile(r"^(?: {0,4}|\t?)(?:async\s+def|def|class)\s+\w+")


class DeclarationChunker(BaseChunker):
    """Start a new unit at each declaration line.

    Strategy:
    - TypeScript/JavaScript: top-level ``function``/``class``/``interface``/
      ``type``/``enum`` and ``const x = () =>`` style declarations.
    - Python: ``def``/``async def``/``class`` indented by at most 4 spaces.
    - Decorators and comment lines directly above a declaration travel with it.
    - Small units are merged, large ones split by ``BaseChunker``.
    """

    def __init__(
        self, language: str, min_chars: int = 200, max_chars: int = 4_000
    ) -> None:
        super().__init__(min_chars=min_chars, max_chars=max_chars)
        if language not in ("typescript", "javascript", "python"):
            raise ValueError(f"No declaration rules for language: {language}")
        self.language = language
        if language == "python":
            self.attach_prefixes = ("@", "#")
        else:
            self.attach_prefixes = ("@", "//", "/*", "*")

    def find_boundaries(self, lines: list[str]) -> list[int]:
        if self.language == "python":
            return [i for i, line in enumerate(lines) if _PY_DECL_RE.match(line)]
        return [
            i
            for i, line in enumerate(lines)
            if _TS_DECL_RE.match(line) or _TS_FUNC_VAR_RE.match(line)
        ]
