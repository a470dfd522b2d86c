"""Content fingerprint used purely for change detection."""

from __future__ import annotations

import hashlib


def fingerprint(content: bytes | str) -> str:
    """SHA-256 hex digest of *content* (``str`` is hashed as UTF-8)."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()
