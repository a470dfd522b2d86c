"""File system boundary: enumerate candidate files and read them as text.

Patterns are glob-style and matched against POSIX relative paths with
``fnmatch``; a leading ``**/`` also matches files at the repository root.
Directories in ``ALWAYS_SKIP_DIRS`` are never descended into.
"""

from __future__ import annotations

import fnmatch
import logging
import os
from pathlib import Path, PurePosixPath
from typing import Iterable, Sequence

logger = logging.getLogger(__name__)

ALWAYS_SKIP_DIRS: frozenset[str] = frozenset(
    {
        ".git",
        ".hg",
        ".svn",
        "node_modules",
        "dist",
        "build",
        ".next",
        "coverage",
        "__pycache__",
        ".venv",
        "venv",
        ".mypy_cache",
        ".pytest_cache",
    }
)
ALWAYS_SKIP_FILES: tuple[str, ...] = ("*.min.js", "*.min.css", "*.map")

# Bytes inspected for NUL when deciding whether a file is binary.
_BINARY_SNIFF = 8192


# ------------------------------------------------------------------
# Path helpers
# ------------------------------------------------------------------


def normalize_path(path: str) -> str:
    """Return *path* with ``/`` separators, no leading ``./`` and no trailing ``/``."""
    p = path.replace("\\", "/")
    while p.startswith("./"):
        p = p[2:]
    while "//" in p:
        p = p.replace("//", "/")
    return p.rstrip("/")


def path_has_prefix(path: str, prefix: str) -> bool:
    """True if *path* lies under directory *prefix* (separator-insensitive).

    ``src/app`` matches ``src/app/x.ts`` and ``src/app`` itself but not
    ``src/application.ts``. An empty prefix matches everything.
    """
    p = normalize_path(path)
    pre = normalize_path(prefix)
    if not pre:
        return True
    return p == pre or p.startswith(pre + "/")


def path_extension(path: str) -> str:
    """Lower-case extension of *path* without the dot (``""`` if none)."""
    suffix = PurePosixPath(normalize_path(path)).suffix
    return suffix[1:].lower() if suffix else ""


def matches_any(rel_path: str, patterns: Iterable[str]) -> bool:
    """True if *rel_path* matches any glob in *patterns*."""
    name = rel_path.rsplit("/", 1)[-1]
    for pat in patterns:
        pat = normalize_path(pat)
        if not pat:
            continue
        if fnmatch.fnmatch(rel_path, pat):
            return True
        if pat.startswith("**/") and fnmatch.fnmatch(rel_path, pat[3:]):
            return True
        if "/" not in pat and fnmatch.fnmatch(name, pat):
            return True
    return False


# ------------------------------------------------------------------
# Enumeration
# ------------------------------------------------------------------


def load_gitignore(root: Path) -> list[str]:
    """Return simple patterns from ``root/.gitignore`` (negations are dropped)."""
    path = root / ".gitignore"
    if not path.is_file():
        return []
    patterns: list[str] = []
    try:
        lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError as exc:
        logger.warning("Could not read %s: %s", path, exc)
        return []
    for line in lines:
        line = line.strip()
        if not line or line.startswith("#") or line.startswith("!"):
            continue
        line = line.lstrip("/")
        if line.endswith("/"):
            line = line.rstrip("/")
            patterns.extend([line, f"{line}/**", f"**/{line}/**"])
        else:
            patterns.append(line)
    return patterns


def list_files(
    root: Path | str,
    include: Sequence[str],
    exclude: Sequence[str] = (),
    use_gitignore: bool = True,
) -> list[str]:
    """Return sorted POSIX paths (relative to *root*) matching *include*.

    Args:
        root: Repository root. Must be an existing directory.
        include: Glob patterns a file must match (e.g. ``**/*.py``).
        exclude: Extra glob patterns to skip, matched against files and
            directory paths.
        use_gitignore: Also honour plain patterns in ``root/.gitignore``.

    Raises:
        NotADirectoryError: If *root* is not a directory.
    """
    root = Path(root)
    if not root.is_dir():
        raise NotADirectoryError(str(root))

    excludes = list(exclude) + list(ALWAYS_SKIP_FILES)
    if use_gitignore:
        excludes.extend(load_gitignore(root))

    found: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = normalize_path(os.path.relpath(dirpath, root))
        if rel_dir == ".":
            rel_dir = ""
        kept = []
        for d in sorted(dirnames):
            rel = f"{rel_dir}/{d}" if rel_dir else d
            if d in ALWAYS_SKIP_DIRS or matches_any(rel, excludes):
                continue
            kept.append(d)
        dirnames[:] = kept

        for name in sorted(filenames):
            rel = f"{rel_dir}/{name}" if rel_dir else name
            if not matches_any(rel, include):
                continue
            if matches_any(rel, excludes):
                continue
            found.append(rel)
    return sorted(found)


# ------------------------------------------------------------------
# Reading
# ------------------------------------------------------------------


def read_bytes(root: Path | str, rel_path: str) -> bytes:
    """Read raw bytes of *rel_path* under *root*. Raises OSError on failure."""
    return (Path(root) / rel_path).read_bytes()


def decode_text(data: bytes) -> str | None:
    """Decode UTF-8 *data*; return None for binary or non-UTF-8 content."""
    if b"\x00" in data[:_BINARY_SNIFF]:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


def read_file(root: Path | str, rel_path: str) -> str | None:
    """Read *rel_path* as UTF-8 text, or None if it is binary / not UTF-8."""
    return decode_text(read_bytes(root, rel_path))
