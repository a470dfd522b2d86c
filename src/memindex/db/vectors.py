"""Vector value object and its blob codec for the sqlite-vec store.

Embeddings travel through the core as plain ``list[float]``. They are turned
into float32 blobs only at the store boundary (``Vector.to_blob``) and back
(``Vector.from_blob``) when rows are mapped to models.
"""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass
from typing import Sequence

import sqlite_vec


@dataclass(frozen=True)
class Vector:
    """Fixed-length embedding with an explicit serialize/deserialize pair."""

    values: tuple[float, ...]

    @classmethod
    def of(cls, values: Sequence[float]) -> "Vector":
        if not values:
            raise ValueError("Vector must have at least one dimension")
        floats = tuple(float(v) for v in values)
        if not all(math.isfinite(v) for v in floats):
            raise ValueError("Vector contains NaN or infinite values")
        return cls(floats)

    @property
    def dimensions(self) -> int:
        return len(self.values)

    def to_blob(self) -> bytes:
        """Little-endian float32 blob understood by sqlite-vec functions."""
        return sqlite_vec.serialize_float32(list(self.values))

    @classmethod
    def from_blob(cls, blob: bytes) -> "Vector":
        if len(blob) % 4:
            raise ValueError(f"Vector blob length {len(blob)} is not a multiple of 4")
        count = len(blob) // 4
        return cls(struct.unpack(f"<{count}f", blob))

    def to_list(self) -> list[float]:
        return list(self.values)


def clamp_similarity(value: float | None) -> float:
    if value is None or math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))
