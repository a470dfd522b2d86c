"""Tests for the Vector value object and its float32 blob codec."""

from __future__ import annotations

import math

import pytest

from memindex.db.vectors import Vector, clamp_similarity


# --- Vector.of ---

def test_of_converts_to_floats():
    v = Vector.of([1, 2, 3])
    assert v.values == (1.0, 2.0, 3.0)
    assert v.dimensions == 3


def test_of_rejects_empty():
    with pytest.raises(ValueError, match="at least one dimension"):
        Vector.of([])


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
def test_of_rejects_non_finite(bad):
    with pytest.raises(ValueError, match="NaN or infinite"):
        Vector.of([0.1, bad])


# --- Blob codec ---

def test_blob_is_float32():
    blob = Vector.of([0.5, 0.25, 1.0]).to_blob()
    assert len(blob) == 12


def test_blob_round_trip_exact_for_representable_values():
    v = Vector.of([0.5, -0.25, 1.0, 0.0])
    assert Vector.from_blob(v.to_blob()) == v


def test_blob_round_trip_approximates_doubles():
    restored = Vector.from_blob(Vector.of([0.1, 0.2]).to_blob()).to_list()
    assert restored == pytest.approx([0.1, 0.2], rel=1e-6)


def test_from_blob_rejects_truncated():
    with pytest.raises(ValueError, match="multiple of 4"):
        Vector.from_blob(b"\x00\x00\x80")


# --- clamp_similarity ---

@pytest.mark.parametrize("raw,expected", [
    (0.75, 0.75),
    (1.0000001, 1.0),
    (-0.2, 0.0),
    (None, 0.0),
    (math.nan, 0.0),
])
def test_clamp_similarity(raw, expected):
    assert clamp_similarity(raw) == expected
