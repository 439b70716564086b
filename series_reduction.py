"""
Series Simplification for MIDAS Experiments
===========================================

This module provides:
  - Removal of consecutive duplicate time points
  - Detection and collapse of repeated contiguous blocks (loops)

A series is a 2-D integer array, one row per time point and one column per
measured component. Functions never modify their input.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple, Union

import numpy as np

logger = logging.getLogger("MidasToPpf.reduction")

SeriesLike = Union[np.ndarray, Sequence[Sequence[int]]]


def as_series(series: SeriesLike, width: Optional[int] = None) -> np.ndarray:
    """Coerce a sequence of integer vectors to an (n_rows, width) int64 array."""
    arr = np.asarray(series, dtype=np.int64)
    if arr.size == 0 and arr.ndim < 2:
        return np.zeros((0, width or 0), dtype=np.int64)
    if arr.ndim != 2:
        raise ValueError(f"Series must be two-dimensional, got shape {arr.shape}")
    return arr


# =============================================================================
# DUPLICATE COLLAPSE
# =============================================================================

def collapse_duplicates(series: SeriesLike) -> np.ndarray:
    """
    Drop every row identical to the row right before it.

    The first row is always kept, so the result is the first row of each
    maximal run of equal rows, in the original order.
    """
    arr = as_series(series)
    if len(arr) < 2:
        return arr.copy()
    keep = np.ones(len(arr), dtype=bool)
    keep[1:] = np.any(arr[1:] != arr[:-1], axis=1)
    return arr[keep]


# =============================================================================
# CYCLE COLLAPSE
# =============================================================================

def find_cycle(series: SeriesLike) -> Optional[Tuple[int, int, int, int]]:
    """
    Find the first repeated block of the series.

    Scans ``i`` ascending, then ``j > i`` with ``row[i] == row[j]``, then
    ``k`` ascending from ``j`` with ``l = k + (j - i)``. The first quadruple
    whose blocks ``[i, j)`` and ``[k, l)`` are equal is returned; the scan
    order decides which loop is removed when several exist.

    Returns
    -------
    tuple or None
        ``(i, j, k, l)``, or None when no block repeats.
    """
    arr = as_series(series)
    n = len(arr)
    for i in range(n):
        for j in range(i + 1, n):
            if not np.array_equal(arr[i], arr[j]):
                continue
            length = j - i
            for k in range(j, n - length + 1):
                l = k + length
                if np.array_equal(arr[i:j], arr[k:l]):
                    return i, j, k, l
    return None


def collapse_cycles(series: SeriesLike) -> np.ndarray:
    """Excise repeated blocks until none is left."""
    arr = as_series(series)
    while True:
        cycle = find_cycle(arr)
        if cycle is None:
            return arr.copy()
        i, j, k, l = cycle
        logger.debug(f"Collapsing rows [{k}, {l}) repeating rows [{i}, {j})")
        arr = np.concatenate([arr[:k], arr[l:]])


def reduce_series(series: SeriesLike) -> np.ndarray:
    """Collapse consecutive duplicates, then loops."""
    return collapse_cycles(collapse_duplicates(series))
