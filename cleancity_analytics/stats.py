"""
Statistics primitives: pure functions with no side effects.

Inputs may contain None, NaN or +/-inf; those are dropped before any
computation. Empty (or all-invalid) input yields 0 rather than an error.
Percentiles use the nearest-rank definition, not interpolation.
"""

import math
from typing import Iterable

import numpy as np


def clean(values: Iterable | None) -> np.ndarray:
    """Return the finite numeric values as a float64 array."""
    if values is None:
        return np.empty(0, dtype="float64")
    kept = []
    for v in values:
        if v is None or isinstance(v, bool):
            continue
        try:
            f = float(v)
        except (TypeError, ValueError):
            continue
        if math.isfinite(f):
            kept.append(f)
    return np.asarray(kept, dtype="float64")


def average(values: Iterable | None) -> float:
    """Arithmetic mean rounded to 2 decimals; 0 when empty."""
    arr = clean(values)
    if arr.size == 0:
        return 0
    return round(float(arr.mean()), 2)


def median(values: Iterable | None) -> float:
    """Middle value, or mean of the two middle values; 0 when empty."""
    arr = np.sort(clean(values))
    n = arr.size
    if n == 0:
        return 0
    mid = n // 2
    if n % 2 == 0:
        return float((arr[mid - 1] + arr[mid]) / 2)
    return float(arr[mid])


def percentile(values: Iterable | None, p: float) -> float:
    """Nearest-rank percentile.

    index = ceil(p * n / 100) - 1, clamped to [0, n - 1]. So p=0 gives the
    minimum and p=100 the maximum.
    """
    arr = np.sort(clean(values))
    n = arr.size
    if n == 0:
        return 0
    index = math.ceil(p * n / 100) - 1
    index = max(0, min(index, n - 1))
    return float(arr[index])


def variance(values: Iterable | None) -> float:
    """Sample variance (n - 1 denominator); 0 for fewer than two values."""
    arr = clean(values)
    if arr.size < 2:
        return 0
    return float(arr.var(ddof=1))


def summarize(values: Iterable | None) -> dict:
    """Descriptive summary used for resolution and response times.

    Returns
    -------
    {"average", "median", "min", "max", "variance", "count"}; all but count
    rounded to 2 decimals, all zero when empty.
    """
    arr = clean(values)
    if arr.size == 0:
        return {"average": 0, "median": 0, "min": 0, "max": 0, "variance": 0, "count": 0}
    return {
        "average": average(arr),
        "median": round(median(arr), 2),
        "min": round(float(arr.min()), 2),
        "max": round(float(arr.max()), 2),
        "variance": round(variance(arr), 2),
        "count": int(arr.size),
    }


def spread(values: Iterable | None) -> dict:
    """average/median/min/max/total over durations, unrounded extremes."""
    arr = clean(values)
    if arr.size == 0:
        return {"average": 0, "median": 0, "min": 0, "max": 0, "total": 0, "count": 0}
    return {
        "average": average(arr),
        "median": median(arr),
        "min": float(arr.min()),
        "max": float(arr.max()),
        "total": float(arr.sum()),
        "count": int(arr.size),
    }
