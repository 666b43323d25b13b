"""
Shared helpers: timestamp normalisation, numeric coercion, ISO rendering.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any

import pandas as pd

logger = logging.getLogger(__name__)


def normalise_timestamp(val: Any) -> datetime | None:
    """Convert a raw timestamp to a UTC-aware ``datetime``.

    Accepts ISO-8601 strings, ``datetime``/``pd.Timestamp`` objects and
    epoch milliseconds. Naive values are taken to be UTC. Returns None for
    missing or unparseable values.
    """
    if val is None or isinstance(val, bool):
        return None
    try:
        if isinstance(val, (int, float)):
            if not math.isfinite(val):
                return None
            ts = pd.Timestamp(val, unit="ms", tz="UTC")
        elif isinstance(val, str):
            val = val.strip()
            if not val:
                return None
            ts = pd.Timestamp(val)
        elif isinstance(val, datetime):
            ts = pd.Timestamp(val)
        else:
            return None
    except (ValueError, TypeError, OverflowError):
        logger.debug("Could not parse timestamp value: %r", val)
        return None

    if pd.isna(ts):
        return None
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    else:
        ts = ts.tz_convert("UTC")
    return ts.to_pydatetime()


def safe_float(val: Any) -> float | None:
    """Coerce a value to a finite float, returning None otherwise."""
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, str):
        val = val.strip()
        if not val:
            return None
    try:
        out = float(val)
    except (ValueError, TypeError):
        return None
    return out if math.isfinite(out) else None


def hours_between(start: datetime, end: datetime) -> float:
    """Elapsed hours from start to end (negative if end precedes start)."""
    return (end - start).total_seconds() / 3600.0


def to_iso(ts: datetime) -> str:
    """Render a timestamp as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    ts = ts.astimezone(timezone.utc)
    return ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


def round2(value: float) -> float:
    return round(float(value), 2)


def round_half_up(value: float) -> int:
    """Nearest integer, halves rounded towards +inf (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(float(value) + 0.5))


def pct(part: float, whole: float) -> int:
    """Integer percentage of part in whole, 0 when whole is 0."""
    if not whole:
        return 0
    return round_half_up(part / whole * 100)


def percent_shares(counts: list[int], total: int) -> list[int]:
    """Integer percentages of total that sum to exactly 100.

    Largest remainder: each share is floored, then the leftover points go
    to the largest remainders, earlier positions first on ties. All zeros
    when total is 0.
    """
    if not total:
        return [0] * len(counts)
    shares = [int(c) * 100 // total for c in counts]
    remainders = [int(c) * 100 % total for c in counts]
    leftover = max(0, 100 - sum(shares))
    order = sorted(range(len(counts)), key=lambda i: (-remainders[i], i))
    for i in order[:leftover]:
        shares[i] += 1
    return shares
