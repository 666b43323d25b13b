"""
Bottleneck detection over time-in-status distributions.

A status is a bottleneck when its average dwell time is long, its 90th
percentile is long, or a few very slow cases skew the mean well above the
median.
"""

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Iterable

from .config import (
    BOTTLENECK_RECOMMENDATIONS,
    BOTTLENECK_THRESHOLDS,
    DEFAULT_BOTTLENECK_RECOMMENDATION,
    ESCALATION_RECOMMENDATION,
    ESCALATION_THRESHOLD_HOURS,
    SEVERITY_AVERAGE_BANDS,
    SEVERITY_CAP,
    SEVERITY_P90_BANDS,
    SEVERITY_TAIL_BANDS,
)
from . import stats
from .metrics import guarded
from .utils import round2
from .validation import ensure_typed
from .workflow import collect_status_durations

logger = logging.getLogger(__name__)


def is_bottleneck(
    average: float,
    median: float,
    p90: float,
    thresholds: Mapping[str, float] = BOTTLENECK_THRESHOLDS,
) -> bool:
    return (
        average > thresholds["average_hours"]
        or p90 > thresholds["p90_hours"]
        or (median > 0 and average / median > thresholds["skew_ratio"])
    )


def _band_points(value: float, bands: Iterable[tuple[float, int]]) -> int:
    for threshold, points in bands:
        if value > threshold:
            return points
    return 0


def calculate_bottleneck_severity(average: float, p90: float, p95: float) -> int:
    """Additive severity score capped at 100.

    Average band (40/30/20/10) + p90 band (30/20/15) + tail band on
    p95 - p90 (20/10).
    """
    severity = (
        _band_points(average, SEVERITY_AVERAGE_BANDS)
        + _band_points(p90, SEVERITY_P90_BANDS)
        + _band_points(p95 - p90, SEVERITY_TAIL_BANDS)
    )
    return min(SEVERITY_CAP, severity)


def generate_bottleneck_recommendations(status: str, average: float, p90: float) -> list[str]:
    rule = BOTTLENECK_RECOMMENDATIONS.get(status)
    if rule is None:
        recommendations = [DEFAULT_BOTTLENECK_RECOMMENDATION.format(status=status.lower())]
    else:
        recommendations = [rule["base"]]
        observed = average if rule["metric"] == "average" else p90
        if observed > rule["threshold"]:
            recommendations.append(rule["followup"])

    if average > ESCALATION_THRESHOLD_HOURS:
        recommendations.append(ESCALATION_RECOMMENDATION)
    return recommendations


def identify_bottlenecks(
    durations_by_status: Mapping[str, Iterable[float]],
    thresholds: Mapping[str, float] = BOTTLENECK_THRESHOLDS,
) -> list[dict]:
    """Flag statuses with disproportionate dwell time, most severe first.

    Parameters
    ----------
    durations_by_status : status -> hours spent in that status, one value
        per history entry.

    Returns
    -------
    [{"status", "severity", "metrics": {"averageDuration", "medianDuration",
      "percentile90", "percentile95", "totalCases"}, "recommendations"}, ...]
    """
    bottlenecks = []
    for status, durations in durations_by_status.items():
        values = stats.clean(durations)
        if values.size == 0:
            continue

        average = float(values.mean())
        median = stats.median(values)
        p90 = stats.percentile(values, 90)
        p95 = stats.percentile(values, 95)

        flagged = guarded("bottleneck", lambda: is_bottleneck(average, median, p90, thresholds), False, status=status)
        if not flagged.value:
            continue

        bottlenecks.append({
            "status": status,
            "severity": calculate_bottleneck_severity(average, p90, p95),
            "metrics": {
                "averageDuration": round2(average),
                "medianDuration": round2(median),
                "percentile90": round2(p90),
                "percentile95": round2(p95),
                "totalCases": int(values.size),
            },
            "recommendations": generate_bottleneck_recommendations(status, average, p90),
        })

    bottlenecks.sort(key=lambda b: -b["severity"])
    if bottlenecks:
        logger.info(
            "Detected %d bottleneck(s): %s",
            len(bottlenecks), ", ".join(b["status"] for b in bottlenecks),
        )
    return bottlenecks


def detect_bottlenecks(reports: Iterable | None, now: datetime | None = None) -> list[dict]:
    """Bottlenecks from the time-in-status of a batch of reports."""
    try:
        typed, _ = ensure_typed(reports, now)
        return identify_bottlenecks(collect_status_durations(typed, now))
    except Exception:
        logger.exception("Bottleneck detection failed")
        return []
