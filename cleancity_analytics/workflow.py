"""
Status and workflow analytics: distribution, transitions, common paths,
time-in-status and end-to-end workflow timings.

The upstream status machine (Pending first, Completed/Rejected terminal) is
assumed but never enforced: every observed transition is counted, however
unusual.
"""

import logging
from collections import Counter
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Iterable

import pandas as pd

from .config import (
    COMMON_PATHS_TOP_N,
    PATH_SEPARATOR,
    VALID_CATEGORIES,
    VALID_STATUSES,
    WORKFLOW_TARGET_HOURS,
)
from .metrics import MetricSet
from .models import ReportRecord
from . import stats
from .utils import hours_between, pct, percent_shares, round2
from .validation import apply_filters, ensure_typed, normalise_filters, parse_date_range, utcnow

logger = logging.getLogger(__name__)

_STATUS_ORDER = {status: i for i, status in enumerate(VALID_STATUSES)}


def _status_rank(status: str) -> int:
    return _STATUS_ORDER.get(status, len(_STATUS_ORDER))


# ---------------------------------------------------------------------------
# Distribution
# ---------------------------------------------------------------------------
def status_distribution(reports: list[ReportRecord]) -> dict:
    """Count and integer percentage per status (all statuses listed).

    The percentages sum to exactly 100 when there is at least one report.
    """
    total = len(reports)
    counts = (
        pd.Series([r.status for r in reports], dtype="object")
        .value_counts()
        .reindex(list(VALID_STATUSES), fill_value=0)
    )
    shares = percent_shares([int(c) for c in counts.tolist()], total)
    return {
        "totalReports": total,
        "statusDistribution": [
            {"status": status, "count": int(count), "percentage": share}
            for (status, count), share in zip(counts.items(), shares)
        ],
        "completionRate": pct(counts["Completed"], total),
        "rejectionRate": pct(counts["Rejected"], total),
        "inProgressRate": pct(counts["In Progress"], total),
    }


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
def calculate_status_transitions(reports: list[ReportRecord], top_n: int = COMMON_PATHS_TOP_N) -> dict:
    """Aggregate consecutive (from, to) status pairs across report histories.

    Negative elapsed times are data errors: the transition is counted but
    its time is left out of the timing statistics.

    Returns
    -------
    {"transitionStats": [{"fromStatus", "toStatus", "count", "averageTime",
      "medianTime", "minTime", "maxTime", "negativeDurations"}, ...],
     "commonPaths": [...], "totalTransitions": int}
    """
    rows = []
    for report in reports:
        history = report.status_history
        for prev, nxt in zip(history, history[1:]):
            rows.append((prev.status, nxt.status, hours_between(prev.timestamp, nxt.timestamp), report.id))

    transition_stats = []
    if rows:
        df = pd.DataFrame(rows, columns=["from_status", "to_status", "hours", "report_id"])
        for (from_status, to_status), group in df.groupby(["from_status", "to_status"], sort=False):
            valid = group.loc[group["hours"] >= 0, "hours"]
            negative = int((group["hours"] < 0).sum())
            if negative:
                logger.warning(
                    "Transition %s -> %s has %d negative duration(s), e.g. report %s",
                    from_status, to_status, negative,
                    group.loc[group["hours"] < 0, "report_id"].iloc[0],
                )
            summary = stats.spread(valid)
            transition_stats.append({
                "fromStatus": from_status,
                "toStatus": to_status,
                "count": int(len(group)),
                "averageTime": summary["average"],
                "medianTime": round2(summary["median"]),
                "minTime": round2(summary["min"]),
                "maxTime": round2(summary["max"]),
                "negativeDurations": negative,
            })
        transition_stats.sort(key=lambda s: (_status_rank(s["fromStatus"]), _status_rank(s["toStatus"])))

    return {
        "transitionStats": transition_stats,
        "commonPaths": identify_common_paths(reports, top_n),
        "totalTransitions": len(rows),
    }


def identify_common_paths(reports: list[ReportRecord], top_n: int = COMMON_PATHS_TOP_N) -> list[dict]:
    """Most frequent full status sequences, ties broken alphabetically."""
    with_history = [r for r in reports if r.status_history]
    counts = Counter(
        PATH_SEPARATOR.join(entry.status for entry in r.status_history) for r in with_history
    )
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:top_n]
    return [
        {
            "path": path,
            "statuses": path.split(PATH_SEPARATOR),
            "count": count,
            "percentage": pct(count, len(with_history)),
        }
        for path, count in ranked
    ]


# ---------------------------------------------------------------------------
# Time in status
# ---------------------------------------------------------------------------
def collect_status_durations(reports: list[ReportRecord], now: datetime | None = None) -> dict[str, list[float]]:
    """Hours spent in each status, per history entry.

    The terminal (active) entry runs until updatedAt, or ``now``. Negative
    durations are skipped.
    """
    now = now or utcnow()
    durations: dict[str, list[float]] = {status: [] for status in VALID_STATUSES}
    for report in reports:
        history = report.status_history
        for i, entry in enumerate(history):
            end = history[i + 1].timestamp if i + 1 < len(history) else report.history_end(now)
            hours = hours_between(entry.timestamp, end)
            if hours >= 0:
                durations.setdefault(entry.status, []).append(hours)
    return durations


def calculate_status_time_analytics(reports: list[ReportRecord], now: datetime | None = None) -> dict:
    """Per status: averageTime, medianTime, minTime, maxTime, totalReports, totalTime (hours)."""
    analytics = {}
    for status, durations in collect_status_durations(reports, now).items():
        summary = stats.spread(durations)
        analytics[status] = {
            "averageTime": summary["average"],
            "medianTime": round2(summary["median"]),
            "minTime": round2(summary["min"]),
            "maxTime": round2(summary["max"]),
            "totalReports": summary["count"],
            "totalTime": round2(summary["total"]),
        }
    return analytics


# ---------------------------------------------------------------------------
# Workflow timings
# ---------------------------------------------------------------------------
def calculate_workflow_timings(
    reports: list[ReportRecord],
    target_hours: float = WORKFLOW_TARGET_HOURS,
) -> dict:
    """Hours from the first history entry to assignment, completion, rejection."""
    assignment, completion, rejection, resolution = [], [], [], []
    by_category: dict[str, list[float]] = {category: [] for category in VALID_CATEGORIES}

    for report in reports:
        if not report.status_history:
            continue
        start = report.status_history[0].timestamp

        assigned = report.first_entry("Assigned")
        if assigned is not None:
            hours = hours_between(start, assigned.timestamp)
            if hours >= 0:
                assignment.append(hours)

        completed = report.first_entry("Completed")
        if completed is not None:
            hours = hours_between(start, completed.timestamp)
            if hours >= 0:
                completion.append(hours)
                resolution.append(hours)
                by_category[report.category].append(hours)

        rejected = report.first_entry("Rejected")
        if rejected is not None:
            hours = hours_between(start, rejected.timestamp)
            if hours >= 0:
                rejection.append(hours)
                resolution.append(hours)

    efficient = sum(1 for hours in resolution if hours <= target_hours)
    return {
        "averageResolutionTime": stats.average(resolution),
        "medianResolutionTime": round2(stats.median(resolution)),
        "timeToAssignment": stats.average(assignment),
        "timeToCompletion": stats.average(completion),
        "timeToRejection": stats.average(rejection),
        "resolutionTimeByCategory": {
            category: {
                "average": stats.average(times),
                "median": round2(stats.median(times)),
                "count": len(times),
            }
            for category, times in by_category.items()
        },
        "workflowEfficiency": pct(efficient, len(resolution)),
    }


def empty_workflow_timings() -> dict:
    return calculate_workflow_timings([])


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------
def empty_status_analytics() -> dict:
    result = {
        **status_distribution([]),
        "validReports": 0,
        "excludedReports": 0,
        "transitionAnalytics": {"transitionStats": [], "commonPaths": [], "totalTransitions": 0},
        "workflowTimings": empty_workflow_timings(),
        "statusTimeAnalytics": calculate_status_time_analytics([]),
        "degradedMetrics": [],
        "degraded": False,
    }
    return result


def generate_status_analytics(
    reports: Iterable | None,
    date_range: Any = None,
    filters: Mapping | None = None,
    now: datetime | None = None,
) -> dict:
    """Status distribution plus transition, timing and time-in-status analytics.

    Each section is computed independently; a section that faults is
    replaced by its empty structure and named in ``degradedMetrics``.
    """
    rng = parse_date_range(date_range) if date_range is not None else None
    active = normalise_filters(filters)
    now = now or utcnow()
    try:
        typed, bookkeeping = ensure_typed(reports, now)
        scoped = apply_filters(typed, rng, active)
    except Exception:
        logger.exception("Status analytics failed while preparing records")
        result = empty_status_analytics()
        result["degraded"] = True
        return result

    sections = MetricSet(operation="status_analytics")
    distribution = sections.compute("statusDistribution", lambda: status_distribution(scoped), status_distribution([]))
    sections.compute(
        "transitionAnalytics",
        lambda: calculate_status_transitions(scoped),
        {"transitionStats": [], "commonPaths": [], "totalTransitions": 0},
    )
    sections.compute("workflowTimings", lambda: calculate_workflow_timings(scoped), empty_workflow_timings())
    sections.compute(
        "statusTimeAnalytics",
        lambda: calculate_status_time_analytics(scoped, now),
        calculate_status_time_analytics([]),
    )

    return {
        **distribution,
        "validReports": len(scoped),
        "excludedReports": bookkeeping["excludedCount"],
        "transitionAnalytics": sections.values["transitionAnalytics"],
        "workflowTimings": sections.values["workflowTimings"],
        "statusTimeAnalytics": sections.values["statusTimeAnalytics"],
        "dataQuality": bookkeeping,
        "dateRange": rng.to_dict() if rng else None,
        "degradedMetrics": sections.degraded,
        "degraded": bool(sections.degraded),
    }
