"""
Driver performance: per-driver rates and composite scores, system
benchmarks, ranking, peer comparison and assignment tracking.

Only performance figures are returned per driver; the opaque driver id is
the sole identifying field.
"""

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Iterable

import pandas as pd

from .config import (
    ASSIGNMENT_EFFICIENCY_WEIGHTS,
    ASSIGNMENT_RESPONSE_CAP_HOURS,
    BEST_QUARTILE_PERCENTILE,
    CONSISTENCY_VARIANCE_DIVISOR,
    EFFICIENCY_BANDS,
    PRODUCTIVITY_VOLUME_TARGET,
    PRODUCTIVITY_WEIGHTS,
    REPORTS_PER_DAY_WINDOW_DAYS,
    TOP_QUARTILE_PERCENTILE,
    VALID_CATEGORIES,
    VALID_STATUSES,
    WORKLOAD_BALANCE_INSIGHT_THRESHOLD,
    WORKLOAD_BALANCE_SCALE,
)
from .metrics import MetricSet
from .models import DateRange, ReportRecord
from . import stats
from .utils import hours_between, pct, round2, round_half_up
from .validation import apply_filters, ensure_typed, parse_date_range

logger = logging.getLogger(__name__)

# metric key on a driver record -> (benchmark key, higher_is_better)
RANKED_METRICS: dict[str, tuple[str, bool]] = {
    "completionRate": ("completionRate", True),
    "averageResolutionTime": ("resolutionTime", False),
    "productivityScore": ("productivity", True),
    "consistencyScore": ("consistency", True),
}


# ---------------------------------------------------------------------------
# Raw per-driver counts
# ---------------------------------------------------------------------------
def aggregate_driver_stats(reports: list[ReportRecord]) -> list[dict]:
    """Group assigned reports by driver into raw counts and durations.

    Returns
    -------
    One dict per driver (sorted by id) with assignedReports, per-status
    counts, categoryCounts, resolutionTimes (hours, Completed reports:
    updatedAt - createdAt) and responseTimes (hours, createdAt to first
    Assigned history entry).
    """
    assigned = [r for r in reports if r.assigned_driver is not None]
    if not assigned:
        return []

    df = pd.DataFrame({
        "driver": [r.assigned_driver for r in assigned],
        "status": [r.status for r in assigned],
        "category": [r.category for r in assigned],
    })
    by_status = pd.crosstab(df["driver"], df["status"]).reindex(columns=list(VALID_STATUSES), fill_value=0)
    by_category = pd.crosstab(df["driver"], df["category"]).reindex(columns=list(VALID_CATEGORIES), fill_value=0)

    resolution: dict[str, list[float]] = {}
    response: dict[str, list[float]] = {}
    category_outcomes: dict[str, dict[str, dict]] = {}
    for r in assigned:
        if r.status == "Completed" and r.updated_at is not None:
            resolution.setdefault(r.assigned_driver, []).append(hours_between(r.created_at, r.updated_at))
        first_assigned = r.first_entry("Assigned")
        if first_assigned is not None:
            response.setdefault(r.assigned_driver, []).append(hours_between(r.created_at, first_assigned.timestamp))
        outcome = category_outcomes.setdefault(r.assigned_driver, {
            category: {"total": 0, "completed": 0} for category in VALID_CATEGORIES
        })[r.category]
        outcome["total"] += 1
        if r.status == "Completed":
            outcome["completed"] += 1

    out = []
    for driver in sorted(by_status.index, key=str):
        counts = by_status.loc[driver]
        out.append({
            "driverId": driver,
            "assignedReports": int(counts.sum()),
            "completedReports": int(counts["Completed"]),
            "rejectedReports": int(counts["Rejected"]),
            "inProgressReports": int(counts["In Progress"]),
            "pendingReports": int(counts["Pending"]),
            "categoryCounts": {c: int(v) for c, v in by_category.loc[driver].items()},
            "categoryOutcomes": category_outcomes[driver],
            "resolutionTimes": resolution.get(driver, []),
            "responseTimes": response.get(driver, []),
        })
    return out


# ---------------------------------------------------------------------------
# Per-driver metrics
# ---------------------------------------------------------------------------
def calculate_workload_distribution(category_counts: Mapping[str, int], assigned: int) -> dict:
    """Category shares and how evenly they are spread (100 = even thirds).

    balance = max(0, 100 - 3 * mean |share - 100/3|), computed on the
    unrounded shares; the reported distribution is rounded.
    """
    if assigned == 0:
        return {"categoryDistribution": {c: 0 for c in VALID_CATEGORIES}, "balance": 100}

    shares = {c: category_counts.get(c, 0) / assigned * 100 for c in VALID_CATEGORIES}
    expected = 100 / len(VALID_CATEGORIES)
    mean_deviation = sum(abs(s - expected) for s in shares.values()) / len(shares)
    return {
        "categoryDistribution": {c: round_half_up(s) for c, s in shares.items()},
        "balance": max(0, round_half_up(100 - WORKLOAD_BALANCE_SCALE * mean_deviation)),
    }


def productivity_score(completed: int, assigned: int) -> int:
    completion = completed / assigned * 100 if assigned else 0
    volume = min(100, assigned / PRODUCTIVITY_VOLUME_TARGET * 100)
    score = PRODUCTIVITY_WEIGHTS["completion"] * completion + PRODUCTIVITY_WEIGHTS["volume"] * volume
    return min(100, round_half_up(score))


def consistency_score(resolution_variance: float) -> int:
    if resolution_variance > 0:
        return max(0, min(100, round_half_up(100 - resolution_variance / CONSISTENCY_VARIANCE_DIVISOR)))
    return 100


def assignment_accuracy(completed: int, in_progress: int, assigned: int) -> int:
    """Share of assignments that turned into active work (not rejected/idle)."""
    if assigned == 0:
        return 100
    return pct(completed + in_progress, assigned)


def process_driver_performance(
    stat: Mapping[str, Any],
    period: DateRange | None = None,
    window_days: int = REPORTS_PER_DAY_WINDOW_DAYS,
) -> dict:
    """Turn raw driver counts into the performance record.

    A metric that faults is zeroed and named in ``degradedMetrics``; its
    siblings are still computed.
    """
    driver_id = stat["driverId"]
    assigned = stat.get("assignedReports", 0)
    completed = stat.get("completedReports", 0)
    rejected = stat.get("rejectedReports", 0)
    in_progress = stat.get("inProgressReports", 0)

    m = MetricSet(driver_id=driver_id)
    m.compute("completionRate", lambda: pct(completed, assigned))
    m.compute("rejectionRate", lambda: pct(rejected, assigned))
    m.compute("inProgressRate", lambda: pct(in_progress, assigned))

    times = [t for t in stat.get("resolutionTimes", []) if t is not None and t > 0]
    resolution = m.compute("resolutionStats", lambda: stats.summarize(times), stats.summarize([]))

    workload = m.compute(
        "workload",
        lambda: calculate_workload_distribution(stat.get("categoryCounts", {}), assigned),
        {"categoryDistribution": {c: 0 for c in VALID_CATEGORIES}, "balance": 0},
    )
    m.compute("reportsPerDay", lambda: round2(assigned / window_days))
    m.compute("productivityScore", lambda: productivity_score(completed, assigned))
    m.compute("consistencyScore", lambda: consistency_score(resolution["variance"]))
    m.compute("assignmentAccuracy", lambda: assignment_accuracy(completed, in_progress, assigned))

    return {
        "driverId": driver_id,
        "assignedReports": assigned,
        "completedReports": completed,
        "rejectedReports": rejected,
        "inProgressReports": in_progress,
        "pendingReports": stat.get("pendingReports", 0),
        "completionRate": m.values["completionRate"],
        "rejectionRate": m.values["rejectionRate"],
        "inProgressRate": m.values["inProgressRate"],
        "averageResolutionTime": resolution["average"],
        "medianResolutionTime": resolution["median"],
        "minResolutionTime": resolution["min"],
        "maxResolutionTime": resolution["max"],
        "resolutionTimeVariance": resolution["variance"],
        "categoryDistribution": workload["categoryDistribution"],
        "workloadBalance": workload["balance"],
        "reportsPerDay": m.values["reportsPerDay"],
        "productivityScore": m.values["productivityScore"],
        "consistencyScore": m.values["consistencyScore"],
        "assignmentAccuracy": m.values["assignmentAccuracy"],
        "period": period.to_dict() if period else None,
        "degradedMetrics": m.degraded,
    }


# ---------------------------------------------------------------------------
# Benchmarks
# ---------------------------------------------------------------------------
def calculate_performance_benchmarks(metrics: list[dict]) -> dict:
    """Population baselines; resolution time uses best25 (lower is better)."""
    def column(key: str) -> list[float]:
        return [d.get(key, 0) for d in metrics]

    resolution = [t for t in column("averageResolutionTime") if t > 0]

    def higher_better(values: list[float]) -> dict:
        return {
            "average": stats.average(values),
            "median": stats.median(values),
            "top25": stats.percentile(values, TOP_QUARTILE_PERCENTILE),
        }

    return {
        "completionRate": higher_better(column("completionRate")),
        "resolutionTime": {
            "average": stats.average(resolution),
            "median": stats.median(resolution),
            "best25": stats.percentile(resolution, BEST_QUARTILE_PERCENTILE),
        },
        "productivity": higher_better(column("productivityScore")),
        "consistency": higher_better(column("consistencyScore")),
    }


def empty_driver_metrics(period: DateRange | None = None) -> dict:
    return {
        "driverCount": 0,
        "metrics": [],
        "benchmarks": calculate_performance_benchmarks([]),
        "summary": {
            "totalAssigned": 0,
            "totalCompleted": 0,
            "averageCompletionRate": 0,
            "averageResolutionTime": 0,
        },
        "period": period.to_dict() if period else None,
        "degraded": False,
    }


def calculate_driver_metrics(
    reports: Iterable | None,
    date_range: Any,
    driver_id: str | None = None,
    now: datetime | None = None,
    window_days: int = REPORTS_PER_DAY_WINDOW_DAYS,
) -> dict:
    """Performance records for every driver (or one) plus system benchmarks.

    Returns
    -------
    {"driverCount", "metrics": [driver record, ...], "benchmarks",
     "summary", "period", "dataQuality", "degraded"}
    """
    rng = parse_date_range(date_range)
    try:
        typed, bookkeeping = ensure_typed(reports, now)
        scoped = apply_filters(typed, rng, {"assignedDriver": driver_id} if driver_id else None)
        metrics = [process_driver_performance(stat, rng, window_days) for stat in aggregate_driver_stats(scoped)]
    except Exception:
        logger.exception("Driver metrics failed for range %s driver %s", rng.to_dict(), driver_id)
        result = empty_driver_metrics(rng)
        result["degraded"] = True
        return result

    result = empty_driver_metrics(rng)
    result.update({
        "driverCount": len(metrics),
        "metrics": metrics,
        "benchmarks": calculate_performance_benchmarks(metrics),
        "summary": {
            "totalAssigned": sum(d["assignedReports"] for d in metrics),
            "totalCompleted": sum(d["completedReports"] for d in metrics),
            "averageCompletionRate": round_half_up(stats.average([d["completionRate"] for d in metrics])),
            "averageResolutionTime": round_half_up(stats.average([d["averageResolutionTime"] for d in metrics])),
        },
        "dataQuality": bookkeeping,
        "degraded": any(d["degradedMetrics"] for d in metrics),
    })
    logger.info("Computed performance for %d driver(s)", len(metrics))
    return result


# ---------------------------------------------------------------------------
# Ranking and peer comparison
# ---------------------------------------------------------------------------
def calculate_driver_rankings(target: Mapping, all_drivers: list[Mapping]) -> dict:
    """1-based rank and percentile per metric.

    Ties share the best rank. Resolution time ranks ascending over drivers
    with a positive time; a driver without one gets rank 0, percentile 0.
    """
    rankings = {}
    for key, (name, higher_is_better) in RANKED_METRICS.items():
        values = [d.get(key, 0) for d in all_drivers]
        if not higher_is_better:
            values = [v for v in values if v > 0]
        ordered = sorted(values, reverse=higher_is_better)
        value = target.get(key, 0)
        if value not in ordered:
            rankings[name] = {"rank": 0, "percentile": 0, "outOf": len(ordered)}
            continue
        rank = ordered.index(value) + 1
        rankings[name] = {
            "rank": rank,
            "percentile": round_half_up((1 - (rank - 1) / len(ordered)) * 100),
            "outOf": len(ordered),
        }
    return rankings


def calculate_performance_gap(actual: float | None, benchmark: float | None) -> dict:
    """gap = actual - benchmark, with percentage of the benchmark.

    Callers pass (benchmark, actual) for lower-is-better metrics. A zero or
    missing side means there is nothing to compare: status "unknown".
    """
    if not actual or not benchmark:
        return {"gap": 0, "percentage": 0, "status": "unknown"}
    gap = actual - benchmark
    if gap > 0:
        status = "above"
    elif gap < 0:
        status = "below"
    else:
        status = "equal"
    return {
        "gap": round2(gap),
        "percentage": round_half_up(gap / benchmark * 100),
        "status": status,
    }


def generate_peer_comparison(driver: Mapping, benchmarks: Mapping) -> dict:
    def against(level: str, best_resolution: str) -> dict:
        return {
            "completionRate": calculate_performance_gap(
                driver["completionRate"], benchmarks["completionRate"][level]),
            # inverted: a shorter resolution time is a positive gap
            "resolutionTime": calculate_performance_gap(
                benchmarks["resolutionTime"][best_resolution],
                driver["averageResolutionTime"]),
            "productivity": calculate_performance_gap(
                driver["productivityScore"], benchmarks["productivity"][level]),
            "consistency": calculate_performance_gap(
                driver["consistencyScore"], benchmarks["consistency"][level]),
        }

    return {
        "vsSystemAverage": against("average", "average"),
        "vsTop25": against("top25", "best25"),
        "insights": generate_performance_insights(driver, benchmarks),
    }


def generate_performance_insights(driver: Mapping, benchmarks: Mapping) -> list[dict]:
    insights = []
    completion = benchmarks["completionRate"]
    if driver["completionRate"] < completion["average"]:
        insights.append({
            "type": "improvement",
            "metric": "completion_rate",
            "message": f"Completion rate is {round_half_up(completion['average'] - driver['completionRate'])}% below system average",
            "priority": "high",
        })
    elif driver["completionRate"] >= completion["top25"]:
        insights.append({
            "type": "strength",
            "metric": "completion_rate",
            "message": "Completion rate is in the top 25% of all drivers",
            "priority": "positive",
        })

    resolution = benchmarks["resolutionTime"]
    avg_time = driver["averageResolutionTime"]
    if avg_time > 0 and avg_time > resolution["average"]:
        insights.append({
            "type": "improvement",
            "metric": "resolution_time",
            "message": f"Resolution time is {round_half_up(avg_time - resolution['average'])} hours above average",
            "priority": "medium",
        })
    elif 0 < avg_time <= resolution["best25"]:
        insights.append({
            "type": "strength",
            "metric": "resolution_time",
            "message": "Resolution time is in the fastest 25% of all drivers",
            "priority": "positive",
        })

    if driver["productivityScore"] < benchmarks["productivity"]["average"]:
        insights.append({
            "type": "improvement",
            "metric": "productivity",
            "message": f"Productivity score is {round_half_up(benchmarks['productivity']['average'] - driver['productivityScore'])} points below average",
            "priority": "medium",
        })

    if driver["consistencyScore"] < benchmarks["consistency"]["average"]:
        insights.append({
            "type": "improvement",
            "metric": "consistency",
            "message": "Performance consistency could be improved for more predictable results",
            "priority": "low",
        })

    if driver["workloadBalance"] < WORKLOAD_BALANCE_INSIGHT_THRESHOLD:
        insights.append({
            "type": "observation",
            "metric": "workload_balance",
            "message": "Workload is concentrated in specific incident categories",
            "priority": "info",
        })
    return insights


def get_driver_performance_ranking(
    reports: Iterable | None,
    driver_id: str,
    date_range: Any,
    now: datetime | None = None,
) -> dict:
    """Ranking and peer comparison of one driver against all drivers.

    Raises
    ------
    LookupError if the driver has no assigned reports in the range.
    """
    all_metrics = calculate_driver_metrics(reports, date_range, now=now)
    target = next((d for d in all_metrics["metrics"] if str(d["driverId"]) == str(driver_id)), None)
    if target is None:
        raise LookupError(f"Driver {driver_id} not found in performance data")

    return {
        "driverId": str(driver_id),
        "totalDrivers": all_metrics["driverCount"],
        "rankings": calculate_driver_rankings(target, all_metrics["metrics"]),
        "peerComparison": generate_peer_comparison(target, all_metrics["benchmarks"]),
        "performanceMetrics": target,
        "benchmarks": all_metrics["benchmarks"],
    }


# ---------------------------------------------------------------------------
# Assignment tracking
# ---------------------------------------------------------------------------
def assignment_efficiency_score(accuracy: float, completion: float, response_hours: float) -> int:
    """Weighted composite of accuracy, completion and response speed (0-100)."""
    if response_hours > 0:
        response_score = max(0.0, 100 - response_hours / ASSIGNMENT_RESPONSE_CAP_HOURS * 100)
    else:
        response_score = 100.0
    weights = ASSIGNMENT_EFFICIENCY_WEIGHTS
    return round_half_up(
        accuracy * weights["accuracy"]
        + completion * weights["completion"]
        + response_score * weights["response_time"]
    )


def process_assignment_tracking(stat: Mapping[str, Any], period: DateRange | None = None) -> dict:
    total = stat.get("assignedReports", 0)
    completed = stat.get("completedReports", 0)
    response = stats.summarize([t for t in stat.get("responseTimes", []) if t is not None and t >= 0])

    m = MetricSet(driver_id=stat["driverId"], operation="assignment_tracking")
    accuracy = m.compute(
        "assignmentAccuracy",
        lambda: assignment_accuracy(completed, stat.get("inProgressReports", 0), total),
    )
    completion = m.compute("completionRate", lambda: pct(completed, total))
    m.compute("rejectionRate", lambda: pct(stat.get("rejectedReports", 0), total))
    m.compute(
        "categoryPerformance",
        lambda: {
            category: {**outcome, "rate": pct(outcome["completed"], outcome["total"])}
            for category, outcome in stat["categoryOutcomes"].items()
        },
        {category: {"total": 0, "completed": 0, "rate": 0} for category in VALID_CATEGORIES},
    )
    m.compute("efficiencyScore", lambda: assignment_efficiency_score(accuracy, completion, response["average"]))

    return {
        "driverId": stat["driverId"],
        "totalAssignments": total,
        "completedAssignments": completed,
        "rejectedAssignments": stat.get("rejectedReports", 0),
        "inProgressAssignments": stat.get("inProgressReports", 0),
        "pendingAssignments": stat.get("pendingReports", 0),
        "assignmentAccuracy": accuracy,
        "completionRate": completion,
        "rejectionRate": m.values["rejectionRate"],
        "averageResponseTime": response["average"],
        "medianResponseTime": response["median"],
        "categoryPerformance": m.values["categoryPerformance"],
        "efficiencyScore": m.values["efficiencyScore"],
        "period": period.to_dict() if period else None,
        "degradedMetrics": m.degraded,
    }


def calculate_system_assignment_metrics(tracking: list[dict]) -> dict:
    if not tracking:
        return {
            "totalAssignments": 0,
            "systemAccuracy": 0,
            "systemCompletionRate": 0,
            "averageResponseTime": 0,
            "efficiencyDistribution": {"high": 0, "medium": 0, "low": 0},
        }
    total = sum(d["totalAssignments"] for d in tracking)
    completed = sum(d["completedAssignments"] for d in tracking)
    rejected = sum(d["rejectedAssignments"] for d in tracking)
    scores = [d["efficiencyScore"] for d in tracking]
    return {
        "totalAssignments": total,
        "systemAccuracy": pct(total - rejected, total) if total else 100,
        "systemCompletionRate": pct(completed, total),
        "averageResponseTime": stats.average([d["averageResponseTime"] for d in tracking if d["averageResponseTime"] > 0]),
        "efficiencyDistribution": {
            "high": sum(1 for s in scores if s >= EFFICIENCY_BANDS["high"]),
            "medium": sum(1 for s in scores if EFFICIENCY_BANDS["medium"] <= s < EFFICIENCY_BANDS["high"]),
            "low": sum(1 for s in scores if s < EFFICIENCY_BANDS["medium"]),
        },
    }


def calculate_assignment_tracking(
    reports: Iterable | None,
    date_range: Any,
    driver_id: str | None = None,
    now: datetime | None = None,
) -> dict:
    """Assignment outcomes and response times per driver, plus system metrics."""
    rng = parse_date_range(date_range)
    try:
        typed, _ = ensure_typed(reports, now)
        scoped = apply_filters(typed, rng, {"assignedDriver": driver_id} if driver_id else None)
        tracking = [process_assignment_tracking(stat, rng) for stat in aggregate_driver_stats(scoped)]
        system = calculate_system_assignment_metrics(tracking)
    except Exception:
        logger.exception("Assignment tracking failed for range %s driver %s", rng.to_dict(), driver_id)
        return {
            "driverCount": 0,
            "assignmentTracking": [],
            "systemMetrics": calculate_system_assignment_metrics([]),
            "period": rng.to_dict(),
            "degraded": True,
        }
    return {
        "driverCount": len(tracking),
        "assignmentTracking": tracking,
        "systemMetrics": system,
        "period": rng.to_dict(),
        "degraded": any(d["degradedMetrics"] for d in tracking),
    }
