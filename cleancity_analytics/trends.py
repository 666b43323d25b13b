"""
Trend aggregation: daily incident counts by category, and
period-over-period change.
"""

import logging
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any, Iterable

import pandas as pd

from .config import VALID_CATEGORIES
from .models import DateRange, ReportRecord
from .validation import apply_filters, ensure_typed, normalise_filters, parse_date_range

logger = logging.getLogger(__name__)


def empty_trend_result(date_range: DateRange, filters: Mapping | None = None) -> dict:
    return {
        "dateRange": date_range.to_dict(),
        "filters": dict(filters or {}),
        "totalIncidents": 0,
        "categoryBreakdown": {category: 0 for category in VALID_CATEGORIES},
        "dailyTrends": [],
        "invariantViolations": [],
        "degraded": False,
    }


def generate_trend_data(
    reports: Iterable | None,
    date_range: Any,
    filters: Mapping | None = None,
    now: datetime | None = None,
) -> dict:
    """Daily incident counts per category for a date range.

    Parameters
    ----------
    reports : Raw report dicts or typed ``ReportRecord``s.
    date_range : ``{"startDate", "endDate"}`` or a ``DateRange``.
    filters : Optional ``{"category", "status"}``; "all" means unfiltered.

    Returns
    -------
    {
        "dateRange": {"startDate", "endDate"},
        "totalIncidents": 42,
        "categoryBreakdown": {"recyclable": 20, "illegal_dumping": 12, "hazardous_waste": 10},
        "dailyTrends": [{"date": "2024-03-01", "total": 5, "categories": {...}}, ...],
        "dataQuality": {"totalRecords", "excludedCount", "dataQualityScore"},
        "invariantViolations": [],
        "degraded": False,
    }
    """
    rng = parse_date_range(date_range)
    active = normalise_filters(filters)
    try:
        typed, bookkeeping = ensure_typed(reports, now)
        scoped = apply_filters(typed, rng, active)
        result = _aggregate(scoped, rng, active)
        result["dataQuality"] = bookkeeping
        return result
    except Exception:
        logger.exception("Trend aggregation failed for range %s filters %s", rng.to_dict(), active)
        result = empty_trend_result(rng, active)
        result["degraded"] = True
        return result


def _aggregate(reports: list[ReportRecord], rng: DateRange, filters: dict) -> dict:
    result = empty_trend_result(rng, filters)
    if not reports:
        return result

    df = pd.DataFrame({
        "date": [r.created_at.date().isoformat() for r in reports],
        "category": [r.category for r in reports],
    })
    grouped = df.groupby(["date", "category"]).size()

    daily: dict[str, dict] = {}
    for (day, category), count in grouped.items():
        count = int(count)
        entry = daily.setdefault(day, {"date": day, "total": 0, "categories": {}})
        entry["total"] += count
        entry["categories"][category] = count
        result["categoryBreakdown"][category] = result["categoryBreakdown"].get(category, 0) + count
        result["totalIncidents"] += count

    result["dailyTrends"] = [daily[day] for day in sorted(daily)]
    result["invariantViolations"] = _check_invariants(result)
    logger.info(
        "Aggregated %d incidents over %d days", result["totalIncidents"], len(result["dailyTrends"])
    )
    return result


def _check_invariants(result: dict) -> list[dict]:
    """Per-day category counts must sum to the day total, days to the grand total."""
    violations = []
    for day in result["dailyTrends"]:
        category_sum = sum(day["categories"].values())
        if category_sum != day["total"]:
            logger.error(
                "Trend invariant broken on %s: categories sum %d != total %d",
                day["date"], category_sum, day["total"],
            )
            violations.append({"date": day["date"], "categorySum": category_sum, "total": day["total"]})
    days_sum = sum(day["total"] for day in result["dailyTrends"])
    if days_sum != result["totalIncidents"]:
        logger.error("Trend invariant broken: days sum %d != total %d", days_sum, result["totalIncidents"])
        violations.append({"date": None, "categorySum": days_sum, "total": result["totalIncidents"]})
    return violations


# ---------------------------------------------------------------------------
# Period-over-period
# ---------------------------------------------------------------------------
def calculate_percentage_change(current: Any, previous: Any) -> dict:
    """Percentage change between two periods.

    ``current``/``previous`` are counts or trend results (their
    totalIncidents is used).

    change = (cur - prev) / prev * 100 when prev > 0;
    otherwise 100 if cur > 0, else 0. trend is "stable" iff change == 0.
    """
    current_total = _count(current)
    previous_total = _count(previous)

    if previous_total > 0:
        change = round((current_total - previous_total) / previous_total * 100, 2)
    else:
        change = 100 if current_total > 0 else 0

    if change > 0:
        trend = "increase"
    elif change < 0:
        trend = "decrease"
    else:
        trend = "stable"

    return {
        "percentageChange": change,
        "trend": trend,
        "currentCount": current_total,
        "previousCount": previous_total,
    }


def _count(value: Any) -> int:
    if isinstance(value, Mapping):
        return int(value.get("totalIncidents", 0))
    return int(value or 0)


def previous_period(date_range: Any) -> DateRange:
    """The equal-length range ending just before ``date_range`` starts."""
    rng = parse_date_range(date_range)
    length = rng.end_date - rng.start_date
    end = rng.start_date - timedelta(milliseconds=1)
    return DateRange(start_date=end - length, end_date=end)


def compare_periods(
    reports: Iterable | None,
    date_range: Any,
    filters: Mapping | None = None,
    previous_reports: Iterable | None = None,
    now: datetime | None = None,
) -> dict:
    """Trend series for a range and the preceding range, plus their change.

    ``previous_reports`` defaults to ``reports`` (one batch covering both
    periods).
    """
    rng = parse_date_range(date_range)
    prev_rng = previous_period(rng)
    reports = list(reports or [])
    previous_reports = reports if previous_reports is None else list(previous_reports)

    current = generate_trend_data(reports, rng, filters, now)
    previous = generate_trend_data(previous_reports, prev_rng, filters, now)

    by_category = {
        category: calculate_percentage_change(
            current["categoryBreakdown"].get(category, 0),
            previous["categoryBreakdown"].get(category, 0),
        )
        for category in VALID_CATEGORIES
    }
    return {
        "current": current,
        "previous": previous,
        "comparison": calculate_percentage_change(current, previous),
        "categoryComparison": by_category,
        "degraded": current["degraded"] or previous["degraded"],
    }
