"""
Dashboard-ready output functions.

These are the primary entry points for an admin analytics front end. Each
one fetches the raw reports it needs from a ``ReportStore``, runs the pure
analytics over them and returns a plain dict, optionally memoised in a
cache.

Caller mistakes (bad date range, unknown filter or grain) raise
``InputValidationError``; store failures raise ``StoreFailure``. Faults
inside the analytics never propagate: the section comes back zeroed with
``degraded: True``.
"""

import asyncio
import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from .bottlenecks import detect_bottlenecks
from .cache import Cache, CacheKey, cached
from .config import DEFAULT_CACHE_TTL_SECONDS, DEFAULT_TIMELINE_GRAIN, FILTER_ALL, TIMELINE_GRAINS
from .drivers import calculate_assignment_tracking, calculate_driver_metrics, get_driver_performance_ranking
from .errors import InputValidationError, StoreFailure
from .geographic import process_geographic_distribution
from .models import DateRange
from .quality import calculate_data_quality, empty_quality_report
from .store import ReportStore
from .timeline import generate_workflow_timeline
from .trends import compare_periods, generate_trend_data, previous_period
from .validation import ensure_typed, normalise_filters, parse_date_range, utcnow
from .workflow import calculate_status_transitions, generate_status_analytics

logger = logging.getLogger(__name__)


async def fetch_reports(store: ReportStore, date_range: DateRange, filters: Mapping | None = None) -> list:
    """Fetch raw reports, wrapping any store error in ``StoreFailure``."""
    active = filters or {}
    try:
        return await store.fetch(
            date_range,
            category=active.get("category"),
            status=active.get("status"),
            assigned_driver=active.get("assignedDriver"),
        )
    except Exception as exc:
        logger.error("Report store fetch failed for %s filters %s: %s", date_range.to_dict(), dict(active), exc)
        raise StoreFailure(f"Report store fetch failed: {exc}", cause=exc) from exc


# ---------------------------------------------------------------------------
# Trends
# ---------------------------------------------------------------------------
async def get_trend_overview(
    store: ReportStore,
    date_range: Any,
    filters: Mapping | None = None,
    cache: Cache | None = None,
    now: datetime | None = None,
    ttl: float = DEFAULT_CACHE_TTL_SECONDS,
) -> dict:
    """Daily incident trends for the dashboard trend chart."""
    rng = parse_date_range(date_range)
    active = normalise_filters(filters)

    async def compute() -> dict:
        reports = await fetch_reports(store, rng, active)
        return generate_trend_data(reports, rng, active, now)

    return await cached(cache, CacheKey.build("trends", rng, active), compute, ttl)


async def get_trend_comparison(
    store: ReportStore,
    date_range: Any,
    filters: Mapping | None = None,
    cache: Cache | None = None,
    now: datetime | None = None,
    ttl: float = DEFAULT_CACHE_TTL_SECONDS,
) -> dict:
    """Current period against the preceding period of equal length."""
    rng = parse_date_range(date_range)
    active = normalise_filters(filters)

    async def compute() -> dict:
        current, previous = await asyncio.gather(
            fetch_reports(store, rng, active),
            fetch_reports(store, previous_period(rng), active),
        )
        return compare_periods(current, rng, active, previous_reports=previous, now=now)

    return await cached(cache, CacheKey.build("trend_comparison", rng, active), compute, ttl)


# ---------------------------------------------------------------------------
# Status and workflow
# ---------------------------------------------------------------------------
async def get_status_overview(
    store: ReportStore,
    date_range: Any,
    filters: Mapping | None = None,
    cache: Cache | None = None,
    now: datetime | None = None,
    ttl: float = DEFAULT_CACHE_TTL_SECONDS,
) -> dict:
    """Status distribution with transition, timing and time-in-status sections."""
    rng = parse_date_range(date_range)
    active = normalise_filters(filters)

    async def compute() -> dict:
        reports = await fetch_reports(store, rng, active)
        return generate_status_analytics(reports, rng, active, now)

    return await cached(cache, CacheKey.build("status", rng, active), compute, ttl)


async def get_workflow_overview(
    store: ReportStore,
    date_range: Any,
    filters: Mapping | None = None,
    group_by: str = DEFAULT_TIMELINE_GRAIN,
    now: datetime | None = None,
) -> dict:
    """Transitions, timeline and bottlenecks computed as independent branches.

    Each branch does its own fetch. A branch that fails (store or
    otherwise) comes back as None with its message under ``errors``; the
    other branches are unaffected.

    Returns
    -------
    {"transitions", "timeline", "bottlenecks", "errors": {branch: message},
     "dateRange", "groupBy", "degraded"}
    """
    rng = parse_date_range(date_range)
    active = normalise_filters(filters)
    if group_by not in TIMELINE_GRAINS:
        raise InputValidationError(f"group_by must be one of {TIMELINE_GRAINS}, got {group_by!r}")
    now = now or utcnow()

    async def transitions() -> dict:
        reports = await fetch_reports(store, rng, active)
        typed, _ = ensure_typed(reports, now)
        return calculate_status_transitions(typed)

    async def timeline() -> dict:
        reports = await fetch_reports(store, rng, active)
        return generate_workflow_timeline(
            reports, group_by, active.get("category", FILTER_ALL), max_reports=None, now=now,
        )

    async def bottlenecks() -> list:
        reports = await fetch_reports(store, rng, active)
        return detect_bottlenecks(reports, now)

    names = ("transitions", "timeline", "bottlenecks")
    outcomes = await asyncio.gather(transitions(), timeline(), bottlenecks(), return_exceptions=True)

    result: dict[str, Any] = {"errors": {}}
    for name, outcome in zip(names, outcomes):
        if isinstance(outcome, Exception):
            logger.error("Workflow branch '%s' failed for %s: %s", name, rng.to_dict(), outcome)
            result[name] = None
            result["errors"][name] = str(outcome)
        else:
            result[name] = outcome

    timeline_degraded = bool(result["timeline"] and result["timeline"].get("degraded"))
    result.update({
        "dateRange": rng.to_dict(),
        "groupBy": group_by,
        "degraded": bool(result["errors"]) or timeline_degraded,
    })
    return result


# ---------------------------------------------------------------------------
# Drivers
# ---------------------------------------------------------------------------
async def get_driver_overview(
    store: ReportStore,
    date_range: Any,
    driver_id: str | None = None,
    cache: Cache | None = None,
    now: datetime | None = None,
    ttl: float = DEFAULT_CACHE_TTL_SECONDS,
) -> dict:
    """Driver performance records, benchmarks and assignment tracking."""
    rng = parse_date_range(date_range)
    scope = {"assignedDriver": driver_id} if driver_id else {}

    async def compute() -> dict:
        reports = await fetch_reports(store, rng, scope)
        result = calculate_driver_metrics(reports, rng, driver_id, now)
        result["assignments"] = calculate_assignment_tracking(reports, rng, driver_id, now)
        result["degraded"] = result["degraded"] or result["assignments"]["degraded"]
        return result

    return await cached(cache, CacheKey.build("drivers", rng, scope), compute, ttl)


async def get_driver_ranking(
    store: ReportStore,
    driver_id: str,
    date_range: Any,
    now: datetime | None = None,
) -> dict:
    """Rank one driver against every driver active in the range.

    Raises
    ------
    LookupError if the driver has no assigned reports in the range.
    """
    rng = parse_date_range(date_range)
    reports = await fetch_reports(store, rng)
    return get_driver_performance_ranking(reports, driver_id, rng, now)


# ---------------------------------------------------------------------------
# Data quality and geography
# ---------------------------------------------------------------------------
async def get_data_quality(store: ReportStore, date_range: Any, now: datetime | None = None) -> dict:
    """Validation summary over every raw record fetched for the range."""
    rng = parse_date_range(date_range)
    reports = await fetch_reports(store, rng)
    try:
        result = calculate_data_quality(reports, now)
    except Exception:
        logger.exception("Data quality report failed for %s", rng.to_dict())
        result = empty_quality_report()
        result["degraded"] = True
        return result
    result["dateRange"] = rng.to_dict()
    result["degraded"] = False
    return result


async def get_geographic_overview(
    store: ReportStore,
    date_range: Any,
    filters: Mapping | None = None,
    cache: Cache | None = None,
    now: datetime | None = None,
    ttl: float = DEFAULT_CACHE_TTL_SECONDS,
) -> dict:
    """Grid-cell incident map data."""
    rng = parse_date_range(date_range)
    active = normalise_filters(filters)

    async def compute() -> dict:
        reports = await fetch_reports(store, rng, active)
        result = process_geographic_distribution(reports, now)
        result["dateRange"] = rng.to_dict()
        return result

    return await cached(cache, CacheKey.build("geographic", rng, active), compute, ttl)
