"""
Workflow timeline: per-report status events, bucketed by hour/day/week,
with workflow efficiency against the target duration.
"""

import logging
from datetime import datetime
from typing import Iterable

import pandas as pd

from .bottlenecks import identify_bottlenecks
from .config import (
    DEFAULT_TIMELINE_GRAIN,
    DEFAULT_TIMELINE_MAX_REPORTS,
    FILTER_ALL,
    TIMELINE_GRAINS,
    VALID_CATEGORIES,
    WORKFLOW_TARGET_HOURS,
)
from .errors import InputValidationError
from .metrics import MetricSet
from .models import ReportRecord
from . import stats
from .utils import hours_between, pct, round2, to_iso
from .validation import ensure_typed, normalise_filters, utcnow

logger = logging.getLogger(__name__)


def build_report_timeline(report: ReportRecord, now: datetime) -> tuple[dict, list[dict]]:
    """Ordered (status, start, end, duration, isActive) events for one report.

    Returns the timeline dict and the raw events (with datetimes) for
    aggregation.
    """
    history = report.status_history
    events = []
    raw_events = []
    total = 0.0
    for i, entry in enumerate(history):
        is_active = i + 1 == len(history)
        end = report.history_end(now) if is_active else history[i + 1].timestamp
        duration = hours_between(entry.timestamp, end)
        total += duration
        events.append({
            "status": entry.status,
            "startTime": to_iso(entry.timestamp),
            "endTime": to_iso(end),
            "duration": round2(duration),
            "isActive": is_active,
        })
        raw_events.append({
            "reportId": report.id,
            "category": report.category,
            "status": entry.status,
            "start": entry.timestamp,
            "duration": duration,
        })
    timeline = {
        "reportId": report.id,
        "category": report.category,
        "totalDuration": round2(total),
        "events": events,
    }
    return timeline, raw_events


def bucket_keys(starts: pd.Series, group_by: str) -> pd.Series:
    """ISO bucket key per start time.

    hour -> "2024-03-01T14:00:00Z", day -> "2024-03-01",
    week -> ISO week start (Monday) "2024-02-26".
    """
    starts = pd.to_datetime(starts, utc=True)
    if group_by == "hour":
        return starts.dt.floor("h").dt.strftime("%Y-%m-%dT%H:00:00Z")
    if group_by == "week":
        monday = starts.dt.normalize() - pd.to_timedelta(starts.dt.weekday, unit="D")
        return monday.dt.strftime("%Y-%m-%d")
    return starts.dt.strftime("%Y-%m-%d")


def aggregate_timeline_by_period(events: list[dict], group_by: str = DEFAULT_TIMELINE_GRAIN) -> list[dict]:
    """Per-bucket status counts, category counts and running average duration."""
    if group_by not in TIMELINE_GRAINS:
        raise InputValidationError(f"group_by must be one of {TIMELINE_GRAINS}, got {group_by!r}")
    if not events:
        return []

    keys = bucket_keys(pd.Series([e["start"] for e in events]), group_by)
    buckets: dict[str, dict] = {}
    for key, event in zip(keys, events):
        bucket = buckets.setdefault(key, {
            "period": key,
            "statusCounts": {},
            "categories": {},
            "totalEvents": 0,
            "averageDuration": 0.0,
        })
        bucket["totalEvents"] += 1
        n = bucket["totalEvents"]
        bucket["statusCounts"][event["status"]] = bucket["statusCounts"].get(event["status"], 0) + 1
        bucket["categories"][event["category"]] = bucket["categories"].get(event["category"], 0) + 1
        # running mean, no rescan of the bucket
        bucket["averageDuration"] += (event["duration"] - bucket["averageDuration"]) / n

    out = []
    for key in sorted(buckets):
        bucket = buckets[key]
        bucket["averageDuration"] = round2(bucket["averageDuration"])
        out.append(bucket)
    return out


def calculate_workflow_efficiency(
    timelines: list[dict],
    target_hours: float = WORKFLOW_TARGET_HOURS,
) -> dict:
    """Share of workflows finishing within ``target_hours``, overall and per category."""
    if not timelines:
        return {
            "averageWorkflowDuration": 0,
            "medianWorkflowDuration": 0,
            "efficiencyScore": 0,
            "completionRate": 0,
            "categoryEfficiency": {},
            "totalWorkflows": 0,
            "efficientWorkflows": 0,
        }

    def completed(timeline: dict) -> bool:
        return any(event["status"] == "Completed" for event in timeline["events"])

    durations = [t["totalDuration"] for t in timelines]
    efficient = sum(1 for d in durations if d <= target_hours)

    category_efficiency = {}
    for category in VALID_CATEGORIES:
        subset = [t for t in timelines if t["category"] == category]
        if not subset:
            continue
        category_durations = [t["totalDuration"] for t in subset]
        category_efficiency[category] = {
            "averageDuration": stats.average(category_durations),
            "medianDuration": round2(stats.median(category_durations)),
            "count": len(subset),
            "completionRate": pct(sum(1 for t in subset if completed(t)), len(subset)),
        }

    return {
        "averageWorkflowDuration": stats.average(durations),
        "medianWorkflowDuration": round2(stats.median(durations)),
        "efficiencyScore": pct(efficient, len(durations)),
        "completionRate": pct(sum(1 for t in timelines if completed(t)), len(timelines)),
        "categoryEfficiency": category_efficiency,
        "totalWorkflows": len(timelines),
        "efficientWorkflows": efficient,
    }


def empty_timeline_result(group_by: str = DEFAULT_TIMELINE_GRAIN) -> dict:
    return {
        "reportTimelines": [],
        "aggregatedTimeline": [],
        "bottlenecks": [],
        "efficiencyMetrics": calculate_workflow_efficiency([]),
        "totalReports": 0,
        "groupBy": group_by,
        "timeRange": None,
        "degradedMetrics": [],
        "degraded": False,
    }


def generate_workflow_timeline(
    reports: Iterable | None,
    group_by: str = DEFAULT_TIMELINE_GRAIN,
    category: str = FILTER_ALL,
    max_reports: int | None = DEFAULT_TIMELINE_MAX_REPORTS,
    now: datetime | None = None,
    target_hours: float = WORKFLOW_TARGET_HOURS,
) -> dict:
    """Timeline view of report workflows.

    Parameters
    ----------
    group_by : "hour", "day" or "week".
    category : Restrict to one category, or "all".
    max_reports : Keep only the most recently created reports; None keeps all.

    Raises
    ------
    InputValidationError for an unknown ``group_by`` or category.
    """
    if group_by not in TIMELINE_GRAINS:
        raise InputValidationError(f"group_by must be one of {TIMELINE_GRAINS}, got {group_by!r}")
    active = normalise_filters({"category": category})
    now = now or utcnow()

    try:
        typed, _ = ensure_typed(reports, now)
    except Exception:
        logger.exception("Workflow timeline failed while preparing records")
        result = empty_timeline_result(group_by)
        result["degraded"] = True
        return result

    if "category" in active:
        typed = [r for r in typed if r.category == active["category"]]
    if max_reports is not None and len(typed) > max_reports:
        typed = sorted(typed, key=lambda r: r.created_at, reverse=True)[:max_reports]

    timelines = []
    events = []
    for report in typed:
        if not report.status_history:
            continue
        timeline, raw_events = build_report_timeline(report, now)
        timelines.append(timeline)
        events.extend(raw_events)

    durations_by_status: dict[str, list[float]] = {}
    for event in events:
        if event["duration"] >= 0:
            durations_by_status.setdefault(event["status"], []).append(event["duration"])

    sections = MetricSet(operation="workflow_timeline", group_by=group_by)
    sections.compute("aggregatedTimeline", lambda: aggregate_timeline_by_period(events, group_by), [])
    sections.compute("bottlenecks", lambda: identify_bottlenecks(durations_by_status), [])
    sections.compute(
        "efficiencyMetrics",
        lambda: calculate_workflow_efficiency(timelines, target_hours),
        calculate_workflow_efficiency([]),
    )

    time_range = None
    if typed:
        time_range = {
            "start": to_iso(min(r.created_at for r in typed)),
            "end": to_iso(max(r.updated_at or r.created_at for r in typed)),
        }

    return {
        "reportTimelines": timelines,
        "aggregatedTimeline": sections.values["aggregatedTimeline"],
        "bottlenecks": sections.values["bottlenecks"],
        "efficiencyMetrics": sections.values["efficiencyMetrics"],
        "totalReports": len(typed),
        "groupBy": group_by,
        "timeRange": time_range,
        "degradedMetrics": sections.degraded,
        "degraded": bool(sections.degraded),
    }
