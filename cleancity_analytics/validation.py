"""
Record validation: the single boundary between raw report documents and
typed ``ReportRecord`` values.

Hard errors exclude a record; warnings keep it and note reduced confidence.
A bad record is never an exception here: it becomes an exclusion with a
reason code so the rest of the batch is still analysed.
"""

import logging
import re
from collections.abc import Mapping
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable

from pydantic import ValidationError

from .config import (
    FILTER_ALL,
    LATITUDE_RANGE,
    LONGITUDE_RANGE,
    PLAUSIBLE_HISTORY_YEARS,
    VALID_CATEGORIES,
    VALID_STATUSES,
)
from .errors import InputValidationError
from .models import DateRange, ReportRecord, StatusHistoryEntry, ValidationResult
from .utils import normalise_timestamp, pct, safe_float

logger = logging.getLogger(__name__)

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_FILTER_KEYS = ("category", "status", "assignedDriver")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Date ranges and filters (caller input: raise on error)
# ---------------------------------------------------------------------------
def parse_date_range(value: Any) -> DateRange:
    """Parse ``{"startDate": ..., "endDate": ...}`` into a ``DateRange``.

    A date-only endDate ("2024-03-31") covers that whole day.

    Raises
    ------
    InputValidationError if a bound is missing or unparseable, or if
    start is after end.
    """
    if isinstance(value, DateRange):
        return value
    if not isinstance(value, Mapping):
        raise InputValidationError("Invalid date range: startDate and endDate are required")

    raw_start = value.get("startDate", value.get("start_date"))
    raw_end = value.get("endDate", value.get("end_date"))
    if raw_start in (None, "") or raw_end in (None, ""):
        raise InputValidationError("Invalid date range: startDate and endDate are required")

    if isinstance(raw_start, date) and not isinstance(raw_start, datetime):
        raw_start = datetime(raw_start.year, raw_start.month, raw_start.day)
    end_is_day = _is_date_only(raw_end)
    if isinstance(raw_end, date) and not isinstance(raw_end, datetime):
        raw_end = datetime(raw_end.year, raw_end.month, raw_end.day)

    start = normalise_timestamp(raw_start)
    end = normalise_timestamp(raw_end)
    if start is None or end is None:
        raise InputValidationError(
            f"Invalid date format in date range: {raw_start!r} .. {raw_end!r}"
        )
    if end_is_day:
        end = end + timedelta(days=1) - timedelta(milliseconds=1)
    if start > end:
        raise InputValidationError("Start date cannot be after end date")

    return DateRange(start_date=start, end_date=end)


def _is_date_only(val: Any) -> bool:
    if isinstance(val, str):
        return bool(_DATE_ONLY.match(val.strip()))
    return isinstance(val, date) and not isinstance(val, datetime)


def normalise_filters(filters: Mapping | None) -> dict[str, str]:
    """Drop empty and "all" filter values; reject unknown category/status."""
    if not filters:
        return {}
    out: dict[str, str] = {}
    for key in _FILTER_KEYS:
        val = filters.get(key)
        if val in (None, "", FILTER_ALL):
            continue
        val = str(val)
        if key == "category" and val not in VALID_CATEGORIES:
            raise InputValidationError(f"Unknown category filter: {val!r}")
        if key == "status" and val not in VALID_STATUSES:
            raise InputValidationError(f"Unknown status filter: {val!r}")
        out[key] = val
    return out


def apply_filters(
    reports: Iterable[ReportRecord],
    date_range: DateRange | None = None,
    filters: Mapping | None = None,
) -> list[ReportRecord]:
    """Keep typed reports created inside the range and matching the filters."""
    active = normalise_filters(filters)
    kept = []
    for report in reports:
        if date_range is not None and not date_range.contains(report.created_at):
            continue
        if "category" in active and report.category != active["category"]:
            continue
        if "status" in active and report.status != active["status"]:
            continue
        if "assignedDriver" in active and report.assigned_driver != active["assignedDriver"]:
            continue
        kept.append(report)
    return kept


# ---------------------------------------------------------------------------
# Per-record validation (data noise: never raise)
# ---------------------------------------------------------------------------
def _blank(val: Any) -> bool:
    return val is None or (isinstance(val, str) and not val.strip())


def validate_report(
    raw: Any,
    seen_ids: set[str] | None = None,
    now: datetime | None = None,
) -> ValidationResult:
    """Validate one raw report and build its typed record.

    Parameters
    ----------
    raw : Report document (dict). ``_id`` is accepted for ``id``.
    seen_ids : Ids already seen in the batch; pass the same set for every
        record of a batch to detect duplicates (first occurrence wins).
    now : Reference time for future/implausible-date warnings.

    Returns
    -------
    ValidationResult with ``record`` set when the record is valid.
    """
    result = ValidationResult()
    if not isinstance(raw, Mapping):
        result.add_error("validationErrors", f"Record is not a mapping ({type(raw).__name__})")
        return result

    now = now or utcnow()
    raw_id = raw.get("id", raw.get("_id"))
    record_id = None if _blank(raw_id) else str(raw_id)

    if record_id is not None and seen_ids is not None:
        if record_id in seen_ids:
            result.add_error("duplicates", f"Duplicate report id {record_id}")
            return result
        seen_ids.add(record_id)

    missing = [
        name for name, val in (
            ("id", record_id),
            ("createdAt", raw.get("createdAt")),
            ("category", raw.get("category")),
            ("status", raw.get("status")),
        ) if _blank(val)
    ]
    if missing:
        result.add_error("missingData", f"Missing required field(s): {', '.join(missing)}")

    category = raw.get("category")
    if not _blank(category) and category not in VALID_CATEGORIES:
        result.add_error("invalidCategory", f"Invalid category: {category!r}")

    status = raw.get("status")
    if not _blank(status) and status not in VALID_STATUSES:
        result.add_error("invalidStatus", f"Invalid status: {status!r}")

    created_at = _check_dates(raw, result, now)
    latitude, longitude = _check_coordinates(raw, result)
    history = _check_history(raw.get("statusHistory"), result)

    if not result.is_valid:
        return result

    driver = raw.get("assignedDriver")
    try:
        result.record = ReportRecord(
            id=record_id,
            category=category,
            status=status,
            created_at=created_at,
            updated_at=normalise_timestamp(raw.get("updatedAt")),
            latitude=latitude,
            longitude=longitude,
            assigned_driver=None if _blank(driver) else str(driver),
            status_history=tuple(history),
        )
    except ValidationError as exc:
        result.add_error("validationErrors", f"Record could not be typed: {exc.error_count()} error(s)")
    return result


def _check_dates(raw: Mapping, result: ValidationResult, now: datetime) -> datetime | None:
    raw_created = raw.get("createdAt")
    if _blank(raw_created):
        return None
    created_at = normalise_timestamp(raw_created)
    if created_at is None:
        result.add_error("invalidDates", f"Unparseable createdAt: {raw_created!r}")
        return None

    raw_updated = raw.get("updatedAt")
    if not _blank(raw_updated):
        updated_at = normalise_timestamp(raw_updated)
        if updated_at is None:
            result.add_error("invalidDates", f"Unparseable updatedAt: {raw_updated!r}")
        elif updated_at < created_at:
            result.add_error("invalidDates", "updatedAt precedes createdAt")

    if created_at > now:
        result.add_warning("createdAt is in the future")
    elif created_at < now - timedelta(days=365 * PLAUSIBLE_HISTORY_YEARS):
        result.add_warning(f"createdAt is more than {PLAUSIBLE_HISTORY_YEARS} years old")
    return created_at


def _check_coordinates(raw: Mapping, result: ValidationResult) -> tuple[float | None, float | None]:
    """Coordinates are optional; bad ones are dropped with a warning."""
    raw_lat, raw_lng = raw.get("latitude"), raw.get("longitude")
    if raw_lat is None and raw_lng is None:
        return None, None
    if raw_lat is None or raw_lng is None:
        result.add_warning("Only one of latitude/longitude is present", "invalidCoordinates")
        return None, None

    lat, lng = safe_float(raw_lat), safe_float(raw_lng)
    if (
        lat is None or lng is None
        or not LATITUDE_RANGE[0] <= lat <= LATITUDE_RANGE[1]
        or not LONGITUDE_RANGE[0] <= lng <= LONGITUDE_RANGE[1]
    ):
        result.add_warning(f"Coordinates out of range: ({raw_lat!r}, {raw_lng!r})", "invalidCoordinates")
        return None, None
    return lat, lng


def _check_history(raw_history: Any, result: ValidationResult) -> list[StatusHistoryEntry]:
    """Keep well-formed history entries, in their original order."""
    if raw_history is None:
        return []
    if not isinstance(raw_history, (list, tuple)):
        result.add_warning("statusHistory is not a list")
        return []

    entries: list[StatusHistoryEntry] = []
    for i, item in enumerate(raw_history):
        if not isinstance(item, Mapping):
            result.add_warning(f"statusHistory[{i}] is not a mapping")
            continue
        status = item.get("status")
        ts = normalise_timestamp(item.get("timestamp"))
        if _blank(status):
            result.add_warning(f"statusHistory[{i}] has no status")
            continue
        if status not in VALID_STATUSES:
            result.add_warning(f"statusHistory[{i}] has unknown status {status!r}")
            continue
        if ts is None:
            result.add_warning(f"statusHistory[{i}] has no valid timestamp")
            continue
        changed_by, notes = item.get("changedBy"), item.get("notes")
        entries.append(StatusHistoryEntry(
            status=status,
            timestamp=ts,
            changed_by=None if changed_by is None else str(changed_by),
            notes=None if notes is None else str(notes),
        ))

    for i in range(1, len(entries)):
        if entries[i].timestamp < entries[i - 1].timestamp:
            result.add_warning(f"statusHistory timestamps decrease at entry {i}")
            break
    return entries


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------
def validate_batch(records: Iterable | None, now: datetime | None = None) -> list[ValidationResult]:
    """Validate a batch with shared duplicate detection."""
    now = now or utcnow()
    seen: set[str] = set()
    return [validate_report(raw, seen, now) for raw in (records or [])]


def exclude_invalid_records(records: Iterable | None, now: datetime | None = None) -> dict:
    """Split a batch into typed valid reports and exclusion bookkeeping.

    Returns
    -------
    {"validReports": [ReportRecord, ...], "excludedCount": int,
     "dataQualityScore": int (100 on an empty batch),
     "exclusionDetails": [{"index", "id", "errors", "reasons"}, ...]}
    """
    records = list(records or [])
    results = validate_batch(records, now)

    valid = []
    details = []
    for index, (raw, res) in enumerate(zip(records, results)):
        if res.is_valid:
            valid.append(res.record)
            continue
        raw_id = raw.get("id", raw.get("_id")) if isinstance(raw, Mapping) else None
        details.append({
            "index": index,
            "id": None if raw_id is None else str(raw_id),
            "errors": list(res.errors),
            "reasons": list(res.reasons),
        })

    total = len(records)
    excluded = total - len(valid)
    if excluded:
        logger.info("Excluded %d invalid records from %d total records", excluded, total)

    return {
        "validReports": valid,
        "excludedCount": excluded,
        "dataQualityScore": pct(len(valid), total) if total else 100,
        "exclusionDetails": details,
    }


def ensure_typed(reports: Iterable | None, now: datetime | None = None) -> tuple[list[ReportRecord], dict]:
    """Accept raw dicts or typed records; return typed reports and bookkeeping.

    Typed ``ReportRecord`` inputs are taken as already valid.
    """
    reports = list(reports or [])
    if all(isinstance(r, ReportRecord) for r in reports):
        return reports, {"totalRecords": len(reports), "excludedCount": 0, "dataQualityScore": 100}
    raw = [r.model_dump(by_alias=True) if isinstance(r, ReportRecord) else r for r in reports]
    split = exclude_invalid_records(raw, now)
    return split["validReports"], {
        "totalRecords": len(raw),
        "excludedCount": split["excludedCount"],
        "dataQualityScore": split["dataQualityScore"],
    }
