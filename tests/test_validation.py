from datetime import datetime, timedelta, timezone

import pytest

from cleancity_analytics.errors import InputValidationError
from cleancity_analytics.utils import round_half_up, to_iso
from cleancity_analytics.validation import (
    ensure_typed,
    exclude_invalid_records,
    normalise_filters,
    parse_date_range,
    validate_batch,
    validate_report,
)

from conftest import T0


def test_valid_report_is_typed(make_report, now):
    result = validate_report(make_report(driver="d1", lat=-1.29, lng=36.82), now=now)
    assert result.is_valid
    assert result.errors == []
    record = result.record
    assert record.id == "r1"
    assert record.assigned_driver == "d1"
    assert record.created_at == T0
    assert [e.status for e in record.status_history] == ["Pending", "Completed"]


def test_updated_before_created_is_excluded(make_report, now):
    raw = make_report(updated=T0 - timedelta(hours=1))
    result = validate_report(raw, now=now)
    assert not result.is_valid
    assert "invalidDates" in result.reasons

    split = exclude_invalid_records([raw], now)
    assert split["validReports"] == []
    assert split["excludedCount"] == 1
    assert split["dataQualityScore"] == 0
    assert split["exclusionDetails"][0]["reasons"] == ["invalidDates"]


def test_missing_required_fields(make_report, now):
    raw = make_report()
    raw["category"] = None
    del raw["status"]
    result = validate_report(raw, now=now)
    assert not result.is_valid
    assert result.reasons == ["missingData"]
    assert "category" in result.errors[0] and "status" in result.errors[0]


def test_unknown_category_and_status(make_report, now):
    raw = make_report(category="glass", status="Archived")
    result = validate_report(raw, now=now)
    assert set(result.reasons) == {"invalidCategory", "invalidStatus"}


def test_unparseable_created_at(make_report, now):
    raw = make_report()
    raw["createdAt"] = "yesterday-ish"
    assert validate_report(raw, now=now).reasons == ["invalidDates"]


def test_duplicate_ids_first_occurrence_wins(make_report, now):
    results = validate_batch([make_report(id="a"), make_report(id="a"), make_report(id="b")], now)
    assert [r.is_valid for r in results] == [True, False, True]
    assert results[1].reasons == ["duplicates"]


def test_half_coordinates_are_dropped_with_warning(make_report, now):
    raw = make_report(lat=12.5)
    result = validate_report(raw, now=now)
    assert result.is_valid
    assert result.warning_reasons == ["invalidCoordinates"]
    assert result.record.latitude is None and result.record.longitude is None


def test_out_of_range_coordinates_warn(make_report, now):
    result = validate_report(make_report(lat=95.0, lng=10.0), now=now)
    assert result.is_valid
    assert not result.record.has_coordinates
    assert result.warnings


def test_future_created_at_warns(make_report, now):
    raw = make_report(created=now + timedelta(days=2))
    result = validate_report(raw, now=now)
    assert result.is_valid
    assert any("future" in w for w in result.warnings)


def test_bad_history_entries_are_dropped(make_report, now):
    raw = make_report()
    raw["statusHistory"].append({"status": "Archived", "timestamp": to_iso(T0)})
    raw["statusHistory"].append({"status": "Completed"})
    result = validate_report(raw, now=now)
    assert result.is_valid
    assert len(result.record.status_history) == 2
    assert len(result.warnings) == 2


def test_decreasing_history_is_flagged_not_rejected(make_report, now):
    raw = make_report(history=[("Pending", 5), ("Assigned", 1)], updated=T0 + timedelta(hours=6))
    result = validate_report(raw, now=now)
    assert result.is_valid
    assert any("decrease" in w for w in result.warnings)


def test_epoch_milliseconds_accepted(make_report, now):
    raw = make_report()
    raw["createdAt"] = int(T0.timestamp() * 1000)
    result = validate_report(raw, now=now)
    assert result.is_valid
    assert result.record.created_at == T0


def test_non_mapping_record(now):
    result = validate_report(["not", "a", "report"], now=now)
    assert result.reasons == ["validationErrors"]


def test_exclude_invalid_records_empty_batch():
    split = exclude_invalid_records([])
    assert split == {"validReports": [], "excludedCount": 0, "dataQualityScore": 100, "exclusionDetails": []}


def test_ensure_typed_passes_typed_records(make_report, now):
    typed, _ = ensure_typed([make_report(id="a"), make_report(id="b")], now)
    again, bookkeeping = ensure_typed(typed, now)
    assert again == typed
    assert bookkeeping == {"totalRecords": 2, "excludedCount": 0, "dataQualityScore": 100}


# ---------------------------------------------------------------------------
# Date ranges and filters
# ---------------------------------------------------------------------------
def test_parse_date_range_widens_date_only_end():
    rng = parse_date_range({"startDate": "2024-03-01", "endDate": "2024-03-31"})
    assert rng.start_date == datetime(2024, 3, 1, tzinfo=timezone.utc)
    assert rng.end_date == datetime(2024, 3, 31, 23, 59, 59, 999000, tzinfo=timezone.utc)


def test_parse_date_range_keeps_explicit_end_time():
    rng = parse_date_range({"startDate": "2024-03-01T00:00:00Z", "endDate": "2024-03-02T12:00:00Z"})
    assert rng.end_date == datetime(2024, 3, 2, 12, tzinfo=timezone.utc)


@pytest.mark.parametrize("value", [
    None,
    {},
    {"startDate": "2024-03-01"},
    {"startDate": "not a date", "endDate": "2024-03-31"},
    {"startDate": "2024-04-01", "endDate": "2024-03-01"},
])
def test_parse_date_range_rejects_bad_input(value):
    with pytest.raises(InputValidationError):
        parse_date_range(value)


def test_normalise_filters_drops_all():
    assert normalise_filters({"category": "all", "status": "Completed", "assignedDriver": ""}) == {
        "status": "Completed",
    }


def test_normalise_filters_rejects_unknown_values():
    with pytest.raises(InputValidationError):
        normalise_filters({"category": "glass"})
    with pytest.raises(ValueError):
        normalise_filters({"status": "Done"})


def test_quality_score_rounds_half_up(make_report, now):
    batch = [make_report(id="ok")] + [make_report(id=f"bad-{i}", category="glass") for i in range(7)]
    split = exclude_invalid_records(batch, now)
    assert split["excludedCount"] == 7
    # 1 of 8 is 12.5%
    assert split["dataQualityScore"] == 13


@pytest.mark.parametrize("value, expected", [(12.5, 13), (2.5, 3), (0.49, 0), (-2.5, -2), (66.6667, 67)])
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected
