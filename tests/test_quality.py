from datetime import timedelta

from cleancity_analytics.quality import calculate_data_quality

from conftest import T0


def test_empty_batch():
    report = calculate_data_quality([])
    assert report["qualityScore"] == 100
    assert report["validRecords"] == 0
    assert report["totalRecords"] == 0
    assert report["recommendations"] == []


def test_score_never_increases_as_invalid_records_are_added(make_report, now):
    batch = [make_report(id=f"ok-{i}") for i in range(5)]
    scores = [calculate_data_quality(batch, now)["qualityScore"]]
    for i in range(6):
        batch.append(make_report(id=f"bad-{i}", category="glass"))
        scores.append(calculate_data_quality(batch, now)["qualityScore"])
    assert scores[0] == 100
    assert all(later <= earlier for earlier, later in zip(scores, scores[1:]))


def test_reason_tally_and_recommendations(make_report, now):
    batch = [
        make_report(id="a", lat=1.0),
        make_report(id="b", updated=T0 - timedelta(hours=2)),
        make_report(id="b"),
        make_report(id="c", status="Archived"),
    ]
    report = calculate_data_quality(batch, now)
    assert report["totalRecords"] == 4
    assert report["validRecords"] == 1
    assert report["excludedRecords"] == 3
    assert report["warningRecords"] == 1
    assert report["qualityScore"] == 25
    reasons = report["exclusionReasons"]
    assert reasons["invalidCoordinates"] == 1
    assert reasons["invalidDates"] == 1
    assert reasons["duplicates"] == 1
    assert reasons["invalidStatus"] == 1
    assert reasons["missingData"] == 0

    levels = [rec["level"] for rec in report["recommendations"]]
    assert levels[0] == "critical"
    assert {rec["reason"] for rec in report["recommendations"][1:]} == {
        "invalidDates", "invalidCoordinates", "duplicates", "invalidStatus",
    }


def test_warning_band(make_report, now):
    batch = [make_report(id=f"ok-{i}") for i in range(3)] + [make_report(id="x", category="glass")]
    report = calculate_data_quality(batch, now)
    assert report["qualityScore"] == 75
    assert report["recommendations"][0]["level"] == "warning"


def test_excluded_records_are_not_counted_as_warnings(make_report, now):
    batch = [
        make_report(id="kept", lat=1.0),
        make_report(id="dropped", category="glass", lat=1.0),
    ]
    report = calculate_data_quality(batch, now)
    assert report["validRecords"] == 1
    assert report["warningRecords"] == 1
    assert report["exclusionReasons"]["invalidCoordinates"] == 2
    assert report["qualityScore"] == 50
