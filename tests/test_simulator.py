from datetime import datetime, timezone

from cleancity_analytics.quality import calculate_data_quality
from cleancity_analytics.simulator import simulate_reports
from cleancity_analytics.trends import generate_trend_data

NOW = datetime(2024, 5, 1, tzinfo=timezone.utc)


def test_same_seed_same_batch():
    assert simulate_reports(n=50, seed=7) == simulate_reports(n=50, seed=7)
    assert simulate_reports(n=50, seed=7) != simulate_reports(n=50, seed=8)


def test_shape_of_generated_reports():
    reports = simulate_reports(n=100, broken_share=0)
    assert len(reports) == 100
    for report in reports:
        assert report["statusHistory"][0]["status"] == "Pending"
        assert report["statusHistory"][-1]["status"] == report["status"]
        assert (report["assignedDriver"] is None) == (report["status"] == "Pending")


def test_clean_batch_is_fully_valid():
    quality = calculate_data_quality(simulate_reports(n=200, broken_share=0), NOW)
    assert quality["qualityScore"] == 100
    assert quality["excludedRecords"] == 0


def test_broken_records_are_excluded():
    reports = simulate_reports(n=200, broken_share=0.05)
    quality = calculate_data_quality(reports, NOW)
    assert 0 < quality["excludedRecords"] <= 10
    trends = generate_trend_data(reports, {"startDate": "2024-03-01", "endDate": "2024-04-30"}, now=NOW)
    assert trends["totalIncidents"] == quality["validRecords"]
