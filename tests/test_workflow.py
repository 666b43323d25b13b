from datetime import datetime, timedelta, timezone

from cleancity_analytics.bottlenecks import detect_bottlenecks
from cleancity_analytics.validation import ensure_typed
from cleancity_analytics.workflow import (
    calculate_status_transitions,
    calculate_workflow_timings,
    generate_status_analytics,
    identify_common_paths,
    status_distribution,
)

from conftest import T0


def test_single_report_time_in_status(make_report, now):
    report = make_report(history=[("Pending", 0), ("Completed", 10)])
    result = generate_status_analytics([report], now=now)
    assert result["statusTimeAnalytics"]["Pending"]["averageTime"] == 10
    assert result["statusTimeAnalytics"]["Completed"]["averageTime"] == 0
    assert "Pending" not in [b["status"] for b in detect_bottlenecks([report], now)]


def test_status_distribution_percentages(make_report, now):
    reports = [
        make_report(id="a", status="Pending"),
        make_report(id="b", status="Completed"),
        make_report(id="c", status="Completed"),
        make_report(id="d", status="Rejected"),
        make_report(id="e", status="In Progress"),
        make_report(id="f", status="Assigned"),
    ]
    typed, _ = ensure_typed(reports, now)
    result = status_distribution(typed)
    assert result["totalReports"] == 6
    assert [row["status"] for row in result["statusDistribution"]] == [
        "Pending", "Assigned", "In Progress", "Completed", "Rejected",
    ]
    assert abs(sum(row["percentage"] for row in result["statusDistribution"]) - 100) <= 1
    assert result["completionRate"] == 33
    assert result["rejectionRate"] == 17


def test_status_percentages_sum_to_100(make_report, now):
    statuses = ["Pending", "Assigned", "In Progress", "Rejected"] + ["Completed"] * 4
    reports = [make_report(id=f"r{i}", status=s) for i, s in enumerate(statuses)]
    typed, _ = ensure_typed(reports, now)
    result = status_distribution(typed)
    percentages = [row["percentage"] for row in result["statusDistribution"]]
    # 12.5% shares: the two leftover points go to the first statuses in order
    assert percentages == [13, 13, 12, 50, 12]
    assert sum(percentages) == 100
    assert result["completionRate"] == 50
    assert result["rejectionRate"] == 13


def test_empty_distribution():
    result = status_distribution([])
    assert result["totalReports"] == 0
    assert all(row["count"] == 0 and row["percentage"] == 0 for row in result["statusDistribution"])


def test_transition_counts_include_negative_durations(make_report, now):
    reports = [
        make_report(id="a", history=[("Pending", 0), ("Assigned", 2), ("In Progress", 5), ("Completed", 9)]),
        make_report(id="b", history=[("Pending", 0), ("Assigned", 4)], status="Assigned"),
        make_report(
            id="c",
            status="In Progress",
            history=[("Pending", 0), ("Assigned", 6), ("In Progress", 3)],
            updated=T0 + timedelta(hours=8),
        ),
        make_report(id="d", status="Pending"),
    ]
    typed, _ = ensure_typed(reports, now)
    result = calculate_status_transitions(typed)

    expected_total = sum(len(r.status_history) - 1 for r in typed if r.status_history)
    assert result["totalTransitions"] == expected_total == 6
    assert sum(s["count"] for s in result["transitionStats"]) == 6

    by_pair = {(s["fromStatus"], s["toStatus"]): s for s in result["transitionStats"]}
    pending_assigned = by_pair[("Pending", "Assigned")]
    assert pending_assigned["count"] == 3
    assert pending_assigned["averageTime"] == 4
    assert pending_assigned["minTime"] == 2 and pending_assigned["maxTime"] == 6

    assigned_progress = by_pair[("Assigned", "In Progress")]
    assert assigned_progress["count"] == 2
    assert assigned_progress["negativeDurations"] == 1
    assert assigned_progress["averageTime"] == 3


def test_common_paths(make_report, now):
    reports = [
        make_report(id="a"),
        make_report(id="b"),
        make_report(id="c", status="Rejected"),
    ]
    typed, _ = ensure_typed(reports, now)
    paths = identify_common_paths(typed)
    assert paths[0]["path"] == "Pending -> Completed"
    assert paths[0]["count"] == 2
    assert paths[0]["percentage"] == 67
    assert paths[1]["statuses"] == ["Pending", "Rejected"]


def test_workflow_timings(make_report, now):
    reports = [
        make_report(id="a", history=[("Pending", 0), ("Assigned", 2), ("Completed", 20)]),
        make_report(id="b", history=[("Pending", 0), ("Assigned", 4), ("Completed", 60)]),
        make_report(id="c", status="Rejected", history=[("Pending", 0), ("Rejected", 1)]),
    ]
    typed, _ = ensure_typed(reports, now)
    timings = calculate_workflow_timings(typed)
    assert timings["timeToAssignment"] == 3
    assert timings["timeToCompletion"] == 40
    assert timings["timeToRejection"] == 1
    assert timings["resolutionTimeByCategory"]["recyclable"]["count"] == 2
    # 20h and 1h are within the 48h target, 60h is not
    assert timings["workflowEfficiency"] == 67


def test_status_analytics_bundle(make_report, march, now):
    reports = [make_report(id="a"), make_report(id="b", category="glass")]
    result = generate_status_analytics(reports, march, {"status": "all"}, now)
    assert result["totalReports"] == 1
    assert result["validReports"] == 1
    assert result["excludedReports"] == 1
    assert result["transitionAnalytics"]["totalTransitions"] == 1
    assert result["degraded"] is False
    assert result["degradedMetrics"] == []


def test_status_analytics_counts_only_reports_in_range(make_report, march, now):
    reports = [
        make_report(id="a"),
        make_report(id="feb", created=datetime(2024, 2, 15, tzinfo=timezone.utc)),
    ]
    result = generate_status_analytics(reports, march, now=now)
    assert result["totalReports"] == 1
    assert result["validReports"] == 1
    assert result["excludedReports"] == 0
