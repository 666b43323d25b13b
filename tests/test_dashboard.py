import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from cleancity_analytics.cache import MemoryCache
from cleancity_analytics.dashboard import (
    get_data_quality,
    get_driver_overview,
    get_driver_ranking,
    get_geographic_overview,
    get_status_overview,
    get_trend_comparison,
    get_trend_overview,
    get_workflow_overview,
)
from cleancity_analytics.errors import InputValidationError, StoreFailure
from cleancity_analytics.store import InMemoryReportStore
from cleancity_analytics.trends import generate_trend_data
from cleancity_analytics.validation import parse_date_range

from conftest import T0


class FailingStore:
    async def fetch(self, date_range, category=None, status=None, assigned_driver=None):
        raise ConnectionError("database unavailable")


class FlakyStore(InMemoryReportStore):
    """Fails the n-th fetch only."""

    def __init__(self, records, fail_on):
        super().__init__(records)
        self.fail_on = fail_on

    async def fetch(self, date_range, category=None, status=None, assigned_driver=None):
        if self.fetch_count + 1 == self.fail_on:
            self.fetch_count += 1
            raise ConnectionError("timeout")
        return await super().fetch(date_range, category, status, assigned_driver)


@pytest.fixture
def records(make_report):
    return [
        make_report(id="a", driver="d1", lat=1.234, lng=36.781,
                    history=[("Pending", 0), ("Assigned", 2), ("In Progress", 3), ("Completed", 8)]),
        make_report(id="b", driver="d1", category="hazardous_waste", status="In Progress",
                    history=[("Pending", 0), ("Assigned", 30), ("In Progress", 40)]),
        make_report(id="c", driver="d2", category="illegal_dumping", lat=1.3, lng=36.8,
                    history=[("Pending", 0), ("Assigned", 1), ("Completed", 5)]),
        make_report(id="d", status="Pending", created=T0 + timedelta(days=3)),
        make_report(id="e", category="glass"),
        make_report(id="feb", created=datetime(2024, 2, 15, tzinfo=timezone.utc)),
    ]


def test_store_filters_by_range_and_category(records, march):
    store = InMemoryReportStore(records + [{"id": "x", "createdAt": "garbage"}])
    rng = parse_date_range(march)
    fetched = asyncio.run(store.fetch(rng))
    assert {r["id"] for r in fetched} == {"a", "b", "c", "d", "e", "x"}
    fetched = asyncio.run(store.fetch(rng, category="illegal_dumping"))
    assert {r["id"] for r in fetched} == {"c"}
    fetched = asyncio.run(store.fetch(rng, assigned_driver="d1"))
    assert {r["id"] for r in fetched} == {"a", "b"}


def test_store_add_makes_record_fetchable(records, march, make_report):
    store = InMemoryReportStore(records)
    store.add(make_report(id="late", driver="d3"))
    assert len(store) == len(records) + 1
    fetched = asyncio.run(store.fetch(parse_date_range(march), assigned_driver="d3"))
    assert [r["id"] for r in fetched] == ["late"]


def test_trend_overview_matches_direct_computation(records, march, now):
    store = InMemoryReportStore(records)
    result = asyncio.run(get_trend_overview(store, march, now=now))
    direct = generate_trend_data(records, march, now=now)
    assert result["dailyTrends"] == direct["dailyTrends"]
    assert result["categoryBreakdown"] == direct["categoryBreakdown"]
    assert result["totalIncidents"] == direct["totalIncidents"] == 4


def test_trend_overview_uses_cache(records, march, now):
    store = InMemoryReportStore(records)
    cache = MemoryCache()
    first = asyncio.run(get_trend_overview(store, march, cache=cache, now=now))
    second = asyncio.run(get_trend_overview(store, march, cache=cache, now=now))
    assert first == second
    assert store.fetch_count == 1


def test_trend_comparison(records, march, now):
    store = InMemoryReportStore(records)
    result = asyncio.run(get_trend_comparison(store, march, now=now))
    assert result["current"]["totalIncidents"] == 4
    assert result["previous"]["totalIncidents"] == 1
    assert result["comparison"]["percentageChange"] == 300.0
    assert store.fetch_count == 2


def test_store_failure_is_surfaced(march):
    with pytest.raises(StoreFailure) as excinfo:
        asyncio.run(get_status_overview(FailingStore(), march))
    assert isinstance(excinfo.value.cause, ConnectionError)


def test_bad_input_propagates(records):
    store = InMemoryReportStore(records)
    with pytest.raises(InputValidationError):
        asyncio.run(get_trend_overview(store, {"startDate": "2024-04-01", "endDate": "2024-03-01"}))
    with pytest.raises(InputValidationError):
        asyncio.run(get_workflow_overview(store, {"startDate": "2024-03-01", "endDate": "2024-03-31"}, group_by="year"))
    assert store.fetch_count == 0


def test_status_overview(records, march, now):
    result = asyncio.run(get_status_overview(InMemoryReportStore(records), march, now=now))
    assert result["totalReports"] == 4
    assert result["excludedReports"] == 1
    assert result["degraded"] is False


def test_workflow_overview_all_branches(records, march, now):
    result = asyncio.run(get_workflow_overview(InMemoryReportStore(records), march, now=now))
    assert result["errors"] == {}
    assert result["transitions"]["totalTransitions"] == 7
    assert result["timeline"]["totalReports"] == 4
    assert isinstance(result["bottlenecks"], list)
    assert result["degraded"] is False


def test_workflow_overview_failed_branch_is_isolated(records, march, now):
    store = FlakyStore(records, fail_on=2)
    result = asyncio.run(get_workflow_overview(store, march, now=now))
    assert result["timeline"] is None
    assert "timeline" in result["errors"]
    assert result["transitions"]["totalTransitions"] == 7
    assert result["bottlenecks"] is not None
    assert result["degraded"] is True


def test_driver_overview(records, march, now):
    result = asyncio.run(get_driver_overview(InMemoryReportStore(records), march, now=now))
    assert result["driverCount"] == 2
    assert [d["driverId"] for d in result["metrics"]] == ["d1", "d2"]
    assert result["assignments"]["systemMetrics"]["totalAssignments"] == 3


def test_driver_ranking(records, march, now):
    store = InMemoryReportStore(records)
    ranking = asyncio.run(get_driver_ranking(store, "d2", march, now))
    assert ranking["rankings"]["completionRate"]["rank"] == 1
    with pytest.raises(LookupError):
        asyncio.run(get_driver_ranking(store, "d7", march, now))


def test_data_quality(records, march, now):
    result = asyncio.run(get_data_quality(InMemoryReportStore(records), march, now))
    assert result["totalRecords"] == 5
    assert result["excludedRecords"] == 1
    assert result["exclusionReasons"]["invalidCategory"] == 1
    assert result["qualityScore"] == 80


def test_geographic_overview(records, march, now):
    result = asyncio.run(get_geographic_overview(InMemoryReportStore(records), march, now=now))
    assert result["totalGeocoded"] == 2
    assert result["totalReports"] == 4
    assert result["geocodingRate"] == 50
