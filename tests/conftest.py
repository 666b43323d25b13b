from datetime import datetime, timedelta, timezone

import pytest

from cleancity_analytics.utils import to_iso

NOW = datetime(2024, 4, 1, tzinfo=timezone.utc)
T0 = datetime(2024, 3, 10, 8, 0, tzinfo=timezone.utc)
MARCH = {"startDate": "2024-03-01", "endDate": "2024-03-31"}


def build_report(
    id="r1",
    category="recyclable",
    status="Completed",
    created=T0,
    history=None,
    updated=None,
    driver=None,
    lat=None,
    lng=None,
):
    """Raw report dict. ``history`` is [(status, hours after created), ...]."""
    if history is None:
        history = [("Pending", 0)] if status == "Pending" else [("Pending", 0), (status, 10)]
    if updated is None:
        updated = created + timedelta(hours=history[-1][1]) if history else created
    report = {
        "id": id,
        "category": category,
        "status": status,
        "createdAt": to_iso(created),
        "updatedAt": to_iso(updated),
        "assignedDriver": driver,
        "statusHistory": [
            {"status": s, "timestamp": to_iso(created + timedelta(hours=h)), "changedBy": None, "notes": None}
            for s, h in history
        ],
    }
    if lat is not None:
        report["latitude"] = lat
    if lng is not None:
        report["longitude"] = lng
    return report


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_report():
    return build_report


@pytest.fixture
def march():
    return dict(MARCH)
