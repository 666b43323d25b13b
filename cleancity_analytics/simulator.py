"""
Simulated report generator for the CleanCity analytics engine.

Generates raw report documents shaped like the document-store export: a
status history walked along the usual workflow, coordinates scattered
around a city centre, and a small share of deliberately broken records to
exercise validation. All values are synthetic.
"""

from datetime import datetime, timedelta, timezone

import numpy as np

from .config import VALID_CATEGORIES
from .utils import to_iso

# ---------------------------------------------------------------------------
# Simulation parameters
# ---------------------------------------------------------------------------
_CITY_CENTRE = (-1.2921, 36.8219)
_COORD_SPREAD_DEG = 0.05

_CATEGORY_WEIGHTS = (0.5, 0.3, 0.2)

# Final-status mix and the path that leads there
_OUTCOMES = {
    "Pending": (0.15, ("Pending",)),
    "Assigned": (0.10, ("Pending", "Assigned")),
    "In Progress": (0.15, ("Pending", "Assigned", "In Progress")),
    "Completed": (0.50, ("Pending", "Assigned", "In Progress", "Completed")),
    "Rejected": (0.10, ("Pending", "Rejected")),
}

# Mean hours spent in each status before moving on (exponential)
_DWELL_HOURS = {
    "Pending": 10.0,
    "Assigned": 6.0,
    "In Progress": 20.0,
}

_DRIVERS = tuple(f"driver-{i:02d}" for i in range(1, 7))

_BROKEN_KINDS = ("missing_category", "bad_status", "bad_dates", "bad_coordinates", "duplicate")


def simulate_reports(
    n: int = 500,
    start: datetime | None = None,
    days: int = 30,
    broken_share: float = 0.03,
    seed: int = 42,
) -> list[dict]:
    """Generate ``n`` raw report dicts created within ``days`` of ``start``.

    Parameters
    ----------
    n : Number of records.
    start : First possible createdAt (UTC). Defaults to 2024-03-01.
    days : Length of the creation window.
    broken_share : Fraction of records damaged for validation to catch.
    seed : Seed for ``np.random.default_rng``; same seed, same batch.
    """
    rng = np.random.default_rng(seed)
    start = start or datetime(2024, 3, 1, tzinfo=timezone.utc)

    statuses = list(_OUTCOMES)
    status_p = np.array([_OUTCOMES[s][0] for s in statuses])
    status_p = status_p / status_p.sum()

    records = []
    for i in range(n):
        created = start + timedelta(minutes=float(rng.uniform(0, days * 24 * 60)))
        final = statuses[rng.choice(len(statuses), p=status_p)]
        path = _OUTCOMES[final][1]

        history = []
        ts = created
        for j, status in enumerate(path):
            history.append({"status": status, "timestamp": to_iso(ts), "changedBy": "system" if j == 0 else "admin"})
            if j + 1 < len(path):
                ts = ts + timedelta(hours=float(rng.exponential(_DWELL_HOURS.get(status, 4.0))))

        record = {
            "id": f"rpt-{i:05d}",
            "category": VALID_CATEGORIES[rng.choice(len(VALID_CATEGORIES), p=_CATEGORY_WEIGHTS)],
            "status": final,
            "createdAt": to_iso(created),
            "updatedAt": to_iso(ts),
            "latitude": round(float(_CITY_CENTRE[0] + rng.normal(0, _COORD_SPREAD_DEG)), 6),
            "longitude": round(float(_CITY_CENTRE[1] + rng.normal(0, _COORD_SPREAD_DEG)), 6),
            "assignedDriver": None if final == "Pending" else _DRIVERS[rng.integers(len(_DRIVERS))],
            "statusHistory": history,
        }
        records.append(record)

    n_broken = int(round(n * broken_share))
    for idx in rng.choice(n, size=min(n_broken, n), replace=False) if n else []:
        _damage(records, int(idx), _BROKEN_KINDS[int(idx) % len(_BROKEN_KINDS)])
    return records


def _damage(records: list[dict], idx: int, kind: str) -> None:
    record = records[idx]
    if kind == "missing_category":
        record["category"] = None
    elif kind == "bad_status":
        record["status"] = "Archived"
    elif kind == "bad_dates":
        record["updatedAt"] = "not-a-date"
    elif kind == "bad_coordinates":
        record["latitude"] = 123.0
    elif kind == "duplicate" and idx > 0:
        record["id"] = records[idx - 1]["id"]
