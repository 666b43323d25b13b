"""
Geographic distribution: geocoded reports grouped into a fixed lat/lng grid
with incident density per cell.
"""

import logging
import math
from datetime import datetime
from typing import Iterable

import pandas as pd

from .config import GRID_SIZE_DEGREES, KM_PER_DEGREE
from .models import ReportRecord
from .utils import pct, round2, to_iso
from .validation import ensure_typed

logger = logging.getLogger(__name__)


def cell_centre(value: float, grid_size: float = GRID_SIZE_DEGREES) -> float:
    """Centre of the grid cell containing ``value`` (degrees)."""
    return math.floor(value / grid_size) * grid_size + grid_size / 2


def calculate_incident_density(count: int, area_km2: float) -> float:
    """Incidents per km², 2 decimals. A non-positive area counts as 1 km²."""
    if count <= 0:
        return 0
    if area_km2 <= 0:
        area_km2 = 1.0
    return round2(count / area_km2)


def group_by_location(reports: list[ReportRecord], grid_size: float = GRID_SIZE_DEGREES) -> list[dict]:
    """Group geocoded reports into grid cells, busiest cell first."""
    if not reports:
        return []

    df = pd.DataFrame({
        "cell_lat": [math.floor(r.latitude / grid_size) for r in reports],
        "cell_lng": [math.floor(r.longitude / grid_size) for r in reports],
        "position": range(len(reports)),
    })
    area = (grid_size * KM_PER_DEGREE) ** 2

    cells = []
    for _, group in df.groupby(["cell_lat", "cell_lng"], sort=True):
        members = [reports[i] for i in group["position"]]
        categories = {r.category for r in members}
        cells.append({
            "coordinates": [
                round(cell_centre(members[0].longitude, grid_size), 6),
                round(cell_centre(members[0].latitude, grid_size), 6),
            ],
            "incidentCount": len(members),
            "category": categories.pop() if len(categories) == 1 else "mixed",
            "density": calculate_incident_density(len(members), area),
            "reports": [
                {"id": r.id, "category": r.category, "status": r.status, "createdAt": to_iso(r.created_at)}
                for r in members
            ],
        })
    cells.sort(key=lambda c: -c["incidentCount"])
    return cells


def process_geographic_distribution(
    reports: Iterable | None,
    now: datetime | None = None,
    grid_size: float = GRID_SIZE_DEGREES,
) -> dict:
    """Grid-cell incident distribution for the valid reports of a batch.

    Returns
    -------
    {"totalGeocoded", "totalReports", "geocodingRate", "distributionData":
     [{"coordinates": [lng, lat], "incidentCount", "category", "density",
       "reports"}, ...], "degraded"}
    """
    try:
        typed, _ = ensure_typed(reports, now)
        geocoded = [r for r in typed if r.has_coordinates]
        cells = group_by_location(geocoded, grid_size)
    except Exception:
        logger.exception("Geographic distribution failed")
        return {
            "totalGeocoded": 0,
            "totalReports": 0,
            "geocodingRate": 0,
            "distributionData": [],
            "degraded": True,
        }

    logger.info("Grouped %d geocoded reports into %d cells", len(geocoded), len(cells))
    return {
        "totalGeocoded": len(geocoded),
        "totalReports": len(typed),
        "geocodingRate": pct(len(geocoded), len(typed)),
        "distributionData": cells,
        "degraded": False,
    }
