"""
Report store seam: the only asynchronous collaborator.

The engine never writes; it asks for the raw documents of a date range,
optionally narrowed by category, status or assigned driver.
"""

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Iterable, Protocol

from .models import DateRange
from .utils import normalise_timestamp

logger = logging.getLogger(__name__)


class ReportStore(Protocol):
    async def fetch(
        self,
        date_range: DateRange,
        category: str | None = None,
        status: str | None = None,
        assigned_driver: str | None = None,
    ) -> list[dict]: ...


class InMemoryReportStore:
    """Store over a list of raw report dicts.

    Records whose createdAt cannot be parsed are returned regardless of the
    range so that validation can count them as exclusions.
    """

    def __init__(self, records: Iterable[Mapping[str, Any]] | None = None):
        self._records = [dict(r) if isinstance(r, Mapping) else r for r in (records or [])]
        self.fetch_count = 0

    def add(self, record: Mapping[str, Any]) -> None:
        self._records.append(dict(record))

    def __len__(self) -> int:
        return len(self._records)

    async def fetch(
        self,
        date_range: DateRange,
        category: str | None = None,
        status: str | None = None,
        assigned_driver: str | None = None,
    ) -> list[dict]:
        self.fetch_count += 1
        await asyncio.sleep(0)

        out = []
        for record in self._records:
            if not isinstance(record, Mapping):
                out.append(record)
                continue
            created = normalise_timestamp(record.get("createdAt"))
            if created is not None and not date_range.contains(created):
                continue
            if category is not None and record.get("category") != category:
                continue
            if status is not None and record.get("status") != status:
                continue
            if assigned_driver is not None and str(record.get("assignedDriver")) != str(assigned_driver):
                continue
            out.append(dict(record))

        logger.debug("Fetched %d of %d records for %s", len(out), len(self._records), date_range.to_dict())
        return out
