"""
Shared utilities for workbook ingestion: header detection, Excel date
conversion, column renaming.
"""

import logging
import re
from datetime import datetime
from typing import Any

import pandas as pd

from ..utils import normalise_timestamp

logger = logging.getLogger(__name__)

_EXCEL_EPOCH = pd.Timestamp("1899-12-30", tz="UTC")


def excel_date(val: Any) -> datetime | None:
    """Convert an Excel serial number, datetime or ISO string to UTC datetime.

    Serial numbers use the 1899-12-30 epoch and may carry a fractional day.
    Returns None for blank or unparseable values.
    """
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, (int, float)):
        try:
            return (_EXCEL_EPOCH + pd.Timedelta(days=float(val))).to_pydatetime()
        except (ValueError, OverflowError):
            logger.warning("Could not convert serial number %s to date", val)
            return None
    ts = normalise_timestamp(val)
    if ts is None and str(val).strip():
        logger.warning("Could not parse date value: %s", val)
    return ts


def to_snake_case(name: str) -> str:
    """Convert a column header to snake_case ("Created At" -> "created_at")."""
    s = str(name).strip()
    s = re.sub(r"[^a-zA-Z0-9]+", "_", s)
    # CamelCase to snake_case
    s = re.sub(r"([a-z])([A-Z])", r"\1_\2", s)
    s = s.lower().strip("_")
    return re.sub(r"_+", "_", s)


def find_header_row(
    sheet,
    signature: set[str],
    max_rows: int = 20,
) -> int | None:
    """Scan an openpyxl sheet for the row containing signature headers.

    Headers are compared in snake_case. Returns the 1-based row index where
    at least two cells match, or None if not found within ``max_rows``.
    """
    for row_idx in range(1, min(max_rows, sheet.max_row) + 1):
        matches = 0
        for cell in sheet[row_idx]:
            if cell.value is not None and to_snake_case(cell.value) in signature:
                matches += 1
        if matches >= 2:
            return row_idx
    return None
