"""
Loader for report exports kept as an Excel workbook.

Layout
------
- "Reports" sheet: one row per report. Header row somewhere in the first
  20 rows, with columns ID, Category, Status, Created At, Updated At,
  Latitude, Longitude, Assigned Driver (order free, extras ignored).
- "StatusHistory" sheet (optional): Report ID, Status, Timestamp,
  Changed By, Notes; rows in chronological order per report.

Rows are returned as raw report dicts with camelCase keys; nothing is
validated here. Validation happens in the analytics engine like for any
other source.
"""

import logging

import openpyxl

from ..utils import to_iso
from .utils import excel_date, find_header_row, to_snake_case

logger = logging.getLogger(__name__)

REPORTS_SHEET = "Reports"
HISTORY_SHEET = "StatusHistory"

# snake_case header -> raw report key
_REPORT_COLUMNS = {
    "id": "id",
    "report_id": "id",
    "category": "category",
    "status": "status",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "latitude": "latitude",
    "longitude": "longitude",
    "assigned_driver": "assignedDriver",
}

_HISTORY_COLUMNS = {
    "report_id": "reportId",
    "status": "status",
    "timestamp": "timestamp",
    "changed_by": "changedBy",
    "notes": "notes",
}

_DATE_KEYS = {"createdAt", "updatedAt", "timestamp"}


def _read_rows(ws, columns: dict[str, str]) -> list[dict]:
    header_row = find_header_row(ws, set(columns))
    if header_row is None:
        logger.warning("No header row found in sheet '%s'", ws.title)
        return []

    col_map: dict[int, str] = {}
    for cell in ws[header_row]:
        if cell.value is None:
            continue
        key = columns.get(to_snake_case(cell.value))
        if key is not None and key not in col_map.values():
            col_map[cell.column] = key

    rows = []
    for values in ws.iter_rows(min_row=header_row + 1, values_only=True):
        if all(v is None for v in values):
            continue
        row = {}
        for col_idx, key in col_map.items():
            val = values[col_idx - 1] if col_idx - 1 < len(values) else None
            if isinstance(val, str):
                val = val.strip() or None
            if key in _DATE_KEYS and val is not None:
                # keep unparseable text as-is so validation can flag it
                parsed = excel_date(val)
                val = to_iso(parsed) if parsed is not None else val
            row[key] = val
        rows.append(row)
    return rows


def load_reports_from_workbook(path: str) -> list[dict]:
    """Load raw report dicts (with statusHistory) from an Excel workbook.

    Returns
    -------
    [{"id", "category", "status", "createdAt", "updatedAt", "latitude",
      "longitude", "assignedDriver", "statusHistory": [...]}, ...]
    """
    try:
        wb = openpyxl.load_workbook(path, data_only=True, read_only=False)
    except Exception:
        logger.exception("Failed to open report workbook: %s", path)
        raise

    sheet_name = REPORTS_SHEET
    if sheet_name not in wb.sheetnames:
        sheet_name = wb.sheetnames[0]
        logger.warning("Sheet '%s' not found, using '%s'", REPORTS_SHEET, sheet_name)
    reports = _read_rows(wb[sheet_name], _REPORT_COLUMNS)

    history: dict[str, list[dict]] = {}
    if HISTORY_SHEET in wb.sheetnames:
        for row in _read_rows(wb[HISTORY_SHEET], _HISTORY_COLUMNS):
            report_id = row.pop("reportId", None)
            if report_id is None:
                continue
            history.setdefault(str(report_id), []).append(row)

    for report in reports:
        if report.get("id") is not None:
            report["id"] = str(report["id"])
        if report.get("assignedDriver") is not None:
            report["assignedDriver"] = str(report["assignedDriver"])
        report["statusHistory"] = history.get(report.get("id"), [])

    logger.info(
        "Loaded %d reports and %d history entries from %s",
        len(reports), sum(len(h) for h in history.values()), path,
    )
    return reports
