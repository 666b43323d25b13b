from datetime import datetime

import openpyxl

from cleancity_analytics.loaders import load_reports_from_workbook
from cleancity_analytics.loaders.utils import excel_date, to_snake_case
from cleancity_analytics.validation import exclude_invalid_records


def _write_workbook(path):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Reports"
    ws.append(["CleanCity report export"])
    ws.append([])
    ws.append(["ID", "Category", "Status", "Created At", "Updated At", "Latitude", "Longitude", "Assigned Driver"])
    ws.append([101, "recyclable", "Completed", datetime(2024, 3, 10, 8, 0), datetime(2024, 3, 10, 18, 0), -1.29, 36.82, "d1"])
    ws.append(["102", "hazardous_waste", "Pending", "2024-03-11T09:30:00Z", None, None, None, None])
    ws.append([None, None, None, None, None, None, None, None])
    ws.append(["103", "glass", "Pending", "not a date", None, None, None, None])

    hist = wb.create_sheet("StatusHistory")
    hist.append(["Report ID", "Status", "Timestamp", "Changed By", "Notes"])
    hist.append([101, "Pending", datetime(2024, 3, 10, 8, 0), "system", None])
    hist.append([101, "Completed", datetime(2024, 3, 10, 18, 0), "admin", "collected"])
    hist.append(["102", "Pending", datetime(2024, 3, 11, 9, 30), "system", None])
    wb.save(path)


def test_load_reports_from_workbook(tmp_path):
    path = tmp_path / "reports.xlsx"
    _write_workbook(path)
    reports = load_reports_from_workbook(str(path))

    assert [r["id"] for r in reports] == ["101", "102", "103"]
    first = reports[0]
    assert first["createdAt"] == "2024-03-10T08:00:00.000Z"
    assert first["assignedDriver"] == "d1"
    assert first["latitude"] == -1.29
    assert [h["status"] for h in first["statusHistory"]] == ["Pending", "Completed"]
    assert first["statusHistory"][1]["notes"] == "collected"
    assert reports[1]["statusHistory"][0]["changedBy"] == "system"
    assert reports[2]["statusHistory"] == []
    assert reports[2]["createdAt"] == "not a date"


def test_loaded_reports_validate(tmp_path, now):
    path = tmp_path / "reports.xlsx"
    _write_workbook(path)
    split = exclude_invalid_records(load_reports_from_workbook(str(path)), now)
    assert [r.id for r in split["validReports"]] == ["101", "102"]
    assert split["excludedCount"] == 1
    assert set(split["exclusionDetails"][0]["reasons"]) == {"invalidCategory", "invalidDates"}


def test_excel_date_serial_and_text():
    assert excel_date(45361.5).isoformat() == "2024-03-10T12:00:00+00:00"
    assert excel_date("2024-03-10").isoformat() == "2024-03-10T00:00:00+00:00"
    assert excel_date(None) is None
    assert excel_date("soon") is None


def test_to_snake_case():
    assert to_snake_case("Created At") == "created_at"
    assert to_snake_case("assignedDriver") == "assigned_driver"
    assert to_snake_case(" Report ID ") == "report_id"
