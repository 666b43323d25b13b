"""Data ingestion loaders for CleanCity report exports."""

from .report_workbook import load_reports_from_workbook

__all__ = [
    "load_reports_from_workbook",
]
