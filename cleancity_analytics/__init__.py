"""
CleanCity Analytics Engine

Analytics backend for waste-incident reports: turns raw report documents
(category, status, status history, coordinates, assigned driver) into
dashboard-ready trend, workflow, driver, data-quality and geographic
summaries.

To swap the report source:
    Implement ``store.ReportStore`` (an async ``fetch(date_range, ...)``
    returning raw report dicts) over the document database and pass it to
    the ``dashboard`` entry points. ``InMemoryReportStore`` and
    ``loaders.load_reports_from_workbook`` cover tests and file exports.

To connect a front end:
    Await e.g. ``dashboard.get_trend_overview(store, {"startDate": ...,
    "endDate": ...})`` and render the returned plain dict. Pass a
    ``cache.MemoryCache`` (or anything with ``get``/``set``) to memoise.

To tune thresholds:
    Edit the constants in ``config`` (bottleneck bands, workflow target,
    score weights). Most functions also accept them as keyword arguments.
"""

__version__ = "0.1.0"
