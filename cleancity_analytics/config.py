"""
Configuration: enumerations, thresholds, rule tables, constants.

Every analytic function takes the relevant constant as a keyword default,
so a caller can override a value for one call without touching this module.
"""

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------
VALID_CATEGORIES: tuple[str, ...] = (
    "recyclable",
    "illegal_dumping",
    "hazardous_waste",
)

VALID_STATUSES: tuple[str, ...] = (
    "Pending",
    "Assigned",
    "In Progress",
    "Completed",
    "Rejected",
)

# Filter value meaning "no filter"
FILTER_ALL = "all"

# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
LATITUDE_RANGE = (-90.0, 90.0)
LONGITUDE_RANGE = (-180.0, 180.0)

# createdAt older than this is flagged as implausible (warning only)
PLAUSIBLE_HISTORY_YEARS = 10

# Exclusion reason codes, in report order
EXCLUSION_REASONS: tuple[str, ...] = (
    "missingData",
    "invalidDates",
    "invalidCoordinates",
    "duplicates",
    "invalidCategory",
    "invalidStatus",
    "validationErrors",
)

# ---------------------------------------------------------------------------
# Workflow / timing
# ---------------------------------------------------------------------------
# Target end-to-end workflow duration (hours)
WORKFLOW_TARGET_HOURS = 48.0

# Fixed normalisation window for reports-per-day (not derived from the range)
REPORTS_PER_DAY_WINDOW_DAYS = 30

# Timeline bucket grains
TIMELINE_GRAINS: tuple[str, ...] = ("hour", "day", "week")
DEFAULT_TIMELINE_GRAIN = "day"
DEFAULT_TIMELINE_MAX_REPORTS = 100

# Number of common paths reported
COMMON_PATHS_TOP_N = 10
PATH_SEPARATOR = " -> "

# ---------------------------------------------------------------------------
# Bottleneck detection
# ---------------------------------------------------------------------------
# A status is a bottleneck if any of these trips
BOTTLENECK_THRESHOLDS: dict[str, float] = {
    "average_hours": 24.0,
    "p90_hours": 72.0,
    "skew_ratio": 2.0,  # average / median
}

# (threshold_hours, severity_points), checked top-down, first match wins
SEVERITY_AVERAGE_BANDS: tuple[tuple[float, int], ...] = (
    (168.0, 40),
    (72.0, 30),
    (24.0, 20),
    (12.0, 10),
)
SEVERITY_P90_BANDS: tuple[tuple[float, int], ...] = (
    (336.0, 30),
    (168.0, 20),
    (72.0, 15),
)
SEVERITY_TAIL_BANDS: tuple[tuple[float, int], ...] = (
    (168.0, 20),
    (72.0, 10),
)
SEVERITY_CAP = 100

# status -> base recommendation plus an optional conditional follow-up.
# condition metric is "average" or "p90"; follow-up is added when it
# exceeds the threshold.
BOTTLENECK_RECOMMENDATIONS: dict[str, dict] = {
    "Pending": {
        "base": "Consider automated assignment rules to reduce pending time",
        "metric": "average",
        "threshold": 24.0,
        "followup": "Implement priority queuing for urgent incidents",
    },
    "Assigned": {
        "base": "Review driver workload distribution",
        "metric": "p90",
        "threshold": 72.0,
        "followup": "Consider additional driver resources or reassignment policies",
    },
    "In Progress": {
        "base": "Analyze field completion challenges",
        "metric": "average",
        "threshold": 48.0,
        "followup": "Provide additional tools or training for complex incidents",
    },
}
DEFAULT_BOTTLENECK_RECOMMENDATION = "Review {status} process for optimization opportunities"
ESCALATION_THRESHOLD_HOURS = 168.0
ESCALATION_RECOMMENDATION = "Critical: Implement escalation procedures for long-running cases"

# ---------------------------------------------------------------------------
# Driver performance
# ---------------------------------------------------------------------------
PRODUCTIVITY_WEIGHTS: dict[str, float] = {
    "completion": 0.7,
    "volume": 0.3,
}
# Assigned reports at which the volume score saturates at 100
PRODUCTIVITY_VOLUME_TARGET = 10
CONSISTENCY_VARIANCE_DIVISOR = 10.0
WORKLOAD_BALANCE_SCALE = 3.0

ASSIGNMENT_EFFICIENCY_WEIGHTS: dict[str, float] = {
    "accuracy": 0.4,
    "completion": 0.4,
    "response_time": 0.2,
}
# Response time (hours) at which the response score reaches 0
ASSIGNMENT_RESPONSE_CAP_HOURS = 24.0
EFFICIENCY_BANDS: dict[str, int] = {
    "high": 80,
    "medium": 60,
}

# Benchmark percentiles
TOP_QUARTILE_PERCENTILE = 75
BEST_QUARTILE_PERCENTILE = 25

# Below this workload balance an observation insight is emitted
WORKLOAD_BALANCE_INSIGHT_THRESHOLD = 70

# ---------------------------------------------------------------------------
# Data quality
# ---------------------------------------------------------------------------
QUALITY_SCORE_BANDS: dict[str, int] = {
    "critical": 50,
    "warning": 80,
}

# reason code -> recommendation text
QUALITY_RECOMMENDATIONS: dict[str, str] = {
    "missingData": "Enforce required fields (id, createdAt, category, status) at report submission",
    "invalidDates": "Check timestamp handling: unparseable dates or updatedAt before createdAt were found",
    "invalidCoordinates": "Validate latitude/longitude pairs on capture; partial or out-of-range coordinates were found",
    "duplicates": "Deduplicate report exports; repeated report ids were found in the batch",
    "invalidCategory": "Restrict categories to recyclable, illegal_dumping and hazardous_waste",
    "invalidStatus": "Restrict statuses to the workflow states Pending, Assigned, In Progress, Completed and Rejected",
    "validationErrors": "Inspect malformed records that could not be read as reports",
}
QUALITY_CRITICAL_RECOMMENDATION = (
    "Critical: fewer than half of the records are usable; analytics results are unreliable"
)
QUALITY_WARNING_RECOMMENDATION = (
    "Warning: data quality is below 80%; treat low counts with caution"
)

# ---------------------------------------------------------------------------
# Geographic distribution
# ---------------------------------------------------------------------------
GRID_SIZE_DEGREES = 0.01  # roughly 1 km
KM_PER_DEGREE = 111.0

# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------
DEFAULT_CACHE_TTL_SECONDS = 300
CACHE_KEY_PREFIX = "analytics"
