"""
Data quality reporting over a batch of raw report records.
"""

import logging
from datetime import datetime
from typing import Iterable

from .config import (
    EXCLUSION_REASONS,
    QUALITY_CRITICAL_RECOMMENDATION,
    QUALITY_RECOMMENDATIONS,
    QUALITY_SCORE_BANDS,
    QUALITY_WARNING_RECOMMENDATION,
)
from .utils import pct
from .validation import validate_batch

logger = logging.getLogger(__name__)


def empty_quality_report() -> dict:
    return {
        "totalRecords": 0,
        "validRecords": 0,
        "excludedRecords": 0,
        "warningRecords": 0,
        "qualityScore": 100,
        "exclusionReasons": {reason: 0 for reason in EXCLUSION_REASONS},
        "recommendations": [],
    }


def calculate_data_quality(records: Iterable | None, now: datetime | None = None) -> dict:
    """Aggregate validation results for a batch.

    A record can carry several exclusion reasons, so the reason tally may
    exceed excludedRecords. invalidCoordinates is counted from warnings:
    the record itself is retained without its coordinates. warningRecords
    counts retained records only.

    Returns
    -------
    {"totalRecords", "validRecords", "excludedRecords", "warningRecords",
     "qualityScore", "exclusionReasons", "recommendations"}
    """
    records = list(records or [])
    if not records:
        return empty_quality_report()

    results = validate_batch(records, now)
    reasons = {reason: 0 for reason in EXCLUSION_REASONS}
    valid = 0
    warned = 0
    for res in results:
        for reason in res.reasons + res.warning_reasons:
            reasons[reason] = reasons.get(reason, 0) + 1
        if res.is_valid:
            valid += 1
            if res.warnings:
                warned += 1

    total = len(records)
    score = pct(valid, total)
    report = {
        "totalRecords": total,
        "validRecords": valid,
        "excludedRecords": total - valid,
        "warningRecords": warned,
        "qualityScore": score,
        "exclusionReasons": reasons,
        "recommendations": quality_recommendations(reasons, score),
    }
    logger.info(
        "Data quality: %d/%d valid (score %d), %d with warnings",
        valid, total, score, warned,
    )
    return report


def quality_recommendations(reasons: dict[str, int], score: int) -> list[dict]:
    """Rule table: one entry per nonzero reason plus a score-band entry."""
    recs = []
    if score < QUALITY_SCORE_BANDS["critical"]:
        recs.append({"level": "critical", "reason": "qualityScore", "message": QUALITY_CRITICAL_RECOMMENDATION})
    elif score < QUALITY_SCORE_BANDS["warning"]:
        recs.append({"level": "warning", "reason": "qualityScore", "message": QUALITY_WARNING_RECOMMENDATION})

    for reason in EXCLUSION_REASONS:
        count = reasons.get(reason, 0)
        if count:
            recs.append({
                "level": "info",
                "reason": reason,
                "count": count,
                "message": QUALITY_RECOMMENDATIONS[reason],
            })
    return recs
