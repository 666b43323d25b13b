"""
Per-metric degradation.

A metric that faults (division by zero, a bad value slipping through) is
zeroed without affecting its siblings. The fault is logged and the result
is marked degraded, so a caller can tell a degraded zero from a real one.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Local computation faults that degrade a single metric
METRIC_FAULTS = (ArithmeticError, ValueError, TypeError, KeyError, IndexError, AttributeError)


@dataclass(frozen=True)
class MetricResult:
    name: str
    value: Any
    degraded: bool = False
    error: str | None = None


def guarded(name: str, compute: Callable[[], Any], fallback: Any = 0, **context) -> MetricResult:
    """Evaluate ``compute``; on a local fault return ``fallback`` marked degraded.

    ``context`` (record id, driver id, bucket key, ...) is included in the
    log line.
    """
    try:
        return MetricResult(name, compute())
    except METRIC_FAULTS as exc:
        logger.warning(
            "Metric '%s' degraded to %r (%s: %s) context=%s",
            name, fallback, type(exc).__name__, exc, context or {},
        )
        return MetricResult(name, fallback, degraded=True, error=f"{type(exc).__name__}: {exc}")


class MetricSet:
    """Collects guarded metrics for one result dict."""

    def __init__(self, **context):
        self.context = context
        self.values: dict[str, Any] = {}
        self.degraded: list[str] = []

    def compute(self, name: str, compute: Callable[[], Any], fallback: Any = 0) -> Any:
        result = guarded(name, compute, fallback, **self.context)
        self.values[name] = result.value
        if result.degraded:
            self.degraded.append(name)
        return result.value
