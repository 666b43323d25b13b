"""
Result cache seam.

The composer works with any object exposing ``get(key)`` and
``set(key, value, ttl)``. A missing or failing cache never changes a
result: the failure is logged and the value recomputed.
"""

import copy
import logging
import time
from dataclasses import dataclass, field
from collections.abc import Mapping
from typing import Any, Callable, Protocol

from .config import CACHE_KEY_PREFIX, DEFAULT_CACHE_TTL_SECONDS
from .models import DateRange

logger = logging.getLogger(__name__)


class Cache(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any, ttl: float) -> None: ...


@dataclass(frozen=True)
class CacheKey:
    """Deterministic cache key: kind, range bounds and sorted filter items."""

    kind: str
    start: str
    end: str
    filters: tuple[tuple[str, str], ...] = field(default=())

    @classmethod
    def build(cls, kind: str, date_range: DateRange | None, filters: Mapping | None = None) -> "CacheKey":
        bounds = date_range.to_dict() if date_range is not None else {"startDate": "", "endDate": ""}
        items = tuple(sorted((str(k), str(v)) for k, v in (filters or {}).items() if v is not None))
        return cls(kind, bounds["startDate"], bounds["endDate"], items)

    def render(self) -> str:
        parts = [CACHE_KEY_PREFIX, self.kind, self.start, self.end]
        parts.extend(f"{k}={v}" for k, v in self.filters)
        return ":".join(parts)

    def __str__(self) -> str:
        return self.render()


class MemoryCache:
    """In-process TTL cache. Values are deep-copied in and out."""

    def __init__(self, default_ttl: float = DEFAULT_CACHE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any:
        entry = self._entries.get(str(key))
        if entry is None:
            return None
        expires, value = entry
        if self._clock() >= expires:
            del self._entries[str(key)]
            return None
        return copy.deepcopy(value)

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[str(key)] = (self._clock() + ttl, copy.deepcopy(value))

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


async def cached(
    cache: Cache | None,
    key: CacheKey,
    compute: Callable[[], Any],
    ttl: float = DEFAULT_CACHE_TTL_SECONDS,
) -> Any:
    """Return the cached value for ``key``, or await ``compute()`` and store it.

    Degraded results are not stored.
    """
    rendered = key.render()
    if cache is not None:
        try:
            hit = cache.get(rendered)
        except Exception as exc:
            logger.warning("Cache get failed for %s (%s: %s); recomputing", rendered, type(exc).__name__, exc)
            hit = None
        if hit is not None:
            logger.debug("Cache hit for %s", rendered)
            return hit

    value = await compute()

    if cache is not None and not (isinstance(value, Mapping) and value.get("degraded")):
        try:
            cache.set(rendered, value, ttl)
        except Exception as exc:
            logger.warning("Cache set failed for %s (%s: %s)", rendered, type(exc).__name__, exc)
    return value
