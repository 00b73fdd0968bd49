"""Confidence-weighted cache for per-source collection results."""
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

import structlog

from dyor_research.monitoring_metrics import CACHE_LOOKUPS

logger = structlog.get_logger()

# (minimum confidence, refresh interval seconds), highest band first
REFRESH_BANDS = (
    (0.8, 60 * 60),
    (0.6, 30 * 60),
    (0.4, 15 * 60),
)
DEFAULT_REFRESH_SECONDS = 5 * 60


def refresh_interval_for(confidence: float) -> float:
    """Refresh interval in seconds; a step function of confidence."""
    for floor, seconds in REFRESH_BANDS:
        if confidence >= floor:
            return float(seconds)
    return float(DEFAULT_REFRESH_SECONDS)


@dataclass(frozen=True)
class CacheEntry:
    data: Any
    confidence: float
    stored_at: float
    refresh_interval: float

    def is_fresh(self, now: float) -> bool:
        return now - self.stored_at < self.refresh_interval


def _key(entity: str, source: str) -> Tuple[str, str]:
    return entity.strip().lower(), source


class ConfidenceCache:
    """In-process (entity, source) cache whose TTL follows result confidence.

    An entry older than its refresh interval is treated as absent.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[Tuple[str, str], CacheEntry] = {}
        self.hits = 0
        self.misses = 0

    def get(self, entity: str, source: str) -> Optional[CacheEntry]:
        key = _key(entity, source)
        entry = self._entries.get(key)
        if entry is not None and not entry.is_fresh(self._clock()):
            del self._entries[key]
            entry = None
        if entry is None:
            self.misses += 1
            CACHE_LOOKUPS.labels(result="miss").inc()
            return None
        self.hits += 1
        CACHE_LOOKUPS.labels(result="hit").inc()
        return entry

    def set(self, entity: str, source: str, data: Any, confidence: float) -> CacheEntry:
        entry = CacheEntry(
            data=data,
            confidence=confidence,
            stored_at=self._clock(),
            refresh_interval=refresh_interval_for(confidence),
        )
        self._entries[_key(entity, source)] = entry
        logger.debug("cache_set", entity=entity, source=source,
                     confidence=round(confidence, 2), ttl=entry.refresh_interval)
        return entry

    def invalidate(self, entity: str, source: Optional[str] = None) -> int:
        """Drop one entry, or every entry for ``entity`` when no source is given."""
        name = entity.strip().lower()
        if source is not None:
            return 1 if self._entries.pop((name, source), None) is not None else 0
        doomed = [k for k in self._entries if k[0] == name]
        for k in doomed:
            del self._entries[k]
        return len(doomed)

    def cleanup(self) -> int:
        """Remove expired entries; returns how many were dropped."""
        now = self._clock()
        expired = [k for k, v in self._entries.items() if not v.is_fresh(now)]
        for k in expired:
            del self._entries[k]
        if expired:
            logger.info("cache_cleanup", expired=len(expired), remaining=len(self._entries))
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def size(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        return {
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / total if total else 0.0,
        }
