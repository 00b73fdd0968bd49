"""Source collection: collector registry conventions and the concurrent scheduler."""

from .sources import (
    SOURCE_IDS,
    SOURCE_ALIASES,
    CollectionContext,
    CollectorRegistry,
    count_data_points,
    normalize_source_id,
    to_finding,
)
from .scheduler import SourceScheduler, SourceOutcome, proxy_confidence

__all__ = [
    "SOURCE_IDS",
    "SOURCE_ALIASES",
    "CollectionContext",
    "CollectorRegistry",
    "count_data_points",
    "normalize_source_id",
    "to_finding",
    "SourceScheduler",
    "SourceOutcome",
    "proxy_confidence",
]
