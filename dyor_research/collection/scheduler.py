"""Concurrent source collection with cache, resilience wrapper and early termination."""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from dyor_research.collection.sources import (
    CollectionContext,
    Collector,
    CollectorRegistry,
    canonical,
    finding_confidence,
    normalize_source_id,
    to_finding,
)
from dyor_research.config.settings import Settings
from dyor_research.models import CollectionOutcome, Finding, Findings, PrioritySource, ResearchPlan
from dyor_research.monitoring_metrics import COLLECTOR_ERRORS, COLLECTOR_LATENCY, COLLECTOR_REQUESTS
from dyor_research.net.cache import ConfidenceCache
from dyor_research.net.resilience import ResilienceContext
from dyor_research.time_budget import Budget

logger = logging.getLogger(__name__)

PROXY_SATURATION_POINTS = 50


@dataclass(frozen=True)
class SourceOutcome:
    """Settled result of one collection task: a finding, or the reason there is none."""
    source: str
    finding: Optional[Finding] = None
    error: Optional[str] = None
    cached: bool = False

    @property
    def ok(self) -> bool:
        return self.finding is not None and self.finding.found

    def to_finding(self) -> Finding:
        if self.finding is not None:
            return self.finding
        return Finding.missing(self.error)


def proxy_confidence(total_data_points: int) -> float:
    return min(total_data_points / PROXY_SATURATION_POINTS, 1.0)


def total_data_points(findings: Findings) -> int:
    return sum(f.data_points for f in findings.values() if f.found)


class SourceScheduler:
    """Fan out collection for a plan's sources and merge the results."""

    def __init__(
        self,
        collectors: CollectorRegistry,
        resilience: ResilienceContext,
        cache: Optional[ConfidenceCache] = None,
        settings: Optional[Settings] = None,
    ):
        self.collectors = collectors
        self.resilience = resilience
        self.cache = cache
        self.settings = settings or Settings()

    def resolve(self, raw: str) -> Optional[str]:
        """Collector id for a planner-produced source name, or None."""
        normalized = normalize_source_id(raw)
        if normalized is not None:
            return normalized
        key = canonical(raw)
        return key if key in self.collectors else None

    def should_terminate_early(self, total_points: int) -> bool:
        threshold, min_confidence = self.settings.early_termination()
        return total_points >= threshold and proxy_confidence(total_points) >= min_confidence

    async def collect(
        self,
        plan: ResearchPlan,
        *,
        symbol: Optional[str] = None,
        address: Optional[str] = None,
        findings: Optional[Findings] = None,
        budget: Optional[Budget] = None,
    ) -> CollectionOutcome:
        """Collect every source in ``plan`` concurrently.

        ``findings`` from earlier rounds are merged in; sources collected
        again overwrite their previous slot. Never raises for a source
        failure: failed or empty sources become ``found=False``.
        With a ``budget``, each call's timeout is capped by the time left in it.
        """
        entity = plan.entity
        merged: Dict[str, Finding] = dict(findings or {})
        dispatch: Dict[str, PrioritySource] = {}

        for ps in plan.priority_sources:
            source_id = self.resolve(ps.source)
            if source_id is None:
                key = canonical(ps.source)
                logger.info(f"No collector for source {ps.source!r}; marking not found")
                if key not in merged or not merged[key].found:
                    merged[key] = Finding.missing("unknown source id")
                continue
            dispatch.setdefault(source_id, ps)

        if dispatch:
            logger.info(f"Collecting {len(dispatch)} sources for {entity!r} in parallel: {list(dispatch)}")

        tasks = [
            self._collect_one(
                source_id,
                entity,
                CollectionContext(
                    symbol=symbol,
                    address=address,
                    project_type=plan.project_type.type.value,
                    search_terms=ps.search_terms,
                    expected_fields=ps.expected_fields,
                    aliases=plan.search_aliases,
                ),
                budget,
            )
            for source_id, ps in dispatch.items()
        ]
        outcomes: List[SourceOutcome] = await asyncio.gather(*tasks)

        failed = []
        for outcome in outcomes:
            merged[outcome.source] = outcome.to_finding()
            if not outcome.ok:
                failed.append(outcome.source)

        points = total_data_points(merged)
        proxy = proxy_confidence(points)
        early = self.should_terminate_early(points)
        if early:
            logger.info(f"Early termination for {entity!r}: {points} data points, proxy confidence {proxy:.2f}")

        return CollectionOutcome(
            findings=merged,
            total_data_points=points,
            proxy_confidence=proxy,
            early_terminated=early,
            failed_sources=failed,
        )

    async def _collect_one(
        self,
        source_id: str,
        entity: str,
        context: CollectionContext,
        budget: Optional[Budget] = None,
    ) -> SourceOutcome:
        if self.cache is not None:
            entry = self.cache.get(entity, source_id)
            if entry is not None:
                logger.debug(f"Cache hit for {entity!r}/{source_id}")
                return SourceOutcome(source_id, finding=entry.data, cached=True)

        collector = self.collectors.get(source_id)
        if collector is None:
            return SourceOutcome(source_id, error="no collector registered")

        timeout = None
        if budget is not None:
            timeout = budget.get_timeout(self.resilience.policy_for(source_id).timeout)

        COLLECTOR_REQUESTS.labels(source=source_id).inc()
        start = time.perf_counter()
        try:
            raw = await self.resilience.call(
                source_id, lambda: self._invoke(collector, entity, context), timeout=timeout
            )
        except Exception as e:
            COLLECTOR_ERRORS.labels(source=source_id).inc()
            logger.warning(f"Source {source_id} failed for {entity!r}: {e}")
            return SourceOutcome(source_id, error=f"{type(e).__name__}: {e}")
        finally:
            COLLECTOR_LATENCY.labels(source=source_id).observe(time.perf_counter() - start)

        finding = to_finding(raw)
        if not finding.found:
            logger.debug(f"Source {source_id} returned no data for {entity!r}")
            return SourceOutcome(source_id, finding=finding, error="empty result")

        if self.cache is not None:
            self.cache.set(entity, source_id, finding, finding_confidence(finding))
        logger.debug(f"Source {source_id} contributed {finding.data_points} data points")
        return SourceOutcome(source_id, finding=finding)

    @staticmethod
    async def _invoke(collector: Collector, entity: str, context: CollectionContext) -> Any:
        if inspect.iscoroutinefunction(collector):
            return await collector(entity, context)
        result = await asyncio.to_thread(collector, entity, context)
        if inspect.isawaitable(result):
            result = await result
        return result
