"""Bounded-concurrency batch research with retries and an optional cost ceiling."""

import asyncio
import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence

import structlog

from dyor_research.config.settings import Settings
from dyor_research.exceptions import CostLimitError
from dyor_research.intent.classifier import FALLBACK_ESTIMATE, ROUTE_ESTIMATES
from dyor_research.models import (
    Approach,
    BatchConfig,
    BatchEntityResult,
    BatchRequest,
    BatchResult,
    BatchSummary,
    Complexity,
    OrchestrationResult,
)

logger = structlog.get_logger()

Pipeline = Callable[[BatchRequest], Awaitable[OrchestrationResult]]

COMPLEXITY_ORDER = {
    Complexity.SIMPLE: 0,
    Complexity.UNKNOWN: 1,
    Complexity.COMPLEX: 2,
}

# Pre-run cost estimates per complexity hint, USD
COMPLEXITY_COST = {
    Complexity.SIMPLE: ROUTE_ESTIMATES[Approach.DIRECT_AI][0],
    Complexity.UNKNOWN: FALLBACK_ESTIMATE[0],
    Complexity.COMPLEX: ROUTE_ESTIMATES[Approach.ORCHESTRATED][0],
}


def estimated_cost(request: BatchRequest) -> float:
    if request.estimated_cost is not None:
        return request.estimated_cost
    return COMPLEXITY_COST[request.complexity]


def summarize(results: Sequence[BatchEntityResult], retried: int = 0) -> BatchSummary:
    ran = [r for r in results if not r.skipped]
    successful = [r for r in ran if r.success]
    return BatchSummary(
        total=len(results),
        successful=len(successful),
        failed=len(ran) - len(successful),
        skipped=len(results) - len(ran),
        retried=retried,
        average_latency_seconds=sum(r.latency_seconds for r in ran) / len(ran) if ran else 0.0,
        average_confidence=sum(r.confidence for r in successful) / len(successful) if successful else 0.0,
        total_cost=round(sum(r.cost for r in ran), 6),
        total_data_points=sum(r.data_points for r in ran),
    )


class BatchCoordinator:
    """Run the research pipeline for many entities, wave by wave.

    Each wave holds at most ``max_concurrency`` entities; the next wave
    starts only after the whole wave settles. One entity's failure never
    cancels another's work.
    """

    def __init__(
        self,
        pipeline: Pipeline,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.pipeline = pipeline
        self.settings = settings or Settings()
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def for_orchestrator(cls, orchestrator, **kwargs) -> "BatchCoordinator":
        async def pipeline(request: BatchRequest) -> OrchestrationResult:
            return await orchestrator.research(request.name, request.symbol, request.address)
        return cls(pipeline, settings=orchestrator.settings, **kwargs)

    def default_config(self) -> BatchConfig:
        return BatchConfig(
            max_concurrency=self.settings.BATCH_MAX_CONCURRENCY,
            wave_delay_seconds=self.settings.BATCH_WAVE_DELAY_SEC,
            max_retries=self.settings.BATCH_MAX_RETRIES,
        )

    async def run_batch(self, requests: Sequence[BatchRequest], config: Optional[BatchConfig] = None) -> BatchResult:
        config = config or self.default_config()
        requests = list(requests)
        logger.info("batch_started", entities=len(requests), concurrency=config.max_concurrency)

        results = await self._run_waves(requests, config)
        retried = 0

        if config.retry_failed:
            for round_no in range(1, config.max_retries + 1):
                failed = [i for i, r in enumerate(results) if not r.success]
                if not failed:
                    break
                retried += len(failed)
                logger.info("batch_retry", round=round_no, entities=[requests[i].name for i in failed])
                await self._sleep(config.wave_delay_seconds)
                retry_results = await self._run_waves([requests[i] for i in failed], config)
                for i, fresh in zip(failed, retry_results):
                    attempts = results[i].attempts + 1
                    if fresh.success:
                        results[i] = fresh.model_copy(update={"attempts": attempts})
                    else:
                        results[i] = results[i].model_copy(update={"attempts": attempts, "error": fresh.error})

        summary = summarize(results, retried)
        logger.info("batch_complete", **summary.model_dump())
        return BatchResult(results=results, summary=summary)

    async def run_batch_with_cost_ceiling(
        self,
        requests: Sequence[BatchRequest],
        max_cost: float,
        config: Optional[BatchConfig] = None,
        strict: bool = False,
    ) -> BatchResult:
        """Process cheapest-first, refusing new entities once the estimate would pass ``max_cost``.

        With ``strict`` set, a batch that does not fit entirely raises ``CostLimitError``
        before any entity runs.
        """
        requests = list(requests)
        order = sorted(
            range(len(requests)),
            key=lambda i: (COMPLEXITY_ORDER[requests[i].complexity], -requests[i].priority),
        )

        accepted: List[int] = []
        running = 0.0
        for i in order:
            cost = estimated_cost(requests[i])
            if running + cost > max_cost:
                if strict:
                    raise CostLimitError(
                        f"Estimated batch cost exceeds ceiling of ${max_cost:.2f}",
                        current_cost=running + cost,
                        limit=max_cost,
                    )
                logger.info("cost_ceiling_reached", max_cost=max_cost, running_cost=round(running, 4),
                            accepted=len(accepted), skipped=len(requests) - len(accepted))
                break
            running += cost
            accepted.append(i)

        ran = await self.run_batch([requests[i] for i in accepted], config)
        results: List[Optional[BatchEntityResult]] = [None] * len(requests)
        for i, result in zip(accepted, ran.results):
            results[i] = result
        for i, request in enumerate(requests):
            if results[i] is None:
                results[i] = BatchEntityResult(
                    name=request.name, success=False, skipped=True, error="Skipped: cost ceiling reached"
                )
        return BatchResult(results=results, summary=summarize(results, ran.summary.retried))

    async def _run_waves(self, requests: List[BatchRequest], config: BatchConfig) -> List[BatchEntityResult]:
        results: List[BatchEntityResult] = []
        size = config.max_concurrency
        for start in range(0, len(requests), size):
            if start:
                await self._sleep(config.wave_delay_seconds)
            wave = requests[start:start + size]
            results.extend(await asyncio.gather(*(self._run_one(r) for r in wave)))
        return results

    async def _run_one(self, request: BatchRequest) -> BatchEntityResult:
        start = self._clock()
        try:
            outcome = await self.pipeline(request)
        except Exception as e:
            logger.warning("entity_failed", entity=request.name, error=f"{type(e).__name__}: {e}")
            return BatchEntityResult(
                name=request.name,
                success=False,
                latency_seconds=self._clock() - start,
                attempts=1,
                error=f"{type(e).__name__}: {e}",
            )
        return BatchEntityResult(
            name=request.name,
            success=outcome.success,
            confidence=outcome.confidence,
            data_points=outcome.total_data_points,
            latency_seconds=self._clock() - start,
            cost=outcome.cost,
            attempts=1,
            error=None if outcome.success else outcome.reason,
        )
