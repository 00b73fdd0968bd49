"""Tests for batch research coordination."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from dyor_research.batch import BatchCoordinator, estimated_cost, summarize
from dyor_research.config.settings import Settings
from dyor_research.exceptions import CostLimitError
from dyor_research.models import (
    BatchConfig,
    BatchEntityResult,
    BatchRequest,
    Complexity,
    OrchestrationResult,
)


def ok(name, confidence=0.8, points=30):
    return OrchestrationResult(entity=name, success=True, confidence=confidence,
                               total_data_points=points, cost=0.05)


def failed(name):
    return OrchestrationResult(entity=name, success=False, reason="All sources failed to return data")


class TestBatchCoordinator:
    """Test waves, retries and cost ceilings."""

    @pytest.mark.asyncio
    async def test_one_failure_among_five(self, fake_sleep):
        async def pipeline(request):
            return failed(request.name) if request.name == "Broken Game" else ok(request.name)

        coordinator = BatchCoordinator(pipeline, sleep=fake_sleep)
        names = ["Illuvium", "Broken Game", "Gala", "Big Time", "Star Atlas"]
        config = BatchConfig(max_concurrency=2, wave_delay_seconds=1.0, retry_failed=True, max_retries=2)

        result = await coordinator.run_batch([BatchRequest(name=n) for n in names], config)

        assert [r.name for r in result.results] == names
        assert result.summary.successful == 4
        assert result.summary.failed == 1
        assert result.summary.retried == 2
        broken = result.results[1]
        assert broken.attempts == 3
        assert broken.error == "All sources failed to return data"
        # Two waits between three waves, then one per retry round
        assert fake_sleep.delays == [1.0, 1.0, 1.0, 1.0]

    @pytest.mark.asyncio
    async def test_wave_concurrency_is_bounded(self, fake_sleep):
        in_flight = 0
        peak = 0

        async def pipeline(request):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return ok(request.name)

        coordinator = BatchCoordinator(pipeline, sleep=fake_sleep)
        requests = [BatchRequest(name=f"Game {i}") for i in range(5)]

        await coordinator.run_batch(requests, BatchConfig(max_concurrency=2, wave_delay_seconds=0))

        assert peak == 2

    @pytest.mark.asyncio
    async def test_retry_replaces_failed_result(self, fake_sleep):
        calls = {}

        async def pipeline(request):
            calls[request.name] = calls.get(request.name, 0) + 1
            if request.name == "Flaky" and calls["Flaky"] == 1:
                return failed("Flaky")
            return ok(request.name, confidence=0.9)

        coordinator = BatchCoordinator(pipeline, sleep=fake_sleep)
        config = BatchConfig(max_concurrency=3, retry_failed=True, max_retries=3)

        result = await coordinator.run_batch([BatchRequest(name="Stable"), BatchRequest(name="Flaky")], config)

        assert [r.success for r in result.results] == [True, True]
        assert result.results[1].attempts == 2
        assert result.summary.retried == 1
        assert calls == {"Stable": 1, "Flaky": 2}

    @pytest.mark.asyncio
    async def test_pipeline_exception_is_contained(self, fake_sleep):
        async def pipeline(request):
            if request.name == "Crashy":
                raise RuntimeError("boom")
            return ok(request.name)

        coordinator = BatchCoordinator(pipeline, sleep=fake_sleep)

        result = await coordinator.run_batch(
            [BatchRequest(name="Crashy"), BatchRequest(name="Fine")], BatchConfig(max_concurrency=2)
        )

        assert result.results[0].error == "RuntimeError: boom"
        assert result.results[1].success
        assert result.summary.failed == 1

    @pytest.mark.asyncio
    async def test_cost_ceiling_runs_cheapest_first(self, fake_sleep):
        started = []

        async def pipeline(request):
            started.append(request.name)
            return ok(request.name)

        coordinator = BatchCoordinator(pipeline, sleep=fake_sleep)
        requests = [
            BatchRequest(name="A", complexity=Complexity.COMPLEX),
            BatchRequest(name="B", complexity=Complexity.SIMPLE, priority=1),
            BatchRequest(name="C", complexity=Complexity.UNKNOWN),
            BatchRequest(name="D", complexity=Complexity.SIMPLE, priority=5),
            BatchRequest(name="E", complexity=Complexity.COMPLEX),
        ]

        result = await coordinator.run_batch_with_cost_ceiling(
            requests, max_cost=0.12, config=BatchConfig(max_concurrency=3)
        )

        assert started == ["D", "B", "C"]
        assert [r.name for r in result.results] == ["A", "B", "C", "D", "E"]
        assert [r.skipped for r in result.results] == [True, False, False, False, True]
        assert result.summary.skipped == 2
        assert result.summary.successful == 3
        assert result.results[0].error == "Skipped: cost ceiling reached"

    @pytest.mark.asyncio
    async def test_strict_cost_ceiling_raises_before_running(self, fake_sleep):
        """A strict ceiling rejects the whole batch instead of skipping entities."""
        pipeline = AsyncMock(side_effect=lambda request: ok(request.name))
        coordinator = BatchCoordinator(pipeline, sleep=fake_sleep)
        requests = [
            BatchRequest(name="A", complexity=Complexity.SIMPLE),
            BatchRequest(name="B", complexity=Complexity.COMPLEX),
        ]

        with pytest.raises(CostLimitError) as exc_info:
            await coordinator.run_batch_with_cost_ceiling(requests, max_cost=0.05, strict=True)

        assert exc_info.value.limit == 0.05
        assert exc_info.value.current_cost > 0.05
        pipeline.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_for_orchestrator_uses_settings_defaults(self, fake_sleep):
        fake = SimpleNamespace(
            settings=Settings(BATCH_MAX_CONCURRENCY=4, BATCH_WAVE_DELAY_SEC=0.5),
            research=AsyncMock(side_effect=lambda name, symbol, address: ok(name)),
        )
        coordinator = BatchCoordinator.for_orchestrator(fake, sleep=fake_sleep)

        result = await coordinator.run_batch([BatchRequest(name=f"G{i}", symbol="GG") for i in range(5)])

        assert result.summary.successful == 5
        assert fake_sleep.delays == [0.5]
        fake.research.assert_any_await("G0", "GG", None)


def test_estimated_cost_prefers_explicit_value():
    assert estimated_cost(BatchRequest(name="X", complexity=Complexity.COMPLEX)) == 0.10
    assert estimated_cost(BatchRequest(name="X", estimated_cost=0.42)) == 0.42


def test_summary_averages():
    results = [
        BatchEntityResult(name="a", success=True, confidence=0.9, latency_seconds=2.0, data_points=10, cost=0.05),
        BatchEntityResult(name="b", success=True, confidence=0.7, latency_seconds=4.0, data_points=20, cost=0.05),
        BatchEntityResult(name="c", success=False, latency_seconds=6.0),
        BatchEntityResult(name="d", success=False, skipped=True),
    ]

    summary = summarize(results, retried=1)

    assert summary.total == 4
    assert summary.successful == 2
    assert summary.failed == 1
    assert summary.skipped == 1
    assert summary.average_latency_seconds == pytest.approx(4.0)
    assert summary.average_confidence == pytest.approx(0.8)
    assert summary.total_cost == pytest.approx(0.10)
    assert summary.total_data_points == 30
