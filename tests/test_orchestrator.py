"""End-to-end tests for the research orchestrator."""

import json
from unittest.mock import AsyncMock

import pytest

from conftest import ScriptedLLM, make_finding, strong_findings
from dyor_research.config.settings import Settings
from dyor_research.models import Approach
from dyor_research.net.circuit import CircuitBreakerConfig
from dyor_research.net.resilience import ResilienceContext, TargetPolicy
from dyor_research.net.retry import RetryPolicy
from dyor_research.net.throttle import ThrottleConfig
from dyor_research.orchestrator import ResearchOrchestrator

PLAN_JSON = json.dumps({
    "project_classification": {"type": "web3_game", "confidence": 0.9},
    "priority_sources": [
        {"source": "whitepaper", "priority": "critical"},
        {"source": "onchain_data", "priority": "critical"},
        {"source": "team_info", "priority": "critical"},
        {"source": "community_health", "priority": "high"},
        {"source": "financial_data", "priority": "medium"},
    ],
    "estimated_research_time": 15,
})


def fast_resilience():
    return ResilienceContext(default=TargetPolicy(
        circuit=CircuitBreakerConfig(failure_threshold=5),
        throttle=ThrottleConfig(max_requests_per_minute=100, max_concurrent=5),
        retry=RetryPolicy(max_retries=0),
        timeout=2.0,
    ))


def collectors_for(findings):
    return {source: AsyncMock(return_value=finding) for source, finding in findings.items()}


def orchestrator(collectors, llm=None, **settings):
    return ResearchOrchestrator(
        collectors,
        settings=Settings(**settings),
        llm=llm,
        resilience=fast_resilience(),
    )


class TestResearchOrchestrator:
    """Test the classify -> plan -> collect -> score -> gate pipeline."""

    @pytest.mark.asyncio
    async def test_rich_first_round_terminates_early(self):
        research = orchestrator(collectors_for(strong_findings()), ScriptedLLM(PLAN_JSON))

        result = await research.research("Illuvium", "ILV")

        assert result.success
        assert result.early_terminated
        assert result.confidence == 1.0
        assert result.total_data_points == 86
        assert result.gate_result is None
        assert set(result.findings) == set(strong_findings())

    @pytest.mark.asyncio
    async def test_full_pipeline_passes_gates(self):
        llm = ScriptedLLM(PLAN_JSON)
        research = orchestrator(collectors_for(strong_findings()), llm, EARLY_TERMINATION_THRESHOLD=1000)

        result = await research.research("Illuvium", "ILV")

        assert result.success
        assert not result.early_terminated
        assert result.score.grade == "B"
        assert result.gate_result.passed
        assert result.plan.origin == "llm"
        assert result.classification.source == "static"
        assert result.cost == 0.10
        # Classification was static and nothing was left to adapt
        assert len(llm.prompts) == 1

    @pytest.mark.asyncio
    async def test_fast_path_skips_model_and_adaptation(self):
        collectors = collectors_for(strong_findings())
        llm = ScriptedLLM()
        research = orchestrator(collectors, llm, EARLY_TERMINATION_THRESHOLD=1000)

        result = await research.research("bitcoin")

        assert result.classification.approach is Approach.DIRECT_AI
        assert result.success
        assert result.gate_result.passed
        assert result.plan.origin == "static"
        assert llm.prompts == []
        for collector in collectors.values():
            collector.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fast_path_with_moderate_data_passes_gates(self):
        findings = {source: make_finding(f.data, points=6) for source, f in strong_findings().items()}
        research = orchestrator(collectors_for(findings), ScriptedLLM())

        result = await research.research("bitcoin", "BTC")

        assert not result.early_terminated
        assert result.success, result.reason
        assert result.total_data_points == 30
        assert result.gate_result.failed_gates == []

    @pytest.mark.asyncio
    async def test_adaptive_round_retries_missing_source(self):
        whitepaper = AsyncMock(return_value=make_finding({"tokenomics": "fixed"}, points=8))
        team = AsyncMock(side_effect=[
            ConnectionError("linkedin down"),
            make_finding({"team_members": ["alice"]}, points=8),
        ])
        research = orchestrator({"whitepaper": whitepaper, "team_info": team}, EARLY_TERMINATION_THRESHOLD=1000)

        result = await research.research("Obscure Game")

        assert result.plan.origin == "fallback"
        assert whitepaper.await_count == 1
        assert team.await_count == 2
        assert result.score.tier1_found == 2

    @pytest.mark.asyncio
    async def test_all_sources_failing(self):
        failing = AsyncMock(side_effect=ConnectionError("down"))
        research = orchestrator(
            {"whitepaper": failing, "team_info": failing},
            EARLY_TERMINATION_THRESHOLD=1000,
            ADAPTIVE_MAX_ROUNDS=1,
        )

        result = await research.research("Obscure Game")

        assert not result.success
        assert result.reason == "All sources failed to return data"
        assert result.findings is None
        # Initial round plus one adaptive round, two sources each
        assert failing.await_count == 4

    @pytest.mark.asyncio
    async def test_red_flags_block_release(self):
        findings = strong_findings()
        findings["onchain_data"].data["contract_risks"] = ["honeypot"]
        research = orchestrator(collectors_for(findings), ScriptedLLM(PLAN_JSON), EARLY_TERMINATION_THRESHOLD=1000)

        result = await research.research("Illuvium")

        assert not result.success
        assert result.reason.startswith("Critical red flags detected")
        assert result.gate_result.failed_gates == ["red_flags"]
        assert result.gate_result.retry_after_minutes is None
        assert result.findings is None

    @pytest.mark.asyncio
    async def test_minimum_confidence_override(self):
        collectors = collectors_for({
            "whitepaper": make_finding(points=8),
            "team_info": make_finding({"team_members": ["alice"]}, points=8),
        })
        research = orchestrator(collectors, EARLY_TERMINATION_THRESHOLD=1000, MIN_CONFIDENCE_GATE=0.99)

        result = await research.research("Obscure Game")

        assert not result.success
        assert "below configured minimum" in result.reason
        assert result.score is not None
