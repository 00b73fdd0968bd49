"""End-to-end research pipeline for one entity."""

import time
from typing import Callable, Optional

import structlog

from dyor_research.collection.scheduler import SourceScheduler
from dyor_research.collection.sources import CollectorRegistry
from dyor_research.config.settings import Settings
from dyor_research.intent.classifier import QueryClassifier
from dyor_research.llm.client import CompletionClient, build_completion_client
from dyor_research.models import Approach, Findings, OrchestrationResult
from dyor_research.net.cache import ConfidenceCache
from dyor_research.net.resilience import ResilienceContext
from dyor_research.orchestrator_adaptive import AdaptiveController
from dyor_research.quality.gates import QualityGatePipeline
from dyor_research.query_planner import ResearchPlanner
from dyor_research.scoring import ScoringEngine
from dyor_research.time_budget import Budget

logger = structlog.get_logger()


class ResearchOrchestrator:
    """Classify -> plan -> collect (adaptively) -> score -> gate.

    Failures are returned as ``OrchestrationResult(success=False, reason=...)``
    rather than raised, so batch callers can treat every entity uniformly.
    """

    def __init__(
        self,
        collectors: CollectorRegistry,
        settings: Optional[Settings] = None,
        llm: Optional[CompletionClient] = None,
        resilience: Optional[ResilienceContext] = None,
        cache: Optional[ConfidenceCache] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or Settings()
        self.resilience = resilience or ResilienceContext.from_settings(self.settings)
        self.cache = cache if cache is not None else ConfidenceCache()
        self._clock = clock

        self.scoring = ScoringEngine(self.settings.thresholds)
        self.gates = QualityGatePipeline(self.scoring, self.settings.thresholds)
        self.classifier = QueryClassifier(llm)
        self.planner = ResearchPlanner(llm)
        self.controller = AdaptiveController(llm, self.scoring, self.settings)
        self.scheduler = SourceScheduler(collectors, self.resilience, self.cache, self.settings)

    @classmethod
    def build(cls, collectors: CollectorRegistry, settings: Optional[Settings] = None) -> "ResearchOrchestrator":
        """Production wiring: shared resilience context and the Anthropic client when configured."""
        settings = settings or Settings()
        resilience = ResilienceContext.from_settings(settings)
        llm = build_completion_client(settings, resilience)
        return cls(collectors, settings=settings, llm=llm, resilience=resilience)

    def _adaptive_rounds(self, approach: Approach) -> int:
        if approach is Approach.DIRECT_AI:
            return 0
        if approach is Approach.HYBRID:
            return min(1, self.settings.ADAPTIVE_MAX_ROUNDS)
        return self.settings.ADAPTIVE_MAX_ROUNDS

    async def research(
        self, name: str, symbol: Optional[str] = None, address: Optional[str] = None
    ) -> OrchestrationResult:
        start = self._clock()
        log = logger.bind(entity=name)

        classification = await self.classifier.classify(name, symbol, address)
        plan = await self.planner.create_plan(name, classification)
        budget = Budget.from_minutes(plan.estimated_time_minutes, clock=self._clock)
        log.info("research_started", approach=classification.approach.value,
                 plan_origin=plan.origin, sources=plan.source_ids)

        findings: Findings = {}
        current = plan
        rounds_left = self._adaptive_rounds(classification.approach)

        while True:
            outcome = await self.scheduler.collect(
                current, symbol=symbol, address=address, findings=findings, budget=budget
            )
            findings = outcome.findings

            if outcome.early_terminated:
                log.info("early_termination", data_points=outcome.total_data_points,
                         proxy_confidence=outcome.proxy_confidence)
                return OrchestrationResult(
                    entity=name,
                    success=True,
                    confidence=outcome.proxy_confidence,
                    total_data_points=outcome.total_data_points,
                    findings=findings,
                    early_terminated=True,
                    classification=classification,
                    plan=plan,
                    elapsed_seconds=self._clock() - start,
                    cost=classification.estimated_cost,
                )

            if rounds_left <= 0 or budget.is_expired():
                break
            decision = await self.controller.adapt(current, findings, budget.elapsed())
            log.info("adaptive_decision", should_continue=decision.should_continue,
                     next_priority=decision.next_priority, score=decision.current_score,
                     gaps=decision.gaps, origin=decision.origin,
                     budget_used=round(budget.percentage_used(), 1))
            if not decision.should_continue or not decision.adjusted_plan.priority_sources:
                break
            current = decision.adjusted_plan
            rounds_left -= 1

        def result(success: bool, **kwargs) -> OrchestrationResult:
            return OrchestrationResult(
                entity=name,
                success=success,
                classification=classification,
                plan=plan,
                elapsed_seconds=self._clock() - start,
                cost=classification.estimated_cost,
                **kwargs,
            )

        if not any(f.found for f in findings.values()):
            log.warning("research_failed", reason="no sources returned data")
            return result(False, reason="All sources failed to return data")

        score = self.scoring.score(findings)
        gate_result = self.gates.check(findings, plan.project_type, entity=name, score=score)
        common = dict(
            confidence=score.confidence,
            total_data_points=score.total_data_points,
            score=score,
            gate_result=gate_result,
        )

        min_confidence = self.settings.MIN_CONFIDENCE_GATE
        if min_confidence > 0 and score.confidence < min_confidence:
            reason = f"Confidence {score.confidence:.2f} below configured minimum {min_confidence:.2f}"
            log.warning("research_failed", reason=reason)
            return result(False, reason=reason, **common)

        if not gate_result.passed:
            log.warning("research_failed", reason=gate_result.user_message,
                        failed_gates=gate_result.failed_gates)
            return result(False, reason=gate_result.user_message, **common)

        log.info("research_complete", score=score.total, grade=score.grade,
                 confidence=score.confidence, data_points=score.total_data_points)
        return result(True, findings=findings, **common)
