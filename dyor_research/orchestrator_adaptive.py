"""Adaptive strategy control: decide mid-run whether more collection is worth it."""

import json
import logging
from typing import Dict, List, Optional

from dyor_research.collection.sources import canonical, normalize_source_id
from dyor_research.config.settings import Settings
from dyor_research.llm.client import CompletionClient
from dyor_research.llm.parsing import parse_model_response
from dyor_research.llm.prompts import adaptation_prompt
from dyor_research.llm.schemas import AdaptationResponse, describe_findings
from dyor_research.models import AdaptiveDecision, Findings, PrioritySource, ResearchPlan, ResearchScore
from dyor_research.scoring import ScoringEngine

logger = logging.getLogger(__name__)


def _source_key(raw: str) -> str:
    return normalize_source_id(raw) or canonical(raw)


def identify_gaps(plan: ResearchPlan, findings: Findings) -> List[str]:
    """
    Critical data points from the plan's success criteria that no found source mentions.

    Args:
        plan: Current research plan
        findings: Findings collected so far

    Returns:
        Missing critical data point names, in plan order
    """
    haystack = " ".join(
        json.dumps(f.data, default=str).lower() for f in findings.values() if f.found
    )
    return [point for point in plan.success_criteria.critical_data_points if point.lower() not in haystack]


def remaining_sources(plan: ResearchPlan, findings: Findings) -> List[PrioritySource]:
    """Plan sources with no found finding yet, in plan order."""
    remaining = []
    for ps in plan.priority_sources:
        finding = findings.get(_source_key(ps.source))
        if finding is None or not finding.found:
            remaining.append(ps)
    return remaining


class AdaptiveController:
    """Revise the remaining plan after a round of collection."""

    def __init__(
        self,
        llm: Optional[CompletionClient] = None,
        scoring: Optional[ScoringEngine] = None,
        settings: Optional[Settings] = None,
    ):
        self.llm = llm
        self.settings = settings or Settings()
        self.scoring = scoring or ScoringEngine(self.settings.thresholds)

    async def adapt(self, plan: ResearchPlan, findings: Findings, elapsed_seconds: float) -> AdaptiveDecision:
        score = self.scoring.score(findings)
        gaps = identify_gaps(plan, findings)
        remaining = remaining_sources(plan, findings)

        if not remaining:
            return AdaptiveDecision(
                should_continue=False,
                next_priority=[],
                adjusted_plan=plan.with_sources([]),
                current_score=score.total,
                gaps=gaps,
                reasoning="Every planned source has been collected",
                origin="fallback",
            )

        if self.llm is not None:
            decision = await self._adapt_llm(plan, findings, score, gaps, remaining, elapsed_seconds)
            if decision is not None:
                return decision

        return self._fallback(plan, score, gaps, remaining)

    def _fallback(
        self, plan: ResearchPlan, score: ResearchScore, gaps: List[str], remaining: List[PrioritySource]
    ) -> AdaptiveDecision:
        should_continue = score.total < self.settings.ADAPTIVE_CONTINUE_BELOW_SCORE
        return AdaptiveDecision(
            should_continue=should_continue,
            next_priority=[_source_key(ps.source) for ps in remaining],
            adjusted_plan=plan.with_sources(remaining),
            current_score=score.total,
            gaps=gaps,
            reasoning=(
                f"Score {score.total:.1f} below {self.settings.ADAPTIVE_CONTINUE_BELOW_SCORE:.0f}; collecting remaining sources"
                if should_continue
                else f"Score {score.total:.1f} is sufficient"
            ),
            origin="fallback",
        )

    async def _adapt_llm(
        self,
        plan: ResearchPlan,
        findings: Findings,
        score: ResearchScore,
        gaps: List[str],
        remaining: List[PrioritySource],
        elapsed_seconds: float,
    ) -> Optional[AdaptiveDecision]:
        prompt = adaptation_prompt(
            name=plan.entity,
            elapsed_minutes=elapsed_seconds / 60.0,
            budget_minutes=plan.estimated_time_minutes,
            score=score.model_dump(),
            findings=describe_findings(findings),
            gaps=gaps,
            remaining=[_source_key(ps.source) for ps in remaining],
        )
        try:
            text = await self.llm.complete(prompt)
        except Exception as e:
            logger.warning(f"Adaptation call failed for {plan.entity!r}, using rule-based decision: {e}")
            return None

        outcome = parse_model_response(text, AdaptationResponse)
        if not outcome.ok:
            logger.warning(f"Unparseable adaptation for {plan.entity!r}, using rule-based decision: {outcome.error}")
            return None

        parsed = outcome.value
        skip = {_source_key(s) for s in parsed.adjustments.skip_sources}
        by_key: Dict[str, PrioritySource] = {}
        for ps in remaining:
            key = _source_key(ps.source)
            if key not in skip:
                by_key.setdefault(key, ps)

        ordered_keys = [k for k in dict.fromkeys(_source_key(s) for s in parsed.next_priority) if k in by_key]
        ordered_keys += [k for k in by_key if k not in ordered_keys]
        sources = [by_key[k] for k in ordered_keys]

        return AdaptiveDecision(
            should_continue=parsed.should_continue and bool(sources),
            next_priority=ordered_keys,
            adjusted_plan=plan.with_sources(sources),
            current_score=score.total,
            gaps=gaps,
            reasoning=parsed.reasoning,
            origin="llm",
        )
