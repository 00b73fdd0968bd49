"""
Research planning: which sources to consult for an entity, in what order
"""

import logging
from typing import List, Optional

from dyor_research.collection.sources import SOURCE_IDS, normalize_source_id
from dyor_research.llm.client import CompletionClient
from dyor_research.llm.parsing import parse_model_response
from dyor_research.llm.prompts import plan_prompt
from dyor_research.llm.schemas import PlanResponse
from dyor_research.models import (
    Approach,
    Priority,
    PrioritySource,
    ProjectKind,
    ProjectType,
    QueryClassification,
    ResearchPlan,
    RiskArea,
    SuccessCriteria,
)

logger = logging.getLogger(__name__)

# Established gaming projects: stricter data expectations apply
ESTABLISHED_PROJECTS = {
    "axie infinity", "axie", "axs", "sky mavis",
    "decentraland", "mana",
    "the sandbox", "sandbox", "sand",
    "illuvium", "ilv",
    "gods unchained",
    "splinterlands", "sps",
    "alien worlds", "tlm",
    "star atlas", "atlas",
    "big time",
    "gala", "gala games",
}


def is_established_name(name: str, symbol: Optional[str] = None) -> bool:
    candidates = {name.strip().lower()}
    if symbol:
        candidates.add(symbol.strip().lower())
    return bool(candidates & ESTABLISHED_PROJECTS)


def fallback_plan(name: str, project_type: Optional[ProjectType] = None) -> ResearchPlan:
    """Minimal plan used whenever a model plan cannot be produced."""
    return ResearchPlan(
        entity=name,
        project_type=project_type or ProjectType(reasoning="Fallback classification"),
        priority_sources=[
            PrioritySource(
                source="whitepaper",
                priority=Priority.CRITICAL,
                search_terms=["whitepaper", "documentation"],
                expected_fields=["tokenomics", "roadmap"],
                reasoning="Essential project documentation",
            ),
            PrioritySource(
                source="team_info",
                priority=Priority.CRITICAL,
                search_terms=["team", "founders"],
                expected_fields=["team_members", "experience"],
                reasoning="Team verification required",
            ),
        ],
        risk_areas=[
            RiskArea(
                area="general_verification",
                priority=Priority.HIGH,
                investigation_approach="Verify basic project legitimacy",
            )
        ],
        search_aliases=[name],
        estimated_time_minutes=20.0,
        success_criteria=SuccessCriteria(
            minimum_sources=3,
            critical_data_points=["team_verified", "documentation_found"],
            red_flag_checks=["scam_indicators"],
        ),
        origin="fallback",
    )


def fast_path_plan(name: str, classification: QueryClassification) -> ResearchPlan:
    """Static plan for well-known assets: the tier-1 sources plus market and community data."""
    sources = [
        PrioritySource(source="financial_data", priority=Priority.CRITICAL,
                       search_terms=[name, "market cap", "price"], expected_fields=["market_cap", "volume"]),
        PrioritySource(source="whitepaper", priority=Priority.HIGH,
                       search_terms=[name, "whitepaper"], expected_fields=["tokenomics"]),
        PrioritySource(source="team_info", priority=Priority.HIGH,
                       search_terms=[name, "founders"], expected_fields=["team_members"]),
        PrioritySource(source="onchain_data", priority=Priority.HIGH,
                       search_terms=[name, "contract"], expected_fields=["contracts_verified"]),
        PrioritySource(source="community_health", priority=Priority.MEDIUM,
                       search_terms=[name, "community"], expected_fields=["twitter_followers"]),
    ]
    return ResearchPlan(
        entity=name,
        project_type=ProjectType(type=classification.project_type, confidence=classification.confidence,
                                 reasoning="Fast path"),
        priority_sources=sources,
        search_aliases=[a for a in (name, classification.symbol) if a],
        estimated_time_minutes=max(1.0, classification.estimated_time_seconds / 60.0),
        success_criteria=SuccessCriteria(minimum_sources=2, critical_data_points=["market_cap"]),
        origin="static",
    )


class ResearchPlanner:
    """Build a ResearchPlan from a routing decision."""

    def __init__(self, llm: Optional[CompletionClient] = None):
        self.llm = llm

    async def create_plan(self, name: str, classification: QueryClassification) -> ResearchPlan:
        if classification.approach is Approach.DIRECT_AI:
            return fast_path_plan(name, classification)

        established = is_established_name(name, classification.symbol)
        hint = ProjectType(
            type=classification.project_type,
            confidence=classification.confidence,
            reasoning=classification.reasoning,
            established=established,
        )

        if self.llm is None:
            return fallback_plan(name, hint)

        try:
            text = await self.llm.complete(
                plan_prompt(name, classification.complexity.value, classification.project_type.value, list(SOURCE_IDS))
            )
        except Exception as e:
            logger.warning(f"Plan generation failed for {name!r}, using fallback plan: {e}")
            return fallback_plan(name, hint)

        outcome = parse_model_response(text, PlanResponse)
        if not outcome.ok:
            logger.warning(f"Unparseable plan for {name!r}, using fallback plan: {outcome.error}")
            return fallback_plan(name, hint)

        parsed = outcome.value
        if not parsed.priority_sources:
            logger.warning(f"Plan for {name!r} listed no sources, using fallback plan")
            return fallback_plan(name, hint)

        project_type = parsed.project_classification
        if project_type.type is ProjectKind.UNKNOWN and hint.type is not ProjectKind.UNKNOWN:
            project_type = project_type.model_copy(update={"type": hint.type})
        project_type = project_type.model_copy(update={"established": established})

        aliases: List[str] = list(dict.fromkeys([name] + parsed.search_aliases))
        plan = ResearchPlan(
            entity=name,
            project_type=project_type,
            priority_sources=parsed.priority_sources,
            risk_areas=parsed.risk_areas,
            search_aliases=aliases,
            estimated_time_minutes=parsed.estimated_research_time,
            success_criteria=parsed.success_criteria,
            origin="llm",
        )
        unmapped = [s for s in plan.source_ids if normalize_source_id(s) is None]
        if unmapped:
            logger.info(f"Plan for {name!r} names unmapped sources: {unmapped}")
        return plan
