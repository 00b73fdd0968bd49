"""Prompt templates. Each asks for a single JSON object in a fixed shape."""
import json
from typing import Any, Dict, List, Optional

CLASSIFICATION_PROMPT = """Classify this crypto/gaming research query so it can be routed.

Name: {name}
Symbol: {symbol}
Contract address: {address}

Respond with ONLY a JSON object:
{{
  "complexity": "simple" | "complex" | "unknown",
  "needs_symbol_transformation": true | false,
  "project_type": "web3_game" | "traditional_game" | "publisher" | "platform" | "defi" | "unknown",
  "confidence": 0.0-1.0,
  "recommended_approach": "direct_ai" | "orchestrated" | "hybrid",
  "reasoning": "one sentence"
}}

Use "simple" and "direct_ai" only for large, well-documented assets where general
knowledge suffices. Games, small tokens and anything ambiguous are "complex"."""


PLAN_PROMPT = """You are planning due-diligence research on "{name}".

Routing hints: complexity={complexity}, project_type={project_type}
Available source ids: {sources}

Respond with ONLY a JSON object:
{{
  "project_classification": {{"type": "web3_game" | "traditional_game" | "publisher" | "platform" | "defi" | "unknown", "confidence": 0.0-1.0, "reasoning": "..."}},
  "priority_sources": [
    {{"source": "<source id>", "priority": "critical" | "high" | "medium" | "low",
      "reasoning": "...", "search_terms": ["..."], "expected_fields": ["..."]}}
  ],
  "risk_areas": [{{"area": "...", "priority": "critical" | "high" | "medium" | "low", "investigation_approach": "..."}}],
  "search_aliases": ["..."],
  "estimated_research_time": <minutes>,
  "success_criteria": {{"minimum_sources": <int>, "critical_data_points": ["..."], "red_flag_checks": ["..."]}}
}}

Order priority_sources from most to least important."""


ADAPTATION_PROMPT = """Research on "{name}" is in progress.

Elapsed: {elapsed_minutes:.1f} of {budget_minutes:.1f} planned minutes
Current score: {score:.1f} (grade {grade}, confidence {confidence:.2f})
Collected so far:
{findings}
Gaps against success criteria: {gaps}
Sources not yet found: {remaining}

Decide whether more collection is worthwhile. Respond with ONLY a JSON object:
{{
  "should_continue": true | false,
  "reasoning": "...",
  "next_priority": ["<source id>", ...],
  "time_recommendation": <minutes>,
  "adjustments": {{"new_search_terms": ["..."], "focus_areas": ["..."], "skip_sources": ["<source id>"]}},
  "quality_assessment": "..."
}}"""


def classification_prompt(name: str, symbol: Optional[str] = None, address: Optional[str] = None) -> str:
    return CLASSIFICATION_PROMPT.format(name=name, symbol=symbol or "n/a", address=address or "n/a")


def plan_prompt(name: str, complexity: str, project_type: str, sources: List[str]) -> str:
    return PLAN_PROMPT.format(
        name=name,
        complexity=complexity,
        project_type=project_type,
        sources=", ".join(sources),
    )


def adaptation_prompt(
    name: str,
    elapsed_minutes: float,
    budget_minutes: float,
    score: Dict[str, Any],
    findings: List[Dict[str, Any]],
    gaps: List[str],
    remaining: List[str],
) -> str:
    return ADAPTATION_PROMPT.format(
        name=name,
        elapsed_minutes=elapsed_minutes,
        budget_minutes=budget_minutes,
        score=score["total"],
        grade=score["grade"],
        confidence=score["confidence"],
        findings=json.dumps(findings, indent=2),
        gaps=", ".join(gaps) or "none",
        remaining=", ".join(remaining) or "none",
    )
