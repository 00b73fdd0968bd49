"""Response schemas for each language-model call site.

Every field carries a default so a partially usable response still parses;
``lenient_validate`` drops malformed fields back to those defaults.
"""
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from dyor_research.models import (
    Approach,
    Complexity,
    Priority,
    PrioritySource,
    ProjectKind,
    ProjectType,
    RiskArea,
    SuccessCriteria,
)

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")

_APPROACH_ALIASES = {
    "direct": Approach.DIRECT_AI.value,
    "direct_ai": Approach.DIRECT_AI.value,
    "fast": Approach.DIRECT_AI.value,
    "orchestrated": Approach.ORCHESTRATED.value,
    "full": Approach.ORCHESTRATED.value,
    "hybrid": Approach.HYBRID.value,
}


def snake_keys(value: Any) -> Any:
    """Recursively convert camelCase dict keys to snake_case."""
    if isinstance(value, dict):
        return {_CAMEL.sub("_", str(k)).lower(): snake_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [snake_keys(v) for v in value]
    return value


def _coerce_priority(value: Any) -> str:
    text = str(value or "").lower()
    return text if text in {p.value for p in Priority} else Priority.MEDIUM.value


class _Response(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ClassificationResponse(_Response):
    complexity: Complexity = Complexity.UNKNOWN
    needs_symbol_transformation: bool = False
    project_type: ProjectKind = ProjectKind.UNKNOWN
    confidence: float = Field(default=0.5, ge=0, le=1)
    recommended_approach: Approach = Approach.ORCHESTRATED
    reasoning: str = ""

    @field_validator("recommended_approach", mode="before")
    @classmethod
    def _approach_alias(cls, v):
        if isinstance(v, str):
            return _APPROACH_ALIASES.get(v.strip().lower(), v)
        return v


class PlanResponse(_Response):
    project_classification: ProjectType = Field(default_factory=ProjectType)
    priority_sources: List[PrioritySource] = Field(default_factory=list)
    risk_areas: List[RiskArea] = Field(default_factory=list)
    search_aliases: List[str] = Field(default_factory=list)
    estimated_research_time: float = Field(default=20.0, ge=0)
    success_criteria: SuccessCriteria = Field(default_factory=SuccessCriteria)

    @field_validator("project_classification", "success_criteria", mode="before")
    @classmethod
    def _nested_keys(cls, v):
        return snake_keys(v)

    @field_validator("priority_sources", mode="before")
    @classmethod
    def _usable_sources(cls, v):
        if not isinstance(v, list):
            return v
        usable = []
        for item in snake_keys(v):
            if isinstance(item, str):
                item = {"source": item}
            if not isinstance(item, dict) or not isinstance(item.get("source"), str):
                continue
            item["priority"] = _coerce_priority(item.get("priority"))
            if "expected_data_points" in item and "expected_fields" not in item:
                item["expected_fields"] = item.pop("expected_data_points")
            usable.append(item)
        return usable

    @field_validator("risk_areas", mode="before")
    @classmethod
    def _usable_risks(cls, v):
        if not isinstance(v, list):
            return v
        usable = []
        for item in snake_keys(v):
            if isinstance(item, dict) and isinstance(item.get("area"), str):
                item["priority"] = _coerce_priority(item.get("priority"))
                usable.append(item)
        return usable


class PlanAdjustments(_Response):
    new_search_terms: List[str] = Field(default_factory=list)
    focus_areas: List[str] = Field(default_factory=list)
    skip_sources: List[str] = Field(default_factory=list)


class AdaptationResponse(_Response):
    should_continue: bool = True
    reasoning: str = ""
    next_priority: List[str] = Field(default_factory=list)
    time_recommendation: Optional[float] = None
    adjustments: PlanAdjustments = Field(default_factory=PlanAdjustments)
    quality_assessment: str = ""

    @field_validator("next_priority", mode="before")
    @classmethod
    def _single_priority(cls, v):
        if isinstance(v, str):
            return [v]
        return v


def describe_findings(findings: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Compact per-source summary used in prompts."""
    return [
        {
            "source": source,
            "found": f.found,
            "quality": f.quality.value,
            "data_points": f.data_points,
        }
        for source, f in findings.items()
    ]
