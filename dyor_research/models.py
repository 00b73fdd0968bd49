from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Complexity(str, Enum):
    SIMPLE = "simple"
    COMPLEX = "complex"
    UNKNOWN = "unknown"


class Approach(str, Enum):
    """Routing decision for one research query"""
    DIRECT_AI = "direct_ai"          # Fast path, no orchestration
    ORCHESTRATED = "orchestrated"    # Full plan, fan-out, adaptive loop
    HYBRID = "hybrid"                # Full plan, at most one adaptive round


class QualityTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Reliability(str, Enum):
    OFFICIAL = "official"
    VERIFIED = "verified"
    SCRAPED = "scraped"


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ProjectKind(str, Enum):
    WEB3_GAME = "web3_game"
    TRADITIONAL_GAME = "traditional_game"
    PUBLISHER = "publisher"
    PLATFORM = "platform"
    DEFI = "defi"
    UNKNOWN = "unknown"


class QueryClassification(BaseModel):
    name: str
    symbol: Optional[str] = None
    complexity: Complexity = Complexity.UNKNOWN
    needs_symbol_transformation: bool = False
    project_type: ProjectKind = ProjectKind.UNKNOWN
    confidence: float = Field(default=0.5, ge=0, le=1)
    approach: Approach = Approach.ORCHESTRATED
    estimated_cost: float = Field(default=0.05, ge=0)  # USD
    estimated_time_seconds: float = Field(default=30.0, ge=0)
    source: Literal["static", "llm", "fallback"] = "llm"
    reasoning: str = ""


class ProjectType(BaseModel):
    type: ProjectKind = ProjectKind.UNKNOWN
    confidence: float = Field(default=0.5, ge=0, le=1)
    reasoning: str = ""
    established: bool = False


class PrioritySource(BaseModel):
    source: str
    priority: Priority = Priority.MEDIUM
    search_terms: List[str] = Field(default_factory=list)
    expected_fields: List[str] = Field(default_factory=list)
    reasoning: str = ""


class RiskArea(BaseModel):
    area: str
    priority: Priority = Priority.MEDIUM
    investigation_approach: str = ""


class SuccessCriteria(BaseModel):
    minimum_sources: int = Field(default=3, ge=0)
    critical_data_points: List[str] = Field(default_factory=list)
    red_flag_checks: List[str] = Field(default_factory=list)


class ResearchPlan(BaseModel):
    """Research plan for one entity. Superseded, never mutated."""
    model_config = ConfigDict(frozen=True)

    entity: str
    project_type: ProjectType = Field(default_factory=ProjectType)
    priority_sources: List[PrioritySource] = Field(default_factory=list)
    risk_areas: List[RiskArea] = Field(default_factory=list)
    search_aliases: List[str] = Field(default_factory=list)
    estimated_time_minutes: float = Field(default=20.0, ge=0)
    success_criteria: SuccessCriteria = Field(default_factory=SuccessCriteria)
    origin: Literal["llm", "fallback", "static", "adjusted"] = "llm"

    @property
    def source_ids(self) -> List[str]:
        return [s.source for s in self.priority_sources]

    def with_sources(self, sources: List[PrioritySource]) -> "ResearchPlan":
        """Return an adjusted plan; success criteria are carried over untouched."""
        return self.model_copy(update={"priority_sources": list(sources), "origin": "adjusted"})


class Finding(BaseModel):
    found: bool
    data: Any = None
    quality: QualityTier = QualityTier.LOW
    timestamp: datetime = Field(default_factory=utcnow)
    data_points: int = Field(default=0, ge=0)
    error: Optional[str] = None

    @classmethod
    def missing(cls, error: Optional[str] = None) -> "Finding":
        return cls(found=False, error=error)


Findings = Dict[str, Finding]


class ScoreBreakdown(BaseModel):
    coverage: float = 0.0
    reliability: float = 0.0
    recency: float = 0.0


class ResearchScore(BaseModel):
    total: float = Field(ge=0, le=100)
    grade: Literal["A", "B", "C", "D", "F"]
    confidence: float = Field(ge=0, le=1)
    breakdown: ScoreBreakdown
    missing_critical: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    passes_threshold: bool = False
    total_data_points: int = 0
    tier1_found: int = 0


class GateOutcome(BaseModel):
    id: str
    name: str = ""
    passed: bool
    blocking: bool = True
    reasons: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)


class QualityGateResult(BaseModel):
    passed: bool
    failed_gates: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    user_message: str = ""
    retry_after_minutes: Optional[int] = None
    manual_research_suggestions: List[str] = Field(default_factory=list)
    gates: List[GateOutcome] = Field(default_factory=list)
    score: Optional[ResearchScore] = None


class CollectionOutcome(BaseModel):
    findings: Dict[str, Finding] = Field(default_factory=dict)
    total_data_points: int = 0
    proxy_confidence: float = 0.0
    early_terminated: bool = False
    failed_sources: List[str] = Field(default_factory=list)


class AdaptiveDecision(BaseModel):
    should_continue: bool
    next_priority: List[str] = Field(default_factory=list)
    adjusted_plan: ResearchPlan
    current_score: float = 0.0
    gaps: List[str] = Field(default_factory=list)
    reasoning: str = ""
    origin: Literal["llm", "fallback"] = "fallback"


class OrchestrationResult(BaseModel):
    entity: str
    success: bool
    confidence: float = 0.0
    total_data_points: int = 0
    findings: Optional[Dict[str, Finding]] = None
    reason: Optional[str] = None
    early_terminated: bool = False
    score: Optional[ResearchScore] = None
    gate_result: Optional[QualityGateResult] = None
    classification: Optional[QueryClassification] = None
    plan: Optional[ResearchPlan] = None
    elapsed_seconds: float = 0.0
    cost: float = 0.0


class BatchRequest(BaseModel):
    name: str
    symbol: Optional[str] = None
    address: Optional[str] = None
    priority: int = 0
    complexity: Complexity = Complexity.UNKNOWN
    estimated_cost: Optional[float] = None


class BatchConfig(BaseModel):
    max_concurrency: int = Field(default=3, ge=1)
    wave_delay_seconds: float = Field(default=2.0, ge=0)
    retry_failed: bool = False
    max_retries: int = Field(default=1, ge=0)


class BatchEntityResult(BaseModel):
    name: str
    success: bool
    confidence: float = 0.0
    data_points: int = 0
    latency_seconds: float = 0.0
    cost: float = 0.0
    attempts: int = 0
    skipped: bool = False
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class BatchSummary(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    retried: int = 0
    average_latency_seconds: float = 0.0
    average_confidence: float = 0.0
    total_cost: float = 0.0
    total_data_points: int = 0


class BatchResult(BaseModel):
    results: List[BatchEntityResult] = Field(default_factory=list)
    summary: BatchSummary = Field(default_factory=BatchSummary)
