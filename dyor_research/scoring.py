"""
Research scoring: coverage, reliability and recency of collected findings
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple
import logging

from dyor_research.config.settings import ResearchThresholds
from dyor_research.models import (
    Finding,
    Findings,
    QualityTier,
    Reliability,
    ResearchScore,
    ScoreBreakdown,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceSpec:
    tier: int
    weight: float
    reliability: Reliability
    required: bool = False


# Source tiers, weights and reliability classes
SOURCE_CATALOG: Dict[str, SourceSpec] = {
    # Tier 1: critical
    "whitepaper": SourceSpec(1, 20, Reliability.OFFICIAL, required=True),
    "onchain_data": SourceSpec(1, 15, Reliability.VERIFIED, required=True),
    "team_info": SourceSpec(1, 15, Reliability.VERIFIED, required=True),
    # Tier 2: important
    "documentation": SourceSpec(2, 15, Reliability.OFFICIAL),
    "community_health": SourceSpec(2, 15, Reliability.VERIFIED),
    "financial_data": SourceSpec(2, 10, Reliability.VERIFIED),
    "product_data": SourceSpec(2, 10, Reliability.VERIFIED),
    "game_specific": SourceSpec(2, 10, Reliability.VERIFIED),
    "github_activity": SourceSpec(2, 10, Reliability.VERIFIED),
    # Tier 3: supporting
    "security_audits": SourceSpec(3, 3, Reliability.OFFICIAL),
    "media_coverage": SourceSpec(3, 1, Reliability.SCRAPED),
    "social_signals": SourceSpec(3, 1, Reliability.SCRAPED),
}

TIER1_SOURCES = [s for s, spec in SOURCE_CATALOG.items() if spec.tier == 1]
REQUIRED_SOURCES = [s for s, spec in SOURCE_CATALOG.items() if spec.required]

QUALITY_MULTIPLIER = {
    QualityTier.HIGH: 1.0,
    QualityTier.MEDIUM: 0.7,
    QualityTier.LOW: 0.4,
}

RELIABILITY_POINTS = {
    Reliability.OFFICIAL: 10,
    Reliability.VERIFIED: 7,
    Reliability.SCRAPED: 4,
}

# (max age in days, points)
RECENCY_BANDS: List[Tuple[int, int]] = [(7, 5), (30, 4), (90, 3), (180, 2)]
STALE_RECENCY_POINTS = 1

COVERAGE_CAP = 40.0
RELIABILITY_CAP = 40.0
RECENCY_CAP = 20.0
DATA_POINT_SATURATION = 1.2

# Reliability and recency saturate once a full tier-1 set of perfect sources is found
_RELIABILITY_FULL = RELIABILITY_POINTS[Reliability.OFFICIAL] * len(TIER1_SOURCES)
_RECENCY_FULL = RECENCY_BANDS[0][1] * len(TIER1_SOURCES)
_MAX_WEIGHTED = sum(spec.weight * DATA_POINT_SATURATION for spec in SOURCE_CATALOG.values())

GRADE_BANDS = [(85, "A"), (70, "B"), (60, "C"), (40, "D")]

WELL_KNOWN_PROJECTS = {"axie infinity", "axie", "axs", "sky mavis"}


def grade_for(total: float) -> str:
    for floor, grade in GRADE_BANDS:
        if total >= floor:
            return grade
    return "F"


def recency_points(timestamp: datetime, now: datetime) -> int:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    age_days = (now - timestamp).total_seconds() / 86400
    for max_days, points in RECENCY_BANDS:
        if age_days <= max_days:
            return points
    return STALE_RECENCY_POINTS


def _found(findings: Findings) -> Dict[str, Finding]:
    return {source: f for source, f in findings.items() if f.found}


class ScoringEngine:
    """Turn findings into a score, grade and confidence.

    Scores are recomputed from scratch on every call. Sub-scores only ever
    add contributions from found sources, so finding another source can
    never lower the total.
    """

    def __init__(
        self,
        thresholds: Optional[ResearchThresholds] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.thresholds = thresholds or ResearchThresholds()
        self._clock = clock

    def score(self, findings: Findings) -> ResearchScore:
        """Score found sources out of 100 (coverage 40, reliability 40, recency 20).

        Reliability and recency are saturating sums, not averages: each found
        source adds its points, and the component reaches its cap once the
        sum equals a full tier-1 set of official, fresh sources. A lone
        official whitepaper therefore earns 13.3/40 reliability rather than
        40/40, and adding a source can only raise the score.
        """
        found = _found(findings)
        now = self._clock()

        weighted = 0.0
        reliability_sum = 0.0
        recency_sum = 0.0
        for source, finding in found.items():
            spec = SOURCE_CATALOG.get(source)
            if spec is None:
                continue
            depth = min(finding.data_points / 10.0, DATA_POINT_SATURATION)
            weighted += spec.weight * QUALITY_MULTIPLIER[finding.quality] * depth
            reliability_sum += RELIABILITY_POINTS[spec.reliability]
            recency_sum += recency_points(finding.timestamp, now)

        coverage = min(COVERAGE_CAP, COVERAGE_CAP * weighted / _MAX_WEIGHTED)
        reliability = min(RELIABILITY_CAP, RELIABILITY_CAP * reliability_sum / _RELIABILITY_FULL)
        recency = min(RECENCY_CAP, RECENCY_CAP * recency_sum / _RECENCY_FULL)
        total = round(min(100.0, coverage + reliability + recency), 2)

        data_points = sum(f.data_points for f in found.values())
        tier1_found = sum(1 for s in TIER1_SOURCES if s in found)
        tier1_coverage = tier1_found / len(TIER1_SOURCES)
        missing = [s for s in REQUIRED_SOURCES if s not in found]

        confidence = total / 100.0
        if tier1_coverage >= 0.8:
            confidence += 0.1
        if data_points >= self.thresholds.min_data_points:
            confidence += 0.1
        confidence -= 0.15 * len(missing)
        confidence = max(0.0, min(1.0, confidence))

        passes = (
            total >= self.thresholds.min_score
            and data_points >= self.thresholds.min_data_points
            and tier1_found >= 2
        )

        return ResearchScore(
            total=total,
            grade=grade_for(total),
            confidence=round(confidence, 4),
            breakdown=ScoreBreakdown(
                coverage=round(coverage, 2),
                reliability=round(reliability, 2),
                recency=round(recency, 2),
            ),
            missing_critical=missing,
            recommendations=self._recommendations(total, missing, tier1_coverage, data_points),
            passes_threshold=passes,
            total_data_points=data_points,
            tier1_found=tier1_found,
        )

    def _recommendations(
        self, total: float, missing: List[str], tier1_coverage: float, data_points: int
    ) -> List[str]:
        recs = []
        if total < self.thresholds.min_score:
            recs.append(f"Insufficient data for reliable analysis (minimum: {self.thresholds.min_score:.0f})")
        if missing:
            recs.append(f"Missing critical data: {', '.join(missing)}")
        if tier1_coverage < 0.6:
            recs.append("Need more foundational project information")
        if data_points < self.thresholds.min_data_points:
            recs.append(
                f"Need more detailed data points for thorough analysis (minimum: {self.thresholds.min_data_points})"
            )
        return recs


def is_established_project(findings: Findings, entity: Optional[str] = None) -> bool:
    """Well-known allow-list, deep data, or on-chain + official + team evidence."""
    if entity and entity.strip().lower() in WELL_KNOWN_PROJECTS:
        return True
    found = _found(findings)
    if sum(f.data_points for f in found.values()) >= 25:
        return True
    official = any(
        SOURCE_CATALOG[s].reliability is Reliability.OFFICIAL for s in found if s in SOURCE_CATALOG
    )
    return "onchain_data" in found and "team_info" in found and official


def should_proceed(
    findings: Findings,
    entity: Optional[str] = None,
    engine: Optional[ScoringEngine] = None,
) -> Tuple[bool, str, ResearchScore]:
    """
    Decide whether findings are good enough to hand to analysis.

    Returns:
        (proceed, human-readable reason, score)
    """
    engine = engine or ScoringEngine()
    score = engine.score(findings)
    t = engine.thresholds

    if is_established_project(findings, entity):
        if score.total >= t.established_min_score and score.total_data_points >= t.established_min_data_points:
            return True, f"Established project with sufficient data (score {score.total:.0f}, grade {score.grade})", score
        logger.info(
            "Established project below bar: score=%.1f (need >=%.0f), data_points=%d (need >=%d)",
            score.total, t.established_min_score, score.total_data_points, t.established_min_data_points,
        )

    if score.passes_threshold:
        return True, f"Research quality sufficient (score {score.total:.0f}, grade {score.grade})", score

    reason = "; ".join(score.recommendations) or "Research score below threshold"
    return False, reason, score
