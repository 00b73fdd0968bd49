"""Quality gates deciding whether research results may be released for analysis."""

import logging
from typing import Any, Callable, Dict, List, Optional

from dyor_research.config.settings import ResearchThresholds
from dyor_research.models import (
    Finding,
    Findings,
    GateOutcome,
    ProjectKind,
    ProjectType,
    QualityGateResult,
    QualityTier,
    ResearchScore,
)
from dyor_research.scoring import TIER1_SOURCES, WELL_KNOWN_PROJECTS, ScoringEngine

logger = logging.getLogger(__name__)

# Retry delays in minutes
RETRY_STRUCTURAL = 24 * 60
RETRY_COMMUNITY = 7 * 24 * 60
RETRY_DEFAULT = 60

STRUCTURAL_GATES = {"critical_sources", "technical_foundation"}
CRITICAL_GATES = {"minimum_score", "critical_sources", "identity_verification"}

COMMUNITY_COUNT_FIELDS = (
    "discord_members",
    "twitter_followers",
    "telegram_members",
    "reddit_subscribers",
)


def safe_get(data: Any, key: str, default: Any = None) -> Any:
    """Safely read a key from a finding payload that may not be a dict."""
    if isinstance(data, dict):
        return data.get(key, default)
    return default


def _data(findings: Findings, source: str) -> Any:
    finding = findings.get(source)
    if finding is None or not finding.found:
        return None
    return finding.data


def _is_found(findings: Findings, source: str) -> bool:
    finding = findings.get(source)
    return finding is not None and finding.found


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple, set)):
        return list(value)
    if value is None:
        return []
    return [value]


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def established_from_findings(findings: Findings) -> bool:
    """Strong foundational evidence: a rich high-quality whitepaper or audits/funding on record."""
    whitepaper: Optional[Finding] = findings.get("whitepaper")
    if whitepaper is None or not whitepaper.found or whitepaper.quality is not QualityTier.HIGH:
        return False
    audits = findings.get("security_audits")
    has_audit = audits is not None and audits.found and audits.quality is QualityTier.HIGH
    has_funding = bool(safe_get(_data(findings, "financial_data"), "funding_rounds"))
    return has_audit or has_funding or whitepaper.data_points > 20


class QualityGatePipeline:
    """Seven independent gates, always all evaluated, in fixed order."""

    GATES = (
        ("minimum_score", "Minimum research score"),
        ("critical_sources", "Critical sources"),
        ("identity_verification", "Identity verification"),
        ("technical_foundation", "Technical foundation"),
        ("community_proof", "Community proof"),
        ("financial_transparency", "Financial transparency"),
        ("red_flags", "Red flags"),
    )

    def __init__(
        self,
        scoring: Optional[ScoringEngine] = None,
        thresholds: Optional[ResearchThresholds] = None,
    ):
        self.thresholds = thresholds or ResearchThresholds()
        self.scoring = scoring or ScoringEngine(self.thresholds)
        self._checks: Dict[str, Callable[..., GateOutcome]] = {
            "minimum_score": self._minimum_score,
            "critical_sources": self._critical_sources,
            "identity_verification": self._identity_verification,
            "technical_foundation": self._technical_foundation,
            "community_proof": self._community_proof,
            "financial_transparency": self._financial_transparency,
            "red_flags": self._red_flags,
        }

    def check(
        self,
        findings: Findings,
        project_type_hint: Optional[ProjectType] = None,
        entity: Optional[str] = None,
        score: Optional[ResearchScore] = None,
    ) -> QualityGateResult:
        score = score or self.scoring.score(findings)
        hint = project_type_hint or ProjectType()
        established = (
            hint.established
            or established_from_findings(findings)
            or (score.total >= 75 and score.confidence >= 0.8)
        )

        outcomes: List[GateOutcome] = []
        for gate_id, name in self.GATES:
            outcome = self._checks[gate_id](
                findings=findings, score=score, hint=hint, established=established, entity=entity
            )
            outcomes.append(outcome.model_copy(update={"id": gate_id, "name": name}))

        failed = [o.id for o in outcomes if not o.passed]
        passed = not failed
        recommendations = [r for o in outcomes for r in o.reasons]
        suggestions = list(dict.fromkeys(s for o in outcomes for s in o.suggestions))

        if passed:
            logger.info(
                "Quality gates passed: score=%.1f grade=%s confidence=%.2f",
                score.total, score.grade, score.confidence,
            )
        else:
            logger.warning("Quality gates failed: %s (score=%.1f)", ", ".join(failed), score.total)

        return QualityGateResult(
            passed=passed,
            failed_gates=failed,
            recommendations=recommendations,
            user_message=self._user_message(passed, failed, score),
            retry_after_minutes=None if passed else self._retry_after(failed),
            manual_research_suggestions=suggestions,
            gates=outcomes,
            score=score,
        )

    def minimum_score_threshold(self, score: ResearchScore, established: bool) -> float:
        t = self.thresholds
        threshold = t.established_min_score if established else t.min_score
        if score.confidence >= t.very_high_confidence:
            threshold = min(threshold, t.very_high_confidence_score)
        elif score.confidence >= t.high_confidence:
            threshold = min(threshold, t.min_score)
        return threshold

    # Gate 1
    def _minimum_score(self, score: ResearchScore, established: bool, **_) -> GateOutcome:
        threshold = self.minimum_score_threshold(score, established)
        if score.total >= threshold:
            return GateOutcome(id="minimum_score", passed=True)
        return GateOutcome(
            id="minimum_score",
            passed=False,
            reasons=[f"Research score {score.total:.0f} below required {threshold:.0f}"],
            suggestions=["Gather additional data from official project sources"],
        )

    # Gate 2
    def _critical_sources(self, findings: Findings, score: ResearchScore, established: bool,
                          entity: Optional[str], **_) -> GateOutcome:
        t = self.thresholds
        lenient = bool(entity) and entity.strip().lower() in WELL_KNOWN_PROJECTS
        if lenient:
            required, min_points = 2, t.lenient_min_data_points
        elif established:
            required, min_points = len(TIER1_SOURCES), t.established_min_data_points
        else:
            required, min_points = 2, t.min_data_points

        found = [s for s in TIER1_SOURCES if _is_found(findings, s)]
        missing = [s for s in TIER1_SOURCES if s not in found]
        reasons, suggestions = [], []
        if len(found) < required:
            reasons.append(f"Only {len(found)} of {required} required critical sources found (missing: {', '.join(missing)})")
            suggestions.extend(f"Locate {source.replace('_', ' ')} manually" for source in missing)
        if score.total_data_points < min_points:
            reasons.append(f"Only {score.total_data_points} data points collected (need {min_points})")
            suggestions.append("Expand search terms and aliases to collect more data")
        return GateOutcome(id="critical_sources", passed=not reasons,
                           reasons=reasons, suggestions=suggestions)

    # Gate 3
    def _identity_verification(self, findings: Findings, **_) -> GateOutcome:
        team = _data(findings, "team_info")
        if not team:
            return GateOutcome(
                id="identity_verification", passed=False,
                reasons=["No team or founder information found"],
                suggestions=["Check LinkedIn and the official website for team members"],
            )
        members = safe_get(team, "team_members")
        if safe_get(team, "anonymous") or (members is not None and not members):
            return GateOutcome(
                id="identity_verification", passed=False,
                reasons=["Team is anonymous or unverified"],
                suggestions=["Verify founder identities through independent sources"],
            )
        reasons = []
        if isinstance(team, dict) and not (safe_get(team, "has_experience") or safe_get(team, "previous_projects")):
            reasons.append("Advisory: team experience not documented")
        return GateOutcome(id="identity_verification", passed=True, reasons=reasons)

    # Gate 4
    def _technical_foundation(self, findings: Findings, hint: ProjectType, **_) -> GateOutcome:
        whitepaper = _data(findings, "whitepaper")
        product = _data(findings, "product_data")
        onchain = _data(findings, "onchain_data")

        has_docs = (
            _is_found(findings, "whitepaper")
            or _is_found(findings, "documentation")
            or bool(safe_get(whitepaper, "comprehensive") or safe_get(whitepaper, "technical_details"))
        )
        has_product = bool(safe_get(product, "game_exists") or safe_get(product, "product_live"))
        has_contracts = bool(safe_get(onchain, "contracts_verified"))

        reasons = []
        if hint.type is ProjectKind.WEB3_GAME and not safe_get(onchain, "token_deployed"):
            reasons.append("Advisory: no deployed token found for a web3 game")
        if hint.type is ProjectKind.TRADITIONAL_GAME and not (
            safe_get(product, "steam_listed") or safe_get(product, "other_platforms")
        ):
            reasons.append("Advisory: no store listing found")

        if has_docs or has_product or has_contracts:
            return GateOutcome(id="technical_foundation", passed=True, reasons=reasons)
        return GateOutcome(
            id="technical_foundation", passed=False,
            reasons=["No documentation, live product, or verified contracts found"] + reasons,
            suggestions=["Look for a whitepaper, docs site, playable build or verified contract"],
        )

    # Gate 5
    def _community_proof(self, findings: Findings, **_) -> GateOutcome:
        community = _data(findings, "community_health")
        members = sum(_number(safe_get(community, key)) for key in COMMUNITY_COUNT_FIELDS)
        if members < self.thresholds.min_community_members:
            return GateOutcome(
                id="community_proof", passed=False,
                reasons=[f"Community size {members:.0f} below {self.thresholds.min_community_members}"],
                suggestions=["Check Discord, Telegram and Twitter/X for official channels"],
            )
        reasons = []
        engagement = safe_get(community, "engagement_rate")
        if engagement is not None and _number(engagement) < self.thresholds.min_engagement_rate:
            reasons.append(f"Advisory: low engagement rate ({_number(engagement):.3f})")
        return GateOutcome(id="community_proof", passed=True, reasons=reasons)

    # Gate 6
    def _financial_transparency(self, findings: Findings, hint: ProjectType, **_) -> GateOutcome:
        financial = _data(findings, "financial_data")
        onchain = _data(findings, "onchain_data")
        reasons, suggestions = [], []
        tokenized = hint.type is ProjectKind.WEB3_GAME or bool(safe_get(onchain, "token_deployed"))
        if tokenized and not safe_get(financial, "tokenomics"):
            reasons.append("Advisory: tokenomics not documented")
            suggestions.append("Find token distribution and vesting schedules")
        if hint.type is ProjectKind.TRADITIONAL_GAME and not safe_get(financial, "revenue_model"):
            reasons.append("Advisory: revenue model not documented")
        if not (safe_get(financial, "funding_rounds") or safe_get(financial, "market_cap")):
            reasons.append("Advisory: no funding or market data found")
            suggestions.append("Check Crunchbase or press releases for funding rounds")
        return GateOutcome(id="financial_transparency", passed=True, blocking=False,
                           reasons=reasons, suggestions=suggestions)

    # Gate 7
    def _red_flags(self, findings: Findings, **_) -> GateOutcome:
        flags = []
        for source, finding in findings.items():
            data = finding.data
            if not isinstance(data, dict):
                continue
            markers = _as_list(data.get("red_flags"))
            if "scam_history" in markers:
                flags.append("Team members linked to previous scams")
            if "rug_pull_indicators" in markers:
                flags.append("Financial rug-pull indicators detected")
            if _number(data.get("bot_percentage")) > self.thresholds.max_bot_share:
                flags.append("Majority of community appears to be bots")
            if "honeypot" in _as_list(data.get("contract_risks")):
                flags.append("Contract shows honeypot characteristics")
        flags = list(dict.fromkeys(flags))
        if flags:
            return GateOutcome(id="red_flags", passed=False, reasons=flags)
        return GateOutcome(id="red_flags", passed=True)

    @staticmethod
    def _retry_after(failed: List[str]) -> Optional[int]:
        if "red_flags" in failed:
            return None
        if STRUCTURAL_GATES & set(failed):
            return RETRY_STRUCTURAL
        if "community_proof" in failed:
            return RETRY_COMMUNITY
        return RETRY_DEFAULT

    def _user_message(self, passed: bool, failed: List[str], score: ResearchScore) -> str:
        if passed:
            return (
                f"Research quality sufficient for analysis "
                f"(Grade {score.grade}, {score.confidence * 100:.0f}% confidence)"
            )
        if "red_flags" in failed:
            return "Critical red flags detected. Analysis cannot proceed for safety reasons."
        if "minimum_score" in failed:
            return (
                f"Insufficient data for reliable analysis (score {score.total:.0f}, "
                f"minimum {self.thresholds.min_score:.0f}). Manual research recommended."
            )
        if CRITICAL_GATES & set(failed):
            return "Missing critical project information. Manual verification of team and documentation required."
        return "Research quality below threshold. Additional data collection recommended."
