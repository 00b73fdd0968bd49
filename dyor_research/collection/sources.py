"""Collector ids, id normalization, and turning raw collector payloads into findings."""

import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from dyor_research.models import Finding, QualityTier

# Closed set of collector ids the scoring tables know about
SOURCE_IDS = (
    "whitepaper",
    "onchain_data",
    "team_info",
    "documentation",
    "community_health",
    "financial_data",
    "product_data",
    "game_specific",
    "github_activity",
    "security_audits",
    "media_coverage",
    "social_signals",
)

# Planner-produced names -> collector ids
SOURCE_ALIASES: Dict[str, str] = {
    # On-chain explorers and chain-specific data
    "onchain": "onchain_data",
    "on_chain": "onchain_data",
    "on_chain_data": "onchain_data",
    "blockchain": "onchain_data",
    "blockchain_data": "onchain_data",
    "contracts": "onchain_data",
    "smart_contracts": "onchain_data",
    "etherscan": "onchain_data",
    "bscscan": "onchain_data",
    "polygonscan": "onchain_data",
    "snowtrace": "onchain_data",
    "avalanche_data": "onchain_data",
    "ronin_data": "onchain_data",
    "token_data": "onchain_data",
    # Papers and docs
    "white_paper": "whitepaper",
    "litepaper": "whitepaper",
    "tokenomics": "whitepaper",
    "docs": "documentation",
    "technical_docs": "documentation",
    "technical_documentation": "documentation",
    "gitbook": "documentation",
    # People
    "team": "team_info",
    "team_data": "team_info",
    "founders": "team_info",
    "leadership": "team_info",
    "linkedin": "team_info",
    # Community
    "community": "community_health",
    "community_data": "community_health",
    "discord": "community_health",
    "telegram": "community_health",
    "twitter": "community_health",
    # Markets and funding
    "financial": "financial_data",
    "market_data": "financial_data",
    "coingecko": "financial_data",
    "coinmarketcap": "financial_data",
    "funding": "financial_data",
    "price_data": "financial_data",
    # Product
    "product": "product_data",
    "steam": "product_data",
    "steam_data": "product_data",
    "store_listings": "product_data",
    "gameplay": "game_specific",
    "game_data": "game_specific",
    "game_metrics": "game_specific",
    "opensea": "game_specific",
    "nft_data": "game_specific",
    # Development
    "github": "github_activity",
    "development": "github_activity",
    "code_activity": "github_activity",
    # Supporting
    "audits": "security_audits",
    "security": "security_audits",
    "audit_reports": "security_audits",
    "certik": "security_audits",
    "news": "media_coverage",
    "media": "media_coverage",
    "press": "media_coverage",
    "social": "social_signals",
    "social_media": "social_signals",
    "reddit": "social_signals",
    "youtube": "social_signals",
}

_NON_WORD = re.compile(r"[^a-z0-9]+")


class CollectionContext(BaseModel):
    """What a collector gets besides the entity name."""
    symbol: Optional[str] = None
    address: Optional[str] = None
    project_type: str = "unknown"
    search_terms: List[str] = Field(default_factory=list)
    expected_fields: List[str] = Field(default_factory=list)
    aliases: List[str] = Field(default_factory=list)


Collector = Callable[[str, CollectionContext], Union[Awaitable[Any], Any]]
CollectorRegistry = Dict[str, Collector]


def canonical(raw: str) -> str:
    return _NON_WORD.sub("_", raw.strip().lower()).strip("_")


def normalize_source_id(raw: str) -> Optional[str]:
    """Map an arbitrary source name onto a collector id, or None if unmapped."""
    key = canonical(raw)
    if key in SOURCE_IDS:
        return key
    return SOURCE_ALIASES.get(key)


def count_data_points(data: Any) -> int:
    """Count non-empty leaf values; text counts one point per sentence, capped at 50."""
    if data is None:
        return 0
    if isinstance(data, str):
        sentences = [s for s in re.split(r"[.!?]+", data) if len(s.strip()) > 10]
        return min(len(sentences), 50)
    if isinstance(data, dict):
        return sum(_count_leaf(v) for v in data.values())
    if isinstance(data, (list, tuple)):
        return len([v for v in data if not _is_empty(v)])
    return 1


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _count_leaf(value: Any) -> int:
    if _is_empty(value):
        return 0
    if isinstance(value, dict):
        return sum(_count_leaf(v) for v in value.values())
    return 1


def infer_quality(data_points: int) -> QualityTier:
    if data_points >= 10:
        return QualityTier.HIGH
    if data_points >= 3:
        return QualityTier.MEDIUM
    return QualityTier.LOW


QUALITY_CONFIDENCE = {
    QualityTier.HIGH: 1.0,
    QualityTier.MEDIUM: 0.7,
    QualityTier.LOW: 0.4,
}


def finding_confidence(finding: Finding) -> float:
    """Confidence used to pick the cache refresh interval for a finding."""
    if not finding.found:
        return 0.0
    return QUALITY_CONFIDENCE[finding.quality] * min(finding.data_points / 10.0, 1.0)


def to_finding(raw: Any) -> Finding:
    """Build a finding from a collector payload. Empty payloads are not found."""
    if isinstance(raw, Finding):
        return raw
    if _is_empty(raw):
        return Finding.missing()
    points = count_data_points(raw)
    return Finding(found=True, data=raw, quality=infer_quality(points), data_points=points)
