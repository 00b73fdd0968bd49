"""Query classification and routing for research requests with a staged approach."""

import asyncio
import logging
from typing import Dict, Optional, Tuple

from dyor_research.llm.client import CompletionClient
from dyor_research.llm.parsing import parse_model_response
from dyor_research.llm.prompts import classification_prompt
from dyor_research.llm.schemas import ClassificationResponse
from dyor_research.models import Approach, Complexity, ProjectKind, QueryClassification

logger = logging.getLogger(__name__)


# Large, well-documented assets: general knowledge is enough
KNOWN_SIMPLE = {
    "bitcoin", "btc", "ethereum", "eth", "solana", "sol", "cardano", "ada",
    "ripple", "xrp", "dogecoin", "doge", "litecoin", "ltc", "polkadot", "dot",
    "binance coin", "bnb", "tether", "usdt", "usd coin", "usdc", "tron", "trx",
    "avalanche", "avax", "chainlink", "link", "polygon", "matic",
}

# Games and ecosystems that always need the full pipeline
KNOWN_COMPLEX: Dict[str, ProjectKind] = {
    "axie infinity": ProjectKind.WEB3_GAME,
    "axie": ProjectKind.WEB3_GAME,
    "decentraland": ProjectKind.WEB3_GAME,
    "the sandbox": ProjectKind.WEB3_GAME,
    "sandbox": ProjectKind.WEB3_GAME,
    "illuvium": ProjectKind.WEB3_GAME,
    "gods unchained": ProjectKind.WEB3_GAME,
    "splinterlands": ProjectKind.WEB3_GAME,
    "alien worlds": ProjectKind.WEB3_GAME,
    "star atlas": ProjectKind.WEB3_GAME,
    "big time": ProjectKind.WEB3_GAME,
    "gala games": ProjectKind.PUBLISHER,
    "gala": ProjectKind.PUBLISHER,
    "sky mavis": ProjectKind.PUBLISHER,
    "immutable": ProjectKind.PLATFORM,
    "ronin": ProjectKind.PLATFORM,
}

# (cost USD, seconds) per route
ROUTE_ESTIMATES: Dict[Approach, Tuple[float, float]] = {
    Approach.DIRECT_AI: (0.01, 5.0),
    Approach.HYBRID: (0.05, 30.0),
    Approach.ORCHESTRATED: (0.10, 60.0),
}
FALLBACK_ESTIMATE = (0.05, 30.0)


def cache_key(name: str, symbol: Optional[str] = None) -> Tuple[str, str]:
    return " ".join(name.lower().split()), (symbol or "").strip().upper()


def _static_lookup(name: str, symbol: Optional[str]) -> Optional[QueryClassification]:
    """
    Stage A: deterministic lookup against the known-simple and known-complex lists.

    Returns:
        A classification, or None when neither list matches
    """
    key = " ".join(name.lower().split())
    sym = (symbol or "").strip().lower()

    if key in KNOWN_SIMPLE:
        cost, seconds = ROUTE_ESTIMATES[Approach.DIRECT_AI]
        return QueryClassification(
            name=name,
            symbol=symbol,
            complexity=Complexity.SIMPLE,
            needs_symbol_transformation=False,
            project_type=ProjectKind.UNKNOWN,
            confidence=0.95,
            approach=Approach.DIRECT_AI,
            estimated_cost=cost,
            estimated_time_seconds=seconds,
            source="static",
            reasoning="Well-known major asset",
        )

    if key in KNOWN_COMPLEX:
        cost, seconds = ROUTE_ESTIMATES[Approach.ORCHESTRATED]
        return QueryClassification(
            name=name,
            symbol=symbol,
            complexity=Complexity.COMPLEX,
            needs_symbol_transformation=bool(symbol) and sym != key,
            project_type=KNOWN_COMPLEX[key],
            confidence=0.9,
            approach=Approach.ORCHESTRATED,
            estimated_cost=cost,
            estimated_time_seconds=seconds,
            source="static",
            reasoning="Known gaming project requiring full research",
        )
    return None


def fallback_classification(name: str, symbol: Optional[str] = None, reason: str = "") -> QueryClassification:
    cost, seconds = FALLBACK_ESTIMATE
    return QueryClassification(
        name=name,
        symbol=symbol,
        complexity=Complexity.UNKNOWN,
        project_type=ProjectKind.UNKNOWN,
        confidence=0.5,
        approach=Approach.ORCHESTRATED,
        estimated_cost=cost,
        estimated_time_seconds=seconds,
        source="fallback",
        reasoning=reason or "Classification unavailable; defaulting to full research",
    )


class QueryClassifier:
    """Route entity queries to the fast path, full orchestration or a hybrid.

    Classifications are cached per (name, symbol) for the life of the
    classifier, fallbacks included, so a failing model is not re-asked.
    Concurrent requests for the same key share one model call.
    """

    def __init__(self, llm: Optional[CompletionClient] = None):
        self.llm = llm
        self._cache: Dict[Tuple[str, str], QueryClassification] = {}
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}

    async def classify(
        self, name: str, symbol: Optional[str] = None, address: Optional[str] = None
    ) -> QueryClassification:
        key = cache_key(name, symbol)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        async with self._locks.setdefault(key, asyncio.Lock()):
            cached = self._cache.get(key)
            if cached is not None:
                return cached

            result = _static_lookup(name, symbol)
            if result is None:
                result = await self._classify_llm(name, symbol, address)
            self._cache[key] = result

        logger.info(
            f"Classified {name!r} as {result.complexity.value}/{result.approach.value} "
            f"(confidence={result.confidence:.2f}, source={result.source})"
        )
        return result

    async def _classify_llm(
        self, name: str, symbol: Optional[str], address: Optional[str]
    ) -> QueryClassification:
        """
        Stage B: ask the language model and parse leniently.

        Any failure degrades to the deterministic fallback classification.
        """
        if self.llm is None:
            return fallback_classification(name, symbol, "No language model configured")

        try:
            text = await self.llm.complete(classification_prompt(name, symbol, address))
        except Exception as e:
            logger.warning(f"Classification call failed for {name!r}, using fallback: {e}")
            return fallback_classification(name, symbol, f"Language model unavailable: {type(e).__name__}")

        outcome = parse_model_response(text, ClassificationResponse)
        if not outcome.ok:
            logger.warning(f"Unparseable classification for {name!r}, using fallback: {outcome.error}")
            return fallback_classification(name, symbol, "Malformed language model response")

        parsed = outcome.value
        cost, seconds = ROUTE_ESTIMATES[parsed.recommended_approach]
        return QueryClassification(
            name=name,
            symbol=symbol,
            complexity=parsed.complexity,
            needs_symbol_transformation=parsed.needs_symbol_transformation,
            project_type=parsed.project_type,
            confidence=parsed.confidence,
            approach=parsed.recommended_approach,
            estimated_cost=cost,
            estimated_time_seconds=seconds,
            source="llm",
            reasoning=parsed.reasoning,
        )

    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        self._cache.clear()
