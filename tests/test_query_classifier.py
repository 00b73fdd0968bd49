"""Tests for query classification and routing."""

import asyncio
import json

import pytest

from conftest import ScriptedLLM
from dyor_research.intent.classifier import QueryClassifier, cache_key
from dyor_research.models import Approach, Complexity, ProjectKind


class TestStaticClassification:
    """Known names never reach the language model."""

    @pytest.mark.asyncio
    async def test_known_simple_asset(self):
        llm = ScriptedLLM()
        classifier = QueryClassifier(llm)

        result = await classifier.classify("Bitcoin", "BTC")

        assert result.complexity is Complexity.SIMPLE
        assert result.approach is Approach.DIRECT_AI
        assert result.confidence == 0.95
        assert result.estimated_cost == 0.01
        assert result.estimated_time_seconds == 5.0
        assert result.source == "static"
        assert llm.prompts == []

    @pytest.mark.asyncio
    async def test_known_complex_game(self):
        llm = ScriptedLLM()
        classifier = QueryClassifier(llm)

        result = await classifier.classify("Axie Infinity", "AXS")

        assert result.complexity is Complexity.COMPLEX
        assert result.approach is Approach.ORCHESTRATED
        assert result.project_type is ProjectKind.WEB3_GAME
        assert result.needs_symbol_transformation is True
        assert result.confidence == 0.9
        assert llm.prompts == []


class TestModelClassification:
    """Unknown names are classified by the language model."""

    @pytest.mark.asyncio
    async def test_model_response_used(self):
        llm = ScriptedLLM(json.dumps({
            "complexity": "complex",
            "needs_symbol_transformation": False,
            "project_type": "web3_game",
            "confidence": 0.8,
            "recommended_approach": "hybrid",
            "reasoning": "Small game token",
        }))
        classifier = QueryClassifier(llm)

        result = await classifier.classify("Pixel Raiders", "PXR")

        assert result.approach is Approach.HYBRID
        assert result.confidence == 0.8
        assert result.estimated_cost == 0.05
        assert result.source == "llm"
        assert "Pixel Raiders" in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_partial_response_gets_defaults(self):
        classifier = QueryClassifier(ScriptedLLM('{"complexity": "complex"}'))

        result = await classifier.classify("Pixel Raiders")

        assert result.complexity is Complexity.COMPLEX
        assert result.approach is Approach.ORCHESTRATED
        assert result.confidence == 0.5
        assert result.source == "llm"

    @pytest.mark.asyncio
    async def test_model_failure_falls_back_and_is_cached(self):
        llm = ScriptedLLM(RuntimeError("service unavailable"))
        classifier = QueryClassifier(llm)

        first = await classifier.classify("Obscure Token")
        second = await classifier.classify("  obscure   token ")

        assert first.source == "fallback"
        assert first.complexity is Complexity.UNKNOWN
        assert first.approach is Approach.ORCHESTRATED
        assert first.confidence == 0.5
        assert first.estimated_cost == 0.05
        assert first.estimated_time_seconds == 30.0
        assert second is first
        assert len(llm.prompts) == 1

    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_model_call(self):
        """Two in-flight requests for the same entity ask the model once."""
        llm = ScriptedLLM('{"complexity": "complex", "recommended_approach": "hybrid"}', delay=0.05)
        classifier = QueryClassifier(llm)

        first, second = await asyncio.gather(
            classifier.classify("Pixel Raiders", "PXR"),
            classifier.classify("pixel raiders", "pxr"),
        )

        assert len(llm.prompts) == 1
        assert second is first
        assert first.approach is Approach.HYBRID

    @pytest.mark.asyncio
    async def test_malformed_response_falls_back(self):
        classifier = QueryClassifier(ScriptedLLM("Sorry, I don't know this project."))

        result = await classifier.classify("Obscure Token")

        assert result.source == "fallback"
        assert "Malformed" in result.reasoning

    @pytest.mark.asyncio
    async def test_no_model_configured(self):
        classifier = QueryClassifier(None)

        result = await classifier.classify("Obscure Token")

        assert result.source == "fallback"
        assert classifier.cache_size() == 1
        classifier.clear_cache()
        assert classifier.cache_size() == 0


def test_cache_key_normalizes_name_and_symbol():
    assert cache_key("  Some   Game ", " sg") == cache_key("some game", "SG")
