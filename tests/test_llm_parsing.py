"""Tests for lenient parsing of language model output."""

import pytest

from dyor_research.exceptions import LLMResponseError
from dyor_research.llm.parsing import (
    extract_json_object,
    first_balanced_object,
    lenient_validate,
    parse_model_response,
    strip_fences,
)
from dyor_research.llm.schemas import AdaptationResponse, ClassificationResponse, PlanResponse
from dyor_research.models import Approach, Complexity, Priority, ProjectKind


class TestJsonExtraction:
    """Test locating a JSON object in free-form text."""

    def test_fenced_block(self):
        text = 'Here you go:\n```json\n{"complexity": "simple"}\n```\nThanks'
        assert strip_fences(text).strip() == '{"complexity": "simple"}'
        assert extract_json_object(text) == {"complexity": "simple"}

    def test_prose_around_object(self):
        text = 'Sure! {"should_continue": false, "reasoning": "done"} Hope that helps.'
        assert extract_json_object(text) == {"should_continue": False, "reasoning": "done"}

    def test_braces_inside_strings_do_not_confuse_matching(self):
        text = 'prefix {"reasoning": "uses {curly} braces \\" and quotes", "n": 1} suffix'
        assert first_balanced_object(text) == '{"reasoning": "uses {curly} braces \\" and quotes", "n": 1}'

    def test_nested_objects(self):
        text = '{"adjustments": {"skip_sources": ["media_coverage"]}, "should_continue": true}'
        assert extract_json_object(text)["adjustments"] == {"skip_sources": ["media_coverage"]}

    @pytest.mark.parametrize("text", ["", "   ", "no json here", "[1, 2, 3]", "{unterminated"])
    def test_unusable_text_raises(self, text):
        with pytest.raises(LLMResponseError):
            extract_json_object(text)


class TestLenientValidation:
    """Test field-level fallback to defaults."""

    def test_malformed_field_defaults(self):
        parsed = lenient_validate(
            ClassificationResponse,
            {"complexity": "complex", "confidence": "very high", "project_type": "web3_game"},
        )
        assert parsed.complexity is Complexity.COMPLEX
        assert parsed.project_type is ProjectKind.WEB3_GAME
        assert parsed.confidence == 0.5

    def test_camel_case_keys_accepted(self):
        parsed = lenient_validate(
            ClassificationResponse,
            {"needsSymbolTransformation": True, "recommendedApproach": "direct"},
        )
        assert parsed.needs_symbol_transformation is True
        assert parsed.recommended_approach is Approach.DIRECT_AI

    def test_unknown_keys_ignored(self):
        parsed = lenient_validate(AdaptationResponse, {"should_continue": False, "mood": "cheerful"})
        assert parsed.should_continue is False


class TestPlanResponse:
    """Test plan schema coercions."""

    def test_sources_are_coerced(self):
        outcome = parse_model_response(
            """```json
            {
              "projectClassification": {"type": "web3_game", "confidence": 0.8},
              "prioritySources": [
                {"source": "etherscan", "priority": "urgent", "expectedDataPoints": ["contracts"]},
                "whitepaper",
                {"priority": "high"},
                42
              ],
              "riskAreas": [{"area": "tokenomics", "priority": "HIGH"}, "nonsense"],
              "estimatedResearchTime": 15
            }
            ```""",
            PlanResponse,
        )

        assert outcome.ok
        plan = outcome.value
        assert [s.source for s in plan.priority_sources] == ["etherscan", "whitepaper"]
        assert plan.priority_sources[0].priority is Priority.MEDIUM
        assert plan.priority_sources[0].expected_fields == ["contracts"]
        assert [r.area for r in plan.risk_areas] == ["tokenomics"]
        assert plan.risk_areas[0].priority is Priority.HIGH
        assert plan.project_classification.type is ProjectKind.WEB3_GAME
        assert plan.estimated_research_time == 15

    def test_unparseable_response_is_a_fallback_outcome(self):
        outcome = parse_model_response("I cannot help with that.", PlanResponse)
        assert not outcome.ok
        assert outcome.value is None
        assert "No JSON object" in outcome.error
