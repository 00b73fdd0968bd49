"""Tests for the language model client adapters."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import anthropic
import httpx
import pytest

from conftest import ScriptedLLM
from dyor_research.config.settings import Settings
from dyor_research.exceptions import APIError, ConfigurationError, OverloadError
from dyor_research.llm.client import (
    AnthropicCompletionClient,
    ResilientCompletionClient,
    build_completion_client,
)
from dyor_research.net.resilience import LLM_TARGET, ResilienceContext, TargetPolicy
from dyor_research.net.retry import RetryPolicy
from dyor_research.time_budget import Budget


def api_status_error(cls, status):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    response = httpx.Response(status, request=request)
    return cls(f"status {status}", response=response, body=None)


def fake_anthropic(*, returns=None, raises=None):
    create = AsyncMock(return_value=returns, side_effect=raises)
    return SimpleNamespace(messages=SimpleNamespace(create=create))


class TestAnthropicCompletionClient:
    """Test response extraction and error mapping."""

    @pytest.mark.asyncio
    async def test_text_blocks_are_joined(self):
        message = SimpleNamespace(content=[
            SimpleNamespace(type="text", text='{"complexity": '),
            SimpleNamespace(type="tool_use", text="ignored"),
            SimpleNamespace(type="text", text='"simple"}'),
        ])
        inner = fake_anthropic(returns=message)
        client = AnthropicCompletionClient(Settings(ANTHROPIC_API_KEY="test-key"), client=inner)

        text = await client.complete("classify bitcoin")

        assert text == '{"complexity": "simple"}'
        kwargs = inner.messages.create.await_args.kwargs
        assert kwargs["messages"] == [{"role": "user", "content": "classify bitcoin"}]

    @pytest.mark.asyncio
    async def test_rate_limit_maps_to_overload(self):
        inner = fake_anthropic(raises=api_status_error(anthropic.RateLimitError, 429))
        client = AnthropicCompletionClient(Settings(ANTHROPIC_API_KEY="test-key"), client=inner)

        with pytest.raises(OverloadError) as exc_info:
            await client.complete("hello")
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_server_errors_map_to_api_error(self):
        inner = fake_anthropic(raises=api_status_error(anthropic.InternalServerError, 500))
        client = AnthropicCompletionClient(Settings(ANTHROPIC_API_KEY="test-key"), client=inner)

        with pytest.raises(APIError) as exc_info:
            await client.complete("hello")
        assert not isinstance(exc_info.value, OverloadError)
        assert exc_info.value.provider == "anthropic"

    def test_missing_key_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            AnthropicCompletionClient(Settings(ANTHROPIC_API_KEY=None))

    def test_no_key_means_no_client(self):
        settings = Settings(ANTHROPIC_API_KEY=None)
        assert build_completion_client(settings, ResilienceContext.from_settings(settings)) is None


class TestResilientCompletionClient:
    @pytest.mark.asyncio
    async def test_overload_is_retried_with_overload_backoff(self, clock, fake_sleep):
        context = ResilienceContext(
            policies={LLM_TARGET: TargetPolicy(retry=RetryPolicy(max_retries=2, base_delay=5.0))},
            clock=clock,
            sleep=fake_sleep,
        )
        inner = ScriptedLLM(OverloadError("overloaded", status_code=529), '{"ok": true}')
        client = ResilientCompletionClient(inner, context)

        assert await client.complete("plan please") == '{"ok": true}'
        assert fake_sleep.delays == [5.0]
        assert len(inner.prompts) == 2


class TestBudget:
    def test_budget_tracks_elapsed_and_expiry(self, clock):
        budget = Budget.from_minutes(2, clock=clock)

        clock.advance(30)
        assert budget.elapsed() == 30
        assert budget.remaining() == 90
        assert budget.percentage_used() == pytest.approx(25.0)
        assert budget.get_timeout(max_timeout=10) == 10
        assert not budget.is_expired()

        clock.advance(90)
        assert budget.is_expired()
        assert budget.remaining() == 0
        assert budget.get_timeout() == 0.1
