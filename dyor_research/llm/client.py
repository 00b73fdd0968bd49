"""
Language-model completion clients.

The research core only needs ``complete(prompt) -> text``. The Anthropic
adapter is the production implementation; ``ResilientCompletionClient``
routes any client through the shared resilience wrapper.
"""
import logging
from typing import Optional, Protocol, runtime_checkable

from dyor_research.config.settings import Settings
from dyor_research.exceptions import APIError, ConfigurationError, OverloadError
from dyor_research.net.resilience import LLM_TARGET, ResilienceContext

logger = logging.getLogger(__name__)


@runtime_checkable
class CompletionClient(Protocol):
    async def complete(self, prompt: str) -> str:
        ...


class AnthropicCompletionClient:
    """Completion client backed by the Anthropic messages API"""

    SYSTEM_PROMPT = (
        "You are a due-diligence research analyst for crypto and gaming projects. "
        "Output valid JSON only."
    )

    def __init__(self, settings: Optional[Settings] = None, client=None):
        self.settings = settings or Settings()
        self.model_name = self.settings.ANTHROPIC_MODEL
        if client is not None:
            self._client = client
        else:
            if not self.settings.ANTHROPIC_API_KEY:
                raise ConfigurationError("ANTHROPIC_API_KEY is required for the Anthropic client")
            import anthropic
            self._client = anthropic.AsyncAnthropic(api_key=self.settings.ANTHROPIC_API_KEY)

    async def complete(self, prompt: str) -> str:
        import anthropic

        try:
            message = await self._client.messages.create(
                model=self.model_name,
                max_tokens=self.settings.LLM_MAX_TOKENS,
                temperature=0.2,
                system=self.SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.RateLimitError as e:
            raise OverloadError(str(e), provider="anthropic", status_code=429) from e
        except anthropic.APIStatusError as e:
            if e.status_code in (503, 529):
                raise OverloadError(str(e), provider="anthropic", status_code=e.status_code) from e
            raise APIError(str(e), provider="anthropic", status_code=e.status_code) from e
        return "".join(block.text for block in message.content if getattr(block, "type", "") == "text")


class ResilientCompletionClient:
    """Wrap a completion client with circuit breaker, throttle and retry."""

    def __init__(self, inner: CompletionClient, resilience: ResilienceContext, target: str = LLM_TARGET):
        self.inner = inner
        self.resilience = resilience
        self.target = target

    async def complete(self, prompt: str) -> str:
        return await self.resilience.call(self.target, lambda: self.inner.complete(prompt))


def build_completion_client(
    settings: Settings, resilience: ResilienceContext
) -> Optional[CompletionClient]:
    """Resilient Anthropic client, or None when no API key is configured."""
    if not settings.llm_enabled:
        logger.info("No ANTHROPIC_API_KEY configured; running with deterministic fallbacks only")
        return None
    return ResilientCompletionClient(AnthropicCompletionClient(settings), resilience)
