"""Shared fakes: a manual clock, a clock-advancing sleep and a scripted language model."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from dyor_research.models import Finding, QualityTier


class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Records requested delays and advances the clock instead of waiting."""

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self.delays = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        self.clock.advance(max(0.0, seconds))
        await asyncio.sleep(0)


class ScriptedLLM:
    """Returns queued responses in order; exceptions in the queue are raised."""

    def __init__(self, *responses, delay=0.0):
        self.responses = list(responses)
        self.prompts = []
        self.delay = delay

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.responses:
            raise RuntimeError("no scripted response left")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


def make_finding(data=None, points=10, quality=QualityTier.HIGH, age_days=1, found=True) -> Finding:
    return Finding(
        found=found,
        data=data if data is not None else {"summary": "collected"},
        quality=quality,
        data_points=points,
        timestamp=datetime.now(timezone.utc) - timedelta(days=age_days),
    )


def strong_findings():
    """Three rich tier-1 sources plus community and financial data."""
    return {
        "whitepaper": make_finding({"comprehensive": True, "tokenomics": "fixed supply"}, points=22),
        "onchain_data": make_finding({"contracts_verified": True, "token_deployed": True}, points=20),
        "team_info": make_finding({"team_members": ["alice", "bob"], "has_experience": True}, points=20),
        "community_health": make_finding(
            {"discord_members": 50000, "twitter_followers": 120000, "engagement_rate": 0.04}, points=12
        ),
        "financial_data": make_finding(
            {"market_cap": 250_000_000, "funding_rounds": ["seed", "series_a"], "tokenomics": "documented"},
            points=12,
        ),
    }


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def fake_sleep(clock):
    return FakeSleep(clock)
