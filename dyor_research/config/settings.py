"""Unified configuration and settings module.

Single source of truth for resilience defaults, collection thresholds,
quality gate thresholds and batch limits. Every value can be overridden
through the environment.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Tuple
import os
import logging

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


@dataclass(frozen=True)
class ResearchThresholds:
    """Thresholds used by scoring and the quality gates."""
    min_score: float = 60.0                 # Baseline minimum research score
    established_min_score: float = 70.0     # Raised bar for established projects
    high_confidence: float = 0.7            # Confidence that relaxes the bar back to baseline
    very_high_confidence: float = 0.8       # Confidence that relaxes the bar to 50
    very_high_confidence_score: float = 50.0
    min_data_points: int = 15
    established_min_data_points: int = 25
    lenient_min_data_points: int = 10       # Allow-listed entities
    min_community_members: int = 100
    min_engagement_rate: float = 0.01       # Advisory only
    max_bot_share: float = 0.5


@dataclass(frozen=True)
class Settings:
    """Process-wide settings, read once from the environment."""

    # Language model
    ANTHROPIC_API_KEY: Optional[str] = field(default_factory=lambda: os.getenv("ANTHROPIC_API_KEY"))
    ANTHROPIC_MODEL: str = field(default_factory=lambda: os.getenv("ANTHROPIC_MODEL", "claude-3-5-sonnet-20241022"))
    LLM_MAX_TOKENS: int = field(default_factory=lambda: _env_int("LLM_MAX_TOKENS", 1500))
    LLM_TIMEOUT_SEC: float = field(default_factory=lambda: _env_float("LLM_TIMEOUT_SEC", 60.0))
    # The completion API allows far fewer calls than data providers do
    LLM_MAX_RPM: int = field(default_factory=lambda: _env_int("LLM_MAX_RPM", 5))
    LLM_BASE_DELAY_SEC: float = field(default_factory=lambda: _env_float("LLM_BASE_DELAY_SEC", 5.0))

    # Circuit breaker
    CB_FAILURE_THRESHOLD: int = field(default_factory=lambda: _env_int("CB_FAILURE_THRESHOLD", 5))
    CB_MONITORING_WINDOW_SEC: float = field(default_factory=lambda: _env_float("CB_MONITORING_WINDOW_SEC", 60.0))
    CB_RECOVERY_TIMEOUT_SEC: float = field(default_factory=lambda: _env_float("CB_RECOVERY_TIMEOUT_SEC", 30.0))

    # Throttle
    THROTTLE_MAX_RPM: int = field(default_factory=lambda: _env_int("THROTTLE_MAX_RPM", 60))
    THROTTLE_MAX_CONCURRENT: int = field(default_factory=lambda: _env_int("THROTTLE_MAX_CONCURRENT", 5))
    THROTTLE_MIN_INTERVAL_SEC: float = field(default_factory=lambda: _env_float("THROTTLE_MIN_INTERVAL_SEC", 0.0))
    THROTTLE_MAX_WAIT_SEC: float = field(default_factory=lambda: _env_float("THROTTLE_MAX_WAIT_SEC", 120.0))

    # Retry / backoff
    RETRY_MAX_RETRIES: int = field(default_factory=lambda: _env_int("RETRY_MAX_RETRIES", 3))
    RETRY_BASE_DELAY_SEC: float = field(default_factory=lambda: _env_float("RETRY_BASE_DELAY_SEC", 1.0))
    RETRY_MAX_DELAY_SEC: float = field(default_factory=lambda: _env_float("RETRY_MAX_DELAY_SEC", 30.0))
    RETRY_BACKOFF_MULTIPLIER: float = field(default_factory=lambda: _env_float("RETRY_BACKOFF_MULTIPLIER", 2.0))
    RETRY_OVERLOAD_MULTIPLIER: float = field(default_factory=lambda: _env_float("RETRY_OVERLOAD_MULTIPLIER", 3.0))
    RETRY_OVERLOAD_MAX_DELAY_SEC: float = field(default_factory=lambda: _env_float("RETRY_OVERLOAD_MAX_DELAY_SEC", 120.0))

    # Deadlines
    COLLECTOR_TIMEOUT_SEC: float = field(default_factory=lambda: _env_float("COLLECTOR_TIMEOUT_SEC", 20.0))

    # Scheduler
    EARLY_TERMINATION_THRESHOLD: int = field(default_factory=lambda: _env_int("EARLY_TERMINATION_THRESHOLD", 20))
    EARLY_TERMINATION_CONFIDENCE: float = field(default_factory=lambda: _env_float("EARLY_TERMINATION_CONFIDENCE", 0.7))

    # Adaptive controller
    ADAPTIVE_MAX_ROUNDS: int = field(default_factory=lambda: _env_int("ADAPTIVE_MAX_ROUNDS", 2))
    ADAPTIVE_CONTINUE_BELOW_SCORE: float = field(default_factory=lambda: _env_float("ADAPTIVE_CONTINUE_BELOW_SCORE", 70.0))

    # Debug override: 0 disables the extra confidence gate
    MIN_CONFIDENCE_GATE: float = field(default_factory=lambda: _env_float("MIN_CONFIDENCE_GATE", 0.0))

    # Batch processing
    BATCH_MAX_CONCURRENCY: int = field(default_factory=lambda: _env_int("BATCH_MAX_CONCURRENCY", 3))
    BATCH_WAVE_DELAY_SEC: float = field(default_factory=lambda: _env_float("BATCH_WAVE_DELAY_SEC", 2.0))
    BATCH_MAX_RETRIES: int = field(default_factory=lambda: _env_int("BATCH_MAX_RETRIES", 1))

    thresholds: ResearchThresholds = field(default_factory=ResearchThresholds)

    def __post_init__(self):
        if self.CB_FAILURE_THRESHOLD < 1:
            from dyor_research.exceptions import ConfigurationError
            raise ConfigurationError("CB_FAILURE_THRESHOLD must be at least 1")
        if self.THROTTLE_MAX_CONCURRENT < 1 or self.THROTTLE_MAX_RPM < 1:
            from dyor_research.exceptions import ConfigurationError
            raise ConfigurationError("Throttle limits must be positive")
        if self.MIN_CONFIDENCE_GATE > 0:
            logger.warning(
                "MIN_CONFIDENCE_GATE override active (%.2f); results below it will be rejected",
                self.MIN_CONFIDENCE_GATE,
            )

    @property
    def llm_enabled(self) -> bool:
        return bool(self.ANTHROPIC_API_KEY)

    def early_termination(self) -> Tuple[int, float]:
        return self.EARLY_TERMINATION_THRESHOLD, self.EARLY_TERMINATION_CONFIDENCE


# Global settings instance
settings = Settings()
