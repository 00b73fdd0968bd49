"""Outbound call resilience: circuit breaking, throttling, retry and caching."""

from .circuit import CircuitBreaker, CircuitBreakerConfig, CircuitState
from .throttle import Throttle, ThrottleConfig
from .retry import RetryPolicy, call_with_retry, classify_error, is_overload_error
from .resilience import ResilienceContext, TargetPolicy
from .cache import ConfidenceCache, CacheEntry, refresh_interval_for

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "Throttle",
    "ThrottleConfig",
    "RetryPolicy",
    "call_with_retry",
    "classify_error",
    "is_overload_error",
    "ResilienceContext",
    "TargetPolicy",
    "ConfidenceCache",
    "CacheEntry",
    "refresh_interval_for",
]
