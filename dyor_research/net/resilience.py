"""Resilience wrapper: throttle -> circuit breaker -> deadline, under a retry policy.

One ``ResilienceContext`` is built per process and handed to every
component that performs I/O so breaker and throttle accounting is shared.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from dyor_research.config.settings import Settings
from dyor_research.exceptions import DeadlineExceeded
from dyor_research.net.circuit import CircuitBreaker, CircuitBreakerConfig
from dyor_research.net.retry import RetryPolicy, call_with_retry
from dyor_research.net.throttle import Throttle, ThrottleConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

LLM_TARGET = "llm"


@dataclass(frozen=True)
class TargetPolicy:
    circuit: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    throttle: ThrottleConfig = field(default_factory=ThrottleConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    timeout: Optional[float] = 30.0


def default_policy(settings: Settings) -> TargetPolicy:
    return TargetPolicy(
        circuit=CircuitBreakerConfig(
            failure_threshold=settings.CB_FAILURE_THRESHOLD,
            monitoring_window=settings.CB_MONITORING_WINDOW_SEC,
            recovery_timeout=settings.CB_RECOVERY_TIMEOUT_SEC,
        ),
        throttle=ThrottleConfig(
            max_requests_per_minute=settings.THROTTLE_MAX_RPM,
            max_concurrent=settings.THROTTLE_MAX_CONCURRENT,
            min_interval=settings.THROTTLE_MIN_INTERVAL_SEC,
            max_wait=settings.THROTTLE_MAX_WAIT_SEC,
        ),
        retry=RetryPolicy(
            max_retries=settings.RETRY_MAX_RETRIES,
            base_delay=settings.RETRY_BASE_DELAY_SEC,
            max_delay=settings.RETRY_MAX_DELAY_SEC,
            backoff_multiplier=settings.RETRY_BACKOFF_MULTIPLIER,
            overload_multiplier=settings.RETRY_OVERLOAD_MULTIPLIER,
            overload_max_delay=settings.RETRY_OVERLOAD_MAX_DELAY_SEC,
        ),
        timeout=settings.COLLECTOR_TIMEOUT_SEC,
    )


def llm_policy(settings: Settings) -> TargetPolicy:
    base = default_policy(settings)
    return TargetPolicy(
        circuit=base.circuit,
        throttle=ThrottleConfig(
            max_requests_per_minute=settings.LLM_MAX_RPM,
            max_concurrent=1,
            min_interval=0.0,
            max_wait=settings.THROTTLE_MAX_WAIT_SEC,
        ),
        retry=RetryPolicy(
            max_retries=settings.RETRY_MAX_RETRIES,
            base_delay=settings.LLM_BASE_DELAY_SEC,
            max_delay=settings.RETRY_MAX_DELAY_SEC,
            backoff_multiplier=settings.RETRY_BACKOFF_MULTIPLIER,
            overload_multiplier=settings.RETRY_OVERLOAD_MULTIPLIER,
            overload_max_delay=settings.RETRY_OVERLOAD_MAX_DELAY_SEC,
        ),
        timeout=settings.LLM_TIMEOUT_SEC,
    )


class ResilienceContext:
    """Shared per-target breakers and throttles."""

    def __init__(
        self,
        default: Optional[TargetPolicy] = None,
        policies: Optional[Dict[str, TargetPolicy]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.default = default or TargetPolicy()
        self.policies: Dict[str, TargetPolicy] = dict(policies or {})
        self._clock = clock
        self._sleep = sleep
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._throttles: Dict[str, Throttle] = {}

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "ResilienceContext":
        return cls(
            default=default_policy(settings),
            policies={LLM_TARGET: llm_policy(settings)},
            **kwargs,
        )

    def configure(self, target: str, policy: TargetPolicy) -> None:
        """Override the policy for one target. Existing state is discarded."""
        self.policies[target] = policy
        self._breakers.pop(target, None)
        self._throttles.pop(target, None)

    def policy_for(self, target: str) -> TargetPolicy:
        return self.policies.get(target, self.default)

    def breaker(self, target: str) -> CircuitBreaker:
        if target not in self._breakers:
            self._breakers[target] = CircuitBreaker(
                target, self.policy_for(target).circuit, clock=self._clock
            )
        return self._breakers[target]

    def throttle(self, target: str) -> Throttle:
        if target not in self._throttles:
            self._throttles[target] = Throttle(
                target, self.policy_for(target).throttle, clock=self._clock, sleep=self._sleep
            )
        return self._throttles[target]

    async def call(
        self,
        target: str,
        operation: Callable[[], Awaitable[T]],
        *,
        timeout: Optional[float] = None,
    ) -> T:
        """Run ``operation`` for ``target`` under throttle, breaker, deadline and retry.

        Raises CircuitOpenError, ThrottledTimeout, or the operation's last
        error once retries are exhausted.
        """
        policy = self.policy_for(target)
        deadline = timeout if timeout is not None else policy.timeout
        breaker = self.breaker(target)
        throttle = self.throttle(target)

        async def attempt() -> T:
            async with throttle.slot():
                breaker.before_call()
                try:
                    if deadline is None:
                        result = await operation()
                    else:
                        result = await asyncio.wait_for(operation(), timeout=deadline)
                except asyncio.TimeoutError:
                    breaker.record_failure()
                    raise DeadlineExceeded(target, deadline) from None
                except Exception:
                    breaker.record_failure()
                    raise
                except BaseException:
                    breaker.abort_trial()
                    raise
                breaker.record_success()
                return result

        return await call_with_retry(attempt, policy.retry, name=target, sleep=self._sleep)

    def health(self, target: str) -> Dict[str, Any]:
        return {
            "target": target,
            "circuit": self.breaker(target).stats(),
            "throttle": self.throttle(target).stats(),
        }

    def health_report(self) -> Dict[str, Dict[str, Any]]:
        """Health stats for every target seen so far."""
        targets = sorted(set(self._breakers) | set(self._throttles))
        return {target: self.health(target) for target in targets}
