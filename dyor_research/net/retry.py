"""Retry policy shared by every outbound call.

Backoff is exponential: ``min(base_delay * multiplier ** (attempt - 1), cap)``.
Overload signals (explicit ``OverloadError`` or HTTP 429/503/529) switch to
the larger overload multiplier and cap.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from dyor_research.exceptions import (
    CircuitOpenError,
    DeadlineExceeded,
    OverloadError,
    ThrottledTimeout,
)
from dyor_research.monitoring_metrics import RETRY_ATTEMPTS

logger = logging.getLogger(__name__)

T = TypeVar("T")

OVERLOAD_STATUS_CODES = frozenset({429, 503, 529})

# Fail-fast errors the wrapper itself never retries
NON_RETRYABLE = (CircuitOpenError, ThrottledTimeout, asyncio.CancelledError)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    overload_multiplier: float = 3.0
    overload_max_delay: float = 120.0

    def delay_for(self, attempt: int, overload: bool = False) -> float:
        """Delay before the retry that follows failed ``attempt`` (1-based)."""
        if overload:
            return min(self.base_delay * self.overload_multiplier ** (attempt - 1), self.overload_max_delay)
        return min(self.base_delay * self.backoff_multiplier ** (attempt - 1), self.max_delay)


def _status_code(exc: BaseException) -> Optional[int]:
    status = getattr(exc, "status_code", None)
    if status is None and isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
    return status


def is_overload_error(exc: BaseException) -> bool:
    if isinstance(exc, OverloadError):
        return True
    return _status_code(exc) in OVERLOAD_STATUS_CODES


def classify_error(exc: BaseException) -> str:
    """Map an exception onto the error taxonomy."""
    if isinstance(exc, CircuitOpenError):
        return "circuit_open"
    if isinstance(exc, ThrottledTimeout):
        return "throttled"
    if is_overload_error(exc):
        return "overload"
    if isinstance(exc, (DeadlineExceeded, asyncio.TimeoutError, httpx.TimeoutException)):
        return "timeout"
    return "transient"


class wait_overload_aware(wait_base):
    """Pick the generic or overload backoff curve from the last failure."""

    def __init__(self, policy: RetryPolicy, is_overload: Callable[[BaseException], bool] = is_overload_error):
        self.is_overload = is_overload
        self.generic = wait_exponential(
            multiplier=policy.base_delay, exp_base=policy.backoff_multiplier, max=policy.max_delay
        )
        self.overload = wait_exponential(
            multiplier=policy.base_delay, exp_base=policy.overload_multiplier, max=policy.overload_max_delay
        )

    def __call__(self, retry_state) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if exc is not None and self.is_overload(exc):
            return self.overload(retry_state)
        return self.generic(retry_state)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    name: str = "operation",
    is_overload: Callable[[BaseException], bool] = is_overload_error,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Run ``operation`` with retries.

    The exception raised after the last attempt is the operation's own,
    tagged with ``attempts`` and ``error_class`` attributes.
    """
    attempts = 0

    def _log_retry(retry_state) -> None:
        exc = retry_state.outcome.exception()
        error_class = classify_error(exc)
        RETRY_ATTEMPTS.labels(target=name, error_class=error_class).inc()
        logger.warning(
            f"{name} attempt {retry_state.attempt_number} failed ({error_class}: {exc}); "
            f"retrying in {retry_state.next_action.sleep:.1f}s"
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_retries + 1),
        wait=wait_overload_aware(policy, is_overload),
        retry=retry_if_not_exception_type(NON_RETRYABLE),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )
    try:
        async for attempt in retrying:
            with attempt:
                attempts += 1
                return await operation()
    except Exception as exc:
        exc.attempts = attempts
        exc.error_class = classify_error(exc)
        raise
