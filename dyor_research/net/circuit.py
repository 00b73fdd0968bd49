"""Per-target circuit breaker to stop hammering failing providers."""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from dyor_research.exceptions import CircuitOpenError
from dyor_research.monitoring_metrics import CIRCUIT_TRANSITIONS

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing, reject calls
    HALF_OPEN = "half_open"  # Testing recovery


@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5
    monitoring_window: float = 60.0
    recovery_timeout: float = 30.0


class CircuitBreaker:
    """Circuit breaker for a single target.

    State only changes through ``before_call``, ``record_success`` and
    ``record_failure``. Check-and-increment never awaits, so callers on one
    event loop are serialized without a lock.
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.opened_at: Optional[float] = None
        self.window_started_at: Optional[float] = None
        self._trial_in_flight = False

    def _transition(self, state: CircuitState) -> None:
        if state is self.state:
            return
        previous = self.state
        self.state = state
        CIRCUIT_TRANSITIONS.labels(target=self.name, state=state.value).inc()
        if state is CircuitState.OPEN:
            logger.warning(
                f"Circuit {self.name} {previous.value} -> open after {self.failure_count} failures, "
                f"cooling down {self.config.recovery_timeout:.0f}s"
            )
        else:
            logger.info(f"Circuit {self.name} {previous.value} -> {state.value}")

    def retry_in(self) -> float:
        """Seconds until an OPEN circuit will admit a trial call."""
        if self.state is not CircuitState.OPEN or self.opened_at is None:
            return 0.0
        return max(0.0, self.opened_at + self.config.recovery_timeout - self._clock())

    def before_call(self) -> None:
        """Admit or reject a call. Raises CircuitOpenError when rejected."""
        if self.state is CircuitState.OPEN:
            if self.retry_in() > 0:
                raise CircuitOpenError(self.name, retry_in=self.retry_in())
            self._transition(CircuitState.HALF_OPEN)
            self._trial_in_flight = False

        if self.state is CircuitState.HALF_OPEN:
            # Exactly one trial per recovery
            if self._trial_in_flight:
                raise CircuitOpenError(self.name, retry_in=None)
            self._trial_in_flight = True

    def allow(self) -> bool:
        """Non-mutating check used for health reporting."""
        if self.state is CircuitState.CLOSED:
            return True
        if self.state is CircuitState.OPEN:
            return self.retry_in() <= 0
        return not self._trial_in_flight

    def is_open(self) -> bool:
        return not self.allow()

    def record_success(self) -> None:
        if self.state is CircuitState.OPEN:
            # Late result from a call admitted before the circuit opened
            return
        self._trial_in_flight = False
        self.failure_count = 0
        self.window_started_at = None
        if self.state is not CircuitState.CLOSED:
            self._transition(CircuitState.CLOSED)

    def record_failure(self) -> None:
        now = self._clock()
        self.last_failure_time = now

        if self.state is CircuitState.HALF_OPEN:
            self._trial_in_flight = False
            self.opened_at = now
            self._transition(CircuitState.OPEN)
            return

        if self.state is CircuitState.OPEN:
            return

        if self.window_started_at is None or now - self.window_started_at > self.config.monitoring_window:
            # Stale failures from an earlier burst do not count
            self.failure_count = 1
            self.window_started_at = now
        else:
            self.failure_count += 1

        if self.state is CircuitState.CLOSED and self.failure_count >= self.config.failure_threshold:
            self.opened_at = now
            self._transition(CircuitState.OPEN)

    def abort_trial(self) -> None:
        """Release a half-open trial that ended without a result, e.g. on cancellation."""
        if self.state is CircuitState.HALF_OPEN:
            self._trial_in_flight = False

    def reset(self) -> None:
        """Manually close the circuit and forget failures."""
        self.failure_count = 0
        self.window_started_at = None
        self.opened_at = None
        self._trial_in_flight = False
        self._transition(CircuitState.CLOSED)

    def stats(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "last_failure_time": self.last_failure_time,
            "opened_at": self.opened_at,
            "retry_in": round(self.retry_in(), 2),
        }
