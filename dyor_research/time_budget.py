"""Time budget tracking for one research run."""
import time
from typing import Callable, Optional


class Budget:
    """Monotonic time budget derived from a research plan's estimate."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        """Initialize budget with total seconds.

        Args:
            seconds: Total seconds allowed for the run
            clock: Monotonic clock, injectable for tests
        """
        self._clock = clock
        self.t0 = clock()
        self.total_seconds = seconds
        self.deadline = self.t0 + seconds

    @classmethod
    def from_minutes(cls, minutes: float, clock: Callable[[], float] = time.monotonic) -> "Budget":
        return cls(minutes * 60.0, clock=clock)

    def elapsed(self) -> float:
        """Seconds since the budget started."""
        return self._clock() - self.t0

    def remaining(self) -> float:
        """Remaining seconds, never below zero."""
        return max(0.0, self.deadline - self._clock())

    def is_expired(self) -> bool:
        return self._clock() >= self.deadline

    def percentage_used(self) -> float:
        if self.total_seconds <= 0:
            return 100.0
        return min(100.0, (self.elapsed() / self.total_seconds) * 100)

    def get_timeout(self, max_timeout: Optional[float] = None) -> float:
        """Get a per-call timeout that respects both the budget and a cap."""
        remaining = max(0.1, self.remaining())
        if max_timeout is not None:
            return min(remaining, max_timeout)
        return remaining
