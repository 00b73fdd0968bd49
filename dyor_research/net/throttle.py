"""Per-target request throttling: rate window, concurrency slots and spacing."""
import asyncio
import logging
import time
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Deque, Dict, Optional

from dyor_research.exceptions import ThrottledTimeout

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


@dataclass(frozen=True)
class ThrottleConfig:
    max_requests_per_minute: int = 60
    max_concurrent: int = 5
    min_interval: float = 0.0
    max_wait: Optional[float] = 120.0  # None waits forever


class Throttle:
    """Admission control for one target.

    Call starts are recorded in a rolling 60s log so that no more than
    ``max_requests_per_minute`` starts fall inside any 60s span. Waiters
    for concurrency slots are served FIFO.
    """

    def __init__(
        self,
        name: str,
        config: Optional[ThrottleConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.name = name
        self.config = config or ThrottleConfig()
        self._clock = clock
        self._sleep = sleep
        self._starts: Deque[float] = deque()
        self._slots = asyncio.Semaphore(self.config.max_concurrent)
        self._gate = asyncio.Lock()
        self.in_flight = 0
        self.last_call_at: Optional[float] = None

    @property
    def request_count(self) -> int:
        self._evict(self._clock())
        return len(self._starts)

    @property
    def window_start(self) -> Optional[float]:
        return self._starts[0] if self._starts else None

    def _evict(self, now: float) -> None:
        while self._starts and now - self._starts[0] >= WINDOW_SECONDS:
            self._starts.popleft()

    async def _admit(self) -> None:
        await self._slots.acquire()
        try:
            async with self._gate:
                while True:
                    now = self._clock()
                    self._evict(now)
                    if len(self._starts) >= self.config.max_requests_per_minute:
                        wait = self._starts[0] + WINDOW_SECONDS - now
                        logger.debug(f"Throttle {self.name}: window full, waiting {wait:.2f}s")
                        await self._sleep(wait)
                        continue
                    if self.last_call_at is not None and self.config.min_interval > 0:
                        gap = now - self.last_call_at
                        if gap < self.config.min_interval:
                            await self._sleep(self.config.min_interval - gap)
                            continue
                    break
                self._starts.append(now)
                self.last_call_at = now
                self.in_flight += 1
        except BaseException:
            self._slots.release()
            raise

    async def acquire(self) -> None:
        """Wait for admission, raising ThrottledTimeout past ``max_wait``."""
        if self.config.max_wait is None:
            await self._admit()
            return
        try:
            await asyncio.wait_for(self._admit(), timeout=self.config.max_wait)
        except asyncio.TimeoutError:
            raise ThrottledTimeout(self.name, self.config.max_wait) from None

    def release(self) -> None:
        self.in_flight -= 1
        self._slots.release()

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    def stats(self) -> Dict[str, Any]:
        return {
            "requests_in_window": self.request_count,
            "window_start": self.window_start,
            "in_flight": self.in_flight,
            "last_call_at": self.last_call_at,
        }
