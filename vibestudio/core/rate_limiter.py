"""Rate Limiter - fixed-window request counter keyed by client address.

Invariants:
    - At most `limit` allowed calls per key per window
    - A denied call reports retry_after = ceil(seconds left in the window), >= 1
    - Windows reset lazily on the next access after expiry (no sweeper)
    - Independent from the RunRegistry

Design Decisions:
    - Injectable clock: tests drive time explicitly
"""

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass
class RateLimitRecord:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    retry_after: int | None = None


class RateLimiter:
    """Per-key fixed window counter."""

    def __init__(
        self,
        limit: int = 100,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._records: dict[str, RateLimitRecord] = {}
        self._lock = threading.Lock()

    def allowed(self, key: str) -> RateDecision:
        now = self._clock()
        with self._lock:
            record = self._records.get(key)
            if record is None or now >= record.reset_at:
                self._records[key] = RateLimitRecord(1, now + self.window_seconds)
                return RateDecision(True)
            if record.count >= self.limit:
                retry_after = max(1, math.ceil(record.reset_at - now))
                return RateDecision(False, retry_after)
            record.count += 1
            return RateDecision(True)

    def reset(self) -> None:
        with self._lock:
            self._records.clear()
