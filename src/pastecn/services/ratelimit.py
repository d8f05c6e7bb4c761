"""Rate-limit gate used in front of password checks."""

from __future__ import annotations

import math
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Protocol


@dataclass(slots=True, frozen=True)
class RateLimitResult:
    limited: bool
    retry_after: int = 0


class RateLimiter(Protocol):
    def check(self, key: str) -> RateLimitResult:
        ...


class NoRateLimit:
    """Gate that never limits, for deployments behind an edge firewall."""

    def check(self, key: str) -> RateLimitResult:
        return RateLimitResult(limited=False)


class SlidingWindowRateLimiter:
    """In-memory sliding window keyed by an arbitrary string.

    Every call counts as an attempt. Limited calls are not recorded, so a
    client that keeps retrying is released once its oldest attempt leaves
    the window.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        window_seconds: float = 15 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_attempts = max(1, int(max_attempts))
        self.window_seconds = float(window_seconds)
        self._clock = clock
        self._attempts: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def check(self, key: str) -> RateLimitResult:
        now = self._clock()
        horizon = now - self.window_seconds
        with self._lock:
            attempts = self._attempts[key]
            while attempts and attempts[0] <= horizon:
                attempts.popleft()
            if len(attempts) >= self.max_attempts:
                retry_after = math.ceil(attempts[0] + self.window_seconds - now)
                return RateLimitResult(limited=True, retry_after=max(1, retry_after))
            attempts.append(now)
        return RateLimitResult(limited=False)
