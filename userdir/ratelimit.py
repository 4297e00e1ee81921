"""Fixed-window request limiter keyed by client address."""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: float

    @property
    def retry_after(self) -> int:
        """Whole seconds a rejected client should wait, never less than one."""

        return max(1, math.ceil(self.reset_after))


@dataclass
class _Window:
    started: float
    hits: int


class RateLimiter:
    """Allow at most ``limit`` hits per key in each ``period`` second window."""

    def __init__(
        self,
        limit: int,
        period: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if limit < 1:
            raise ValueError("Rate limit must allow at least one request")
        if not math.isfinite(period) or period <= 0:
            raise ValueError("Rate limit period must be positive")
        self._limit = limit
        self._period = float(period)
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def period(self) -> float:
        return self._period

    def hit(self, key: str) -> RateLimitDecision:
        now = self._clock()
        with self._lock:
            self._prune_locked(now)
            window = self._windows.get(key)
            if window is None:
                window = _Window(started=now, hits=0)
                self._windows[key] = window

            reset_after = window.started + self._period - now
            if window.hits >= self._limit:
                return RateLimitDecision(False, self._limit, 0, reset_after)

            window.hits += 1
            return RateLimitDecision(True, self._limit, self._limit - window.hits, reset_after)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def _prune_locked(self, now: float) -> None:
        expired = [
            key for key, window in self._windows.items() if now - window.started >= self._period
        ]
        for key in expired:
            self._windows.pop(key, None)


__all__ = ["RateLimitDecision", "RateLimiter"]
