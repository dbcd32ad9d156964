"""Client-side copy of the upstream throttle window."""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitInfo:
    limited: bool
    reset_at: float | None = None


class ClientThrottleMirror:
    """
    Mirrors the server's throttle window from ``X-Rate-Limit-Reset``.

    The window clears lazily: the first check after ``reset_at`` forgets it.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._reset_at: float | None = None

    def set_rate_limited(self, seconds: int | float) -> None:
        self._reset_at = self.clock() + max(0.0, float(seconds))

    def is_rate_limited(self) -> RateLimitInfo:
        if self._reset_at is None:
            return RateLimitInfo(limited=False)
        if self.clock() >= self._reset_at:
            self._reset_at = None
            return RateLimitInfo(limited=False)
        return RateLimitInfo(limited=True, reset_at=self._reset_at)

    def seconds_remaining(self) -> int:
        info = self.is_rate_limited()
        if not info.limited or info.reset_at is None:
            return 0
        return max(0, math.ceil(info.reset_at - self.clock()))

    def clear(self) -> None:
        self._reset_at = None
