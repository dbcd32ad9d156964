"""
Rate-limit banner.

A stateless countdown over the throttle mirror. ``watch`` re-reads the mirror
on every poll and hands the message (or None when the window is over) to a
render callback.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Callable

from .mirror import ClientThrottleMirror

POLL_INTERVAL = 1.0


def format_countdown(seconds: int) -> str:
    hours, rest = divmod(max(0, int(seconds)), 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class RateLimitBanner:
    def __init__(
        self,
        mirror: ClientThrottleMirror,
        poll_interval: float = POLL_INTERVAL,
        clock: Callable[[], float] | None = None,
    ):
        self.mirror = mirror
        self.poll_interval = poll_interval
        self.clock = clock or mirror.clock

    def seconds_left(self) -> int | None:
        info = self.mirror.is_rate_limited()
        if not info.limited or info.reset_at is None:
            return None
        left = math.ceil(info.reset_at - self.clock())
        return left if left > 0 else None

    def message(self) -> str | None:
        left = self.seconds_left()
        if left is None:
            return None
        return f"Upstream bandwidth limit reached. Images will be available in {format_countdown(left)}"

    async def watch(self, render: Callable[[str | None], object], stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            render(self.message())
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
