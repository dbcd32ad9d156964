"""
FIFO request queue with a hard concurrency ceiling.

Runs on a single event loop, so the counters need no locks. Every task frees
its slot in ``finally``, whatever the outcome, and the next pending task is
started right away.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from ..infra.exceptions import ThrottledError
from .mirror import ClientThrottleMirror

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_CONCURRENT = 2


class RequestQueue:
    def __init__(self, max_concurrent: int = MAX_CONCURRENT, mirror: ClientThrottleMirror | None = None):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.mirror = mirror
        self.running = 0
        self._pending: deque[tuple[Callable[[], Awaitable[Any]], asyncio.Future]] = deque()
        self._paused = False
        self._resume_handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def paused(self) -> bool:
        return self._paused

    def _limited(self) -> bool:
        return self.mirror is not None and self.mirror.is_rate_limited().limited

    async def add(self, task: Callable[[], Awaitable[T]]) -> T:
        """Queue ``task`` and wait for its result.

        Raises:
            ThrottledError: The throttle mirror is active, or became active
                while the task was still pending
        """
        if self._limited():
            self._pause_until_window_ends()
            raise ThrottledError(reset_seconds=self.mirror.seconds_remaining())

        future = asyncio.get_running_loop().create_future()
        self._pending.append((task, future))
        self._drain()
        return await future

    def _drain(self) -> None:
        if self._pending and self._limited():
            self._pause_until_window_ends()
            self._reject_pending()
            return
        while not self._paused and self.running < self.max_concurrent and self._pending:
            task, future = self._pending.popleft()
            if future.done():
                continue
            self.running += 1
            runner = asyncio.ensure_future(self._run(task, future))
            self._tasks.add(runner)
            runner.add_done_callback(self._tasks.discard)

    async def _run(self, task: Callable[[], Awaitable[Any]], future: asyncio.Future) -> None:
        try:
            result = await task()
        except asyncio.CancelledError:
            if not future.done():
                future.cancel()
        except Exception as e:
            if not future.done():
                future.set_exception(e)
        else:
            if not future.done():
                future.set_result(result)
        finally:
            self.running -= 1
            self._drain()

    def _pause_until_window_ends(self) -> None:
        self._paused = True
        if self._resume_handle is not None or self.mirror is None:
            return
        delay = self.mirror.seconds_remaining()
        logger.info(f"Request queue paused for {delay}s while upstream is rate limited")
        self._resume_handle = asyncio.get_running_loop().call_later(delay, self.resume)

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        if self._resume_handle is not None:
            self._resume_handle.cancel()
            self._resume_handle = None
        self._paused = False
        self._drain()

    def clear(self) -> None:
        """Drop pending work; callers waiting on it see CancelledError."""
        while self._pending:
            _task, future = self._pending.popleft()
            if not future.done():
                future.cancel()

    def _reject_pending(self) -> None:
        """Fail queued work fast instead of holding it for the whole window."""
        reset = self.mirror.seconds_remaining() if self.mirror is not None else 0
        while self._pending:
            _task, future = self._pending.popleft()
            if not future.done():
                future.set_exception(ThrottledError(reset_seconds=reset))
