"""
Visibility-gated admission.

Observed elements are only handed to the governor once they come within
``margin`` pixels of the viewport. Each element is admitted at most once.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from .governor import LoadResult, RequestGovernor

DEFAULT_MARGIN = 100.0


@dataclass(frozen=True)
class Rect:
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height


def within_margin(rect: Rect, viewport: Rect, margin: float = DEFAULT_MARGIN) -> bool:
    return (
        rect.bottom >= viewport.top - margin
        and rect.top <= viewport.bottom + margin
        and rect.right >= viewport.left - margin
        and rect.left <= viewport.right + margin
    )


@dataclass
class _Observed:
    url: str
    rect: Rect
    future: asyncio.Future


class LazyAdmission:
    def __init__(self, governor: RequestGovernor, margin: float = DEFAULT_MARGIN):
        self.governor = governor
        self.margin = margin
        self._observed: dict[str, _Observed] = {}
        self._tasks: set[asyncio.Task] = set()

    @property
    def waiting(self) -> int:
        return len(self._observed)

    def observe(self, key: str, url: str, rect: Rect) -> asyncio.Future:
        """Register an element; the returned future resolves once it has loaded."""
        existing = self._observed.get(key)
        if existing is not None:
            return existing.future
        future = asyncio.get_running_loop().create_future()
        self._observed[key] = _Observed(url=url, rect=rect, future=future)
        return future

    def move(self, key: str, rect: Rect) -> None:
        observed = self._observed.get(key)
        if observed is not None:
            observed.rect = rect

    def unobserve(self, key: str) -> None:
        observed = self._observed.pop(key, None)
        if observed is not None and not observed.future.done():
            observed.future.cancel()

    def update_viewport(self, viewport: Rect) -> list[str]:
        """Admit every observed element near ``viewport``. Returns admitted keys."""
        admitted = [
            key
            for key, observed in self._observed.items()
            if within_margin(observed.rect, viewport, self.margin)
        ]
        for key in admitted:
            observed = self._observed.pop(key)
            task = asyncio.ensure_future(self.governor.load(observed.url, key))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            task.add_done_callback(lambda t, f=observed.future: _settle(f, t))
        return admitted


def _settle(future: asyncio.Future, task: asyncio.Task) -> None:
    if future.done():
        return
    if task.cancelled():
        future.cancel()
    elif task.exception() is not None:
        future.set_exception(task.exception())
    else:
        result: LoadResult = task.result()
        future.set_result(result)
