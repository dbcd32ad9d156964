"""
Per-request cancellation token.

One token is created for every relayed request and handed to every await that
touches the upstream: the preflight, the provider reader and the response body
iterator. Cancelling is one-way.
"""

from __future__ import annotations

import asyncio

from ..infra.exceptions import ClientAbort


class CancelToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ClientAbort(self.reason or "cancelled")

    async def wait(self) -> None:
        await self._event.wait()

    def __repr__(self) -> str:
        state = f"cancelled ({self.reason})" if self.cancelled else "active"
        return f"<CancelToken {state}>"
