"""
ReelVault consumer client.

Wraps the HTTP API for readers and players: cached page listings, governed
page and cover fetches, and a cheap video availability check that keeps the
throttle mirror up to date.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from ..infra.exceptions import NotFoundError, ThrottledError, UpstreamError
from ..streaming.throttle import DEFAULT_RESET_SECONDS, RATE_LIMIT_HEADER
from .banner import format_countdown
from .cache import ResultCache
from .governor import LoadResult, RequestGovernor
from .mirror import ClientThrottleMirror

SESSION_CACHE_TTL = 30 * 60


@dataclass(frozen=True)
class VideoAvailability:
    available: bool
    retry_in: int | None = None
    message: str | None = None


def _reset_from(response: httpx.Response) -> int:
    raw = response.headers.get(RATE_LIMIT_HEADER)
    if raw is not None:
        try:
            return int(float(raw))
        except ValueError:
            pass
    try:
        return int(response.json().get("timeLimit", DEFAULT_RESET_SECONDS))
    except (TypeError, ValueError, AttributeError):
        return DEFAULT_RESET_SECONDS


class ReelVaultClient:
    def __init__(
        self,
        base_url: str,
        governor: RequestGovernor | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            base_url=base_url, timeout=30.0, follow_redirects=False
        )
        self.governor = governor or RequestGovernor(self.http_client, mirror=ClientThrottleMirror(clock))
        self.mirror = self.governor.mirror
        self.session_cache = ResultCache(
            ttl=SESSION_CACHE_TTL, max_entries=200, max_payload_size=None, clock=self.mirror.clock
        )

    async def __aenter__(self) -> ReelVaultClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _note_rate_limit(self, response: httpx.Response) -> int:
        seconds = _reset_from(response)
        self.mirror.set_rate_limited(seconds)
        return seconds

    async def list_pages(self, comic_id: str) -> dict[str, Any]:
        """Page listing for a comic, cached for the session.

        Raises:
            ThrottledError: The service answered 429
            NotFoundError: Unknown comic
            UpstreamError: Any other non-success answer
        """
        key = f"pages:{comic_id}"
        cached = self.session_cache.get(key)
        if cached is not None:
            return cached

        response = await self.http_client.get(f"/assets/image-series/{comic_id}/pages")
        if response.status_code == 429:
            raise ThrottledError(reset_seconds=self._note_rate_limit(response))
        if response.status_code == 404:
            raise NotFoundError(f"Comic {comic_id} not found")
        if not response.is_success:
            raise UpstreamError(f"Page listing failed for {comic_id}", status=response.status_code)

        body = response.json()
        # Placeholder listings are not worth remembering
        if not body.get("fallback"):
            self.session_cache.set(key, body)
        return body

    async def fetch_page(self, comic_id: str, index: int) -> LoadResult:
        return await self.governor.load(
            f"/assets/image-series/{comic_id}/page/{index}/stream", key=f"comic:{comic_id}:page:{index}"
        )

    async def fetch_cover(self, comic_id: str) -> LoadResult:
        return await self.governor.load(f"/assets/image-series/{comic_id}/cover", key=f"comic:{comic_id}:cover")

    async def check_video(self, video_id: str) -> VideoAvailability:
        if self.governor.is_rate_limited():
            retry_in = self.mirror.seconds_remaining()
            return VideoAvailability(
                available=False,
                retry_in=retry_in,
                message=f"Video temporarily unavailable. Try again in {format_countdown(retry_in)}",
            )

        response = await self.http_client.get(
            f"/assets/video/{video_id}/stream", headers={"Range": "bytes=0-0"}
        )
        if response.status_code in (200, 206):
            return VideoAvailability(available=True)
        if response.status_code == 429:
            retry_in = self._note_rate_limit(response)
            return VideoAvailability(
                available=False,
                retry_in=retry_in,
                message=f"Video temporarily unavailable. Try again in {format_countdown(retry_in)}",
            )

        try:
            message = response.json().get("message")
        except (ValueError, AttributeError):
            message = None
        return VideoAvailability(available=False, message=message or f"HTTP {response.status_code}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()
