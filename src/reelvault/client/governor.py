"""
Client request governor.

Decides, per asset key, whether a fetch happens at all: cached results are
returned without a request, recent failures and an active rate limit return
the fallback, and provider-backed fetches go through the concurrency-limited
queue. Concurrent loads of one key share a single in-flight fetch.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

import httpx

from ..infra.exceptions import ThrottledError
from ..streaming.throttle import DEFAULT_RESET_SECONDS, RATE_LIMIT_HEADER
from .cache import FailureMemo, ResultCache
from .mirror import ClientThrottleMirror
from .queue import RequestQueue

logger = logging.getLogger(__name__)

T = TypeVar("T")

PROVIDER_PATH_MARKERS = ("/stream", "/cover")


class AssetState(str, Enum):
    NOT_REQUESTED = "not_requested"
    QUEUED = "queued"
    IN_FLIGHT = "in_flight"
    CACHED = "cached"
    FAILED = "failed"


@dataclass(frozen=True)
class LoadResult:
    status: str  # "loaded" | "cached" | "fallback"
    payload: str | None = None
    reason: str | None = None
    retry_in: int | None = None

    @property
    def ok(self) -> bool:
        return self.status in ("loaded", "cached")


def is_provider_backed(url: str) -> bool:
    """URLs that cost upstream bandwidth when fetched."""
    path = httpx.URL(url).path
    return any(marker in path for marker in PROVIDER_PATH_MARKERS)


def to_data_url(content: bytes, content_type: str | None) -> str:
    media_type = (content_type or "application/octet-stream").split(";", 1)[0].strip()
    return f"data:{media_type};base64,{base64.b64encode(content).decode('ascii')}"


def from_data_url(payload: str) -> tuple[str, bytes]:
    """Inverse of ``to_data_url``: returns (media_type, content)."""
    header, _, data = payload.partition(",")
    media_type = header.removeprefix("data:").split(";", 1)[0]
    return media_type, base64.b64decode(data)


def _reset_seconds(response: httpx.Response) -> int | None:
    raw = response.headers.get(RATE_LIMIT_HEADER)
    if raw is not None:
        try:
            return int(float(raw))
        except ValueError:
            pass
    if response.status_code == 429:
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict) and body.get("timeLimit") is not None:
            try:
                return int(body["timeLimit"])
            except (TypeError, ValueError):
                return DEFAULT_RESET_SECONDS
    return None


class RequestGovernor:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        cache: ResultCache | None = None,
        failures: FailureMemo | None = None,
        mirror: ClientThrottleMirror | None = None,
        queue: RequestQueue | None = None,
    ):
        self.http_client = http_client
        self.mirror = mirror or ClientThrottleMirror()
        self.cache = cache or ResultCache(clock=self.mirror.clock)
        self.failures = failures or FailureMemo(clock=self.mirror.clock)
        self.queue = queue or RequestQueue(mirror=self.mirror)
        self._in_flight: dict[str, asyncio.Future] = {}
        self._queued: set[str] = set()

    # -- small accessors ---------------------------------------------------

    def get(self, key: str) -> Any | None:
        return self.cache.get(key)

    def is_recently_failed(self, key: str) -> bool:
        return self.failures.is_recently_failed(key)

    def mark_request_failed(self, key: str) -> None:
        self.failures.mark_failed(key)

    def is_rate_limited(self) -> bool:
        return self.mirror.is_rate_limited().limited

    async def enqueue(self, task: Callable[[], Awaitable[T]]) -> T:
        return await self.queue.add(task)

    def state(self, key: str) -> AssetState:
        if key in self._in_flight:
            return AssetState.QUEUED if key in self._queued else AssetState.IN_FLIGHT
        if key in self.cache:
            return AssetState.CACHED
        if self.failures.is_recently_failed(key):
            return AssetState.FAILED
        return AssetState.NOT_REQUESTED

    # -- loading -----------------------------------------------------------

    def _fallback(self, reason: str, payload: str | None = None) -> LoadResult:
        retry_in = self.mirror.seconds_remaining() if reason == "rate_limited" else None
        return LoadResult(status="fallback", payload=payload, reason=reason, retry_in=retry_in)

    async def load(self, url: str, key: str | None = None) -> LoadResult:
        key = key or url

        cached = self.cache.get(key)
        if cached is not None:
            return LoadResult(status="cached", payload=cached)
        if self.failures.is_recently_failed(key):
            return self._fallback("recently_failed")
        if self.is_rate_limited():
            return self._fallback("rate_limited")

        existing = self._in_flight.get(key)
        if existing is not None:
            return await asyncio.shield(existing)

        future = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            if is_provider_backed(url):
                self._queued.add(key)
                try:
                    result = await self.queue.add(lambda: self._fetch(url, key))
                except ThrottledError:
                    result = self._fallback("rate_limited")
            else:
                result = await self._fetch(url, key)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Marked retrieved; sharers still see it through shield()
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            self._in_flight.pop(key, None)
            self._queued.discard(key)

    async def _fetch(self, url: str, key: str) -> LoadResult:
        self._queued.discard(key)
        try:
            response = await self.http_client.get(url)
        except httpx.HTTPError as e:
            logger.warning(f"Request for {key} failed: {e}")
            self.failures.mark_failed(key)
            return self._fallback("error")

        reset = _reset_seconds(response)
        if response.status_code == 429 or (response.is_redirect and reset is not None):
            self.mirror.set_rate_limited(reset if reset is not None else DEFAULT_RESET_SECONDS)
            self.failures.mark_failed(key)
            logger.info(f"Upstream rate limited while loading {key}; retry in {self.mirror.seconds_remaining()}s")
            return self._fallback("rate_limited")

        if response.is_redirect:
            self.failures.mark_failed(key)
            return self._fallback("redirect", payload=response.headers.get("Location"))

        if not response.is_success:
            self.failures.mark_failed(key)
            return self._fallback(f"http_{response.status_code}")

        payload = to_data_url(response.content, response.headers.get("Content-Type"))
        if not self.cache.set(key, payload):
            logger.debug(f"Result for {key} too large to cache")
        return LoadResult(status="loaded", payload=payload)
