"""
Request governor tests against an httpx MockTransport.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from conftest import FakeClock
from reelvault.client.governor import (
    AssetState,
    RequestGovernor,
    from_data_url,
    is_provider_backed,
    to_data_url,
)
from reelvault.client.mirror import ClientThrottleMirror
from reelvault.client.queue import RequestQueue
from reelvault.streaming.throttle import RATE_LIMIT_HEADER

BASE = "http://reelvault.test"
PAGE_URL = f"{BASE}/assets/image-series/c1/page/1/stream"
PAGE_KEY = "comic:c1:page:1"


class Upstream:
    """Scripted responses per path, recording every request."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, httpx.Response] = {}
        self.gate: asyncio.Event | None = None

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        response = self.routes.get(request.url.path)
        if response is None:
            return httpx.Response(404)
        return response


@pytest.fixture
def upstream():
    upstream = Upstream()
    upstream.routes["/assets/image-series/c1/page/1/stream"] = httpx.Response(
        200, content=b"page-one", headers={"Content-Type": "image/jpeg"}
    )
    return upstream


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def governor(upstream, clock):
    client = httpx.AsyncClient(transport=httpx.MockTransport(upstream), follow_redirects=False)
    return RequestGovernor(client, mirror=ClientThrottleMirror(clock=clock))


def test_provider_backed_urls():
    assert is_provider_backed(PAGE_URL)
    assert is_provider_backed(f"{BASE}/assets/image-series/c1/cover")
    assert is_provider_backed("/assets/video/v1/stream")
    assert not is_provider_backed("https://placeholder.test/seed/x/800/1200")
    assert not is_provider_backed(f"{BASE}/api/comics")


def test_data_url_helpers():
    payload = to_data_url(b"\x00\x01", "image/png; charset=binary")
    assert payload.startswith("data:image/png;base64,")
    assert from_data_url(payload) == ("image/png", b"\x00\x01")


class TestLoad:
    @pytest.mark.asyncio
    async def test_success_is_cached(self, governor, upstream):
        first = await governor.load(PAGE_URL, PAGE_KEY)
        assert first.status == "loaded"
        assert first.ok
        assert from_data_url(first.payload) == ("image/jpeg", b"page-one")
        assert governor.state(PAGE_KEY) == AssetState.CACHED

        second = await governor.load(PAGE_URL, PAGE_KEY)
        assert second.status == "cached"
        assert second.payload == first.payload
        assert len(upstream.requests) == 1

    @pytest.mark.asyncio
    async def test_key_defaults_to_url(self, governor):
        await governor.load(PAGE_URL)
        assert governor.get(PAGE_URL) is not None

    @pytest.mark.asyncio
    async def test_failure_is_not_retried_within_ttl(self, governor, upstream, clock):
        missing = f"{BASE}/assets/image-series/c1/page/9/stream"
        first = await governor.load(missing, "comic:c1:page:9")
        assert first.status == "fallback"
        assert first.reason == "http_404"
        assert governor.state("comic:c1:page:9") == AssetState.FAILED

        again = await governor.load(missing, "comic:c1:page:9")
        assert again.reason == "recently_failed"
        assert len(upstream.requests) == 1

        clock.now += 301
        await governor.load(missing, "comic:c1:page:9")
        assert len(upstream.requests) == 2

    @pytest.mark.asyncio
    async def test_429_sets_mirror_and_blocks_further_loads(self, governor, upstream):
        upstream.routes["/assets/image-series/c1/page/1/stream"] = httpx.Response(
            429, json={"success": False, "timeLimit": 90}, headers={RATE_LIMIT_HEADER: "90"}
        )
        result = await governor.load(PAGE_URL, PAGE_KEY)
        assert result.reason == "rate_limited"
        assert result.retry_in == 90
        assert governor.is_rate_limited()

        other = await governor.load(f"{BASE}/assets/image-series/c1/page/2/stream", "comic:c1:page:2")
        assert other.reason == "rate_limited"
        assert len(upstream.requests) == 1

    @pytest.mark.asyncio
    async def test_429_body_time_limit_without_header(self, governor, upstream):
        upstream.routes["/assets/image-series/c1/page/1/stream"] = httpx.Response(
            429, json={"success": False, "timeLimit": 45}
        )
        result = await governor.load(PAGE_URL, PAGE_KEY)
        assert result.retry_in == 45

    @pytest.mark.asyncio
    async def test_placeholder_redirect_with_reset_header(self, governor, upstream):
        upstream.routes["/assets/image-series/c1/page/1/stream"] = httpx.Response(
            302,
            headers={"Location": "https://placeholder.test/seed/c1-0/800/1200", RATE_LIMIT_HEADER: "120"},
        )
        result = await governor.load(PAGE_URL, PAGE_KEY)
        assert result.reason == "rate_limited"
        assert governor.mirror.seconds_remaining() == 120

    @pytest.mark.asyncio
    async def test_plain_redirect_returns_location(self, governor, upstream):
        upstream.routes["/assets/image-series/c1/page/1/stream"] = httpx.Response(
            302, headers={"Location": "https://placeholder.test/seed/c1-0/800/1200"}
        )
        result = await governor.load(PAGE_URL, PAGE_KEY)
        assert result.status == "fallback"
        assert result.reason == "redirect"
        assert result.payload == "https://placeholder.test/seed/c1-0/800/1200"
        assert not governor.is_rate_limited()
        assert governor.is_recently_failed(PAGE_KEY)

    @pytest.mark.asyncio
    async def test_transport_error_is_memoized(self, clock):
        def broken(request):
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(broken)) as client:
            governor = RequestGovernor(client, mirror=ClientThrottleMirror(clock=clock))
            result = await governor.load(PAGE_URL, PAGE_KEY)
        assert result.reason == "error"
        assert governor.is_recently_failed(PAGE_KEY)

    @pytest.mark.asyncio
    async def test_concurrent_loads_share_one_request(self, governor, upstream):
        upstream.gate = asyncio.Event()
        first = asyncio.ensure_future(governor.load(PAGE_URL, PAGE_KEY))
        second = asyncio.ensure_future(governor.load(PAGE_URL, PAGE_KEY))
        for _ in range(5):
            await asyncio.sleep(0)
        assert governor.state(PAGE_KEY) == AssetState.IN_FLIGHT

        upstream.gate.set()
        a, b = await asyncio.gather(first, second)
        assert a == b
        assert len(upstream.requests) == 1

    @pytest.mark.asyncio
    async def test_provider_fetches_respect_the_ceiling(self, governor, upstream):
        upstream.gate = asyncio.Event()
        for n in range(1, 5):
            upstream.routes[f"/assets/image-series/c1/page/{n}/stream"] = httpx.Response(
                200, content=b"x", headers={"Content-Type": "image/jpeg"}
            )
        loads = [
            asyncio.ensure_future(
                governor.load(f"{BASE}/assets/image-series/c1/page/{n}/stream", f"comic:c1:page:{n}")
            )
            for n in range(1, 5)
        ]
        await asyncio.sleep(0.05)

        assert len(upstream.requests) == 2
        assert governor.state("comic:c1:page:4") == AssetState.QUEUED

        upstream.gate.set()
        results = await asyncio.gather(*loads)
        assert all(r.ok for r in results)
        assert len(upstream.requests) == 4

    @pytest.mark.asyncio
    async def test_non_provider_urls_skip_the_queue(self, governor, upstream):
        upstream.routes["/seed/x/800/1200"] = httpx.Response(200, content=b"ph", headers={"Content-Type": "image/jpeg"})
        governor.queue.pause()
        result = await governor.load(f"{BASE}/seed/x/800/1200", "placeholder")
        assert result.status == "loaded"
        assert governor.queue.pending == 0

    @pytest.mark.asyncio
    async def test_enqueue_runs_through_the_queue(self, governor):
        async def work():
            return 42

        assert await governor.enqueue(work) == 42

    def test_state_of_unknown_key(self, governor):
        assert governor.state("nothing") == AssetState.NOT_REQUESTED

    def test_mark_request_failed(self, governor):
        governor.mark_request_failed("k")
        assert governor.is_recently_failed("k")


class TestSharedFailures:
    @pytest.mark.asyncio
    async def test_error_on_shared_key_reaches_every_caller(self, clock):
        gate = asyncio.Event()

        async def exploding(request):
            await gate.wait()
            raise RuntimeError("decoder exploded")

        async with httpx.AsyncClient(transport=httpx.MockTransport(exploding)) as client:
            governor = RequestGovernor(client, mirror=ClientThrottleMirror(clock=clock))
            first = asyncio.ensure_future(governor.load(PAGE_URL, PAGE_KEY))
            second = asyncio.ensure_future(governor.load(PAGE_URL, PAGE_KEY))
            await asyncio.sleep(0.05)
            gate.set()
            results = await asyncio.gather(first, second, return_exceptions=True)

        assert all(isinstance(r, RuntimeError) for r in results)
        assert governor.state(PAGE_KEY) == AssetState.NOT_REQUESTED

    @pytest.mark.asyncio
    async def test_non_numeric_time_limit_uses_default_reset(self, governor, upstream):
        upstream.routes["/assets/image-series/c1/page/1/stream"] = httpx.Response(
            429, json={"success": False, "timeLimit": "soon"}
        )
        result = await governor.load(PAGE_URL, PAGE_KEY)
        assert result.reason == "rate_limited"
        assert result.retry_in == 3600

    @pytest.mark.asyncio
    async def test_queued_loads_fall_back_when_window_starts(self, upstream, clock):
        mirror = ClientThrottleMirror(clock=clock)
        upstream.routes["/assets/image-series/c1/page/1/stream"] = httpx.Response(
            429, json={"success": False, "timeLimit": 3600}, headers={RATE_LIMIT_HEADER: "3600"}
        )
        for n in range(2, 5):
            upstream.routes[f"/assets/image-series/c1/page/{n}/stream"] = httpx.Response(
                200, content=b"x", headers={"Content-Type": "image/jpeg"}
            )
        client = httpx.AsyncClient(transport=httpx.MockTransport(upstream), follow_redirects=False)
        governor = RequestGovernor(client, mirror=mirror, queue=RequestQueue(max_concurrent=1, mirror=mirror))

        loads = [
            asyncio.ensure_future(
                governor.load(f"{BASE}/assets/image-series/c1/page/{n}/stream", f"comic:c1:page:{n}")
            )
            for n in range(1, 5)
        ]
        results = await asyncio.wait_for(asyncio.gather(*loads), timeout=1)

        assert [r.reason for r in results] == ["rate_limited"] * 4
        assert all(r.retry_in == 3600 for r in results)
        assert len(upstream.requests) == 1
        assert governor.queue.pending == 0
