"""
Global test configuration for ReelVault.

Provides settings, an in-memory catalog and a fake upstream provider that
keeps count of opened and closed streams.
"""

import asyncio
import sys
from pathlib import Path, PurePosixPath

import pytest

# Ensure the project src directory is importable without relying on external environment.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from reelvault.catalog.store import CatalogStore
from reelvault.infra.db import create_schema, get_sessionmaker
from reelvault.infra.exceptions import UpstreamError
from reelvault.infra.settings import Settings
from reelvault.providers.base import RemoteNode
from reelvault.streaming.locator import AssetLocator
from reelvault.streaming.relay import RangeAwareRelay
from reelvault.streaming.throttle import ThrottleState


class FakeProvider:
    """
    In-memory AssetProvider.

    ``files`` maps locators to bytes; ``folders`` maps folder locators to the
    locators of their children. Failures are injected through the ``*_errors``
    lists (consumed one per call) or ``open_error``/``stream_error``.
    """

    name = "fake"

    def __init__(self, files=None, folders=None, chunk_size=4):
        self.files: dict[str, bytes] = dict(files or {})
        self.folders: dict[str, list[str]] = dict(folders or {})
        self.chunk_size = chunk_size

        self.stat_errors: list[Exception] = []
        self.list_errors: list[Exception] = []
        self.open_error: Exception | None = None
        self.open_delay: float = 0.0
        self.stream_error: Exception | None = None
        self.fail_after_chunks: int | None = None
        self.ignore_end = False

        self.stat_calls = 0
        self.list_calls = 0
        self.open_calls: list[tuple[str, int, int | None]] = []
        self.closed = 0
        self.aclosed = False

    @property
    def opened(self) -> int:
        return len(self.open_calls)

    @property
    def open_streams(self) -> int:
        return self.opened - self.closed

    def _node(self, locator: str) -> RemoteNode:
        name = PurePosixPath(locator.rstrip("/")).name
        if locator in self.folders:
            return RemoteNode(locator=locator, name=name, is_directory=True)
        return RemoteNode(locator=locator, name=name, size=len(self.files[locator]))

    async def stat(self, locator):
        self.stat_calls += 1
        if self.stat_errors:
            raise self.stat_errors.pop(0)
        if locator not in self.files and locator not in self.folders:
            raise UpstreamError("ENOENT: not found", status=404, locator=locator)
        return self._node(locator)

    async def list_children(self, locator):
        self.list_calls += 1
        if self.list_errors:
            raise self.list_errors.pop(0)
        if locator not in self.folders:
            raise UpstreamError("ENOENT: not found", status=404, locator=locator)
        return [self._node(child) for child in self.folders[locator]]

    async def open_range(self, locator, start=0, end=None, token=None):
        self.open_calls.append((locator, start, end))
        try:
            if self.open_delay:
                await asyncio.sleep(self.open_delay)
            if self.open_error is not None:
                raise self.open_error
            data = self.files[locator]
            stop = None if end is None or self.ignore_end else end + 1
            data = data[start:stop]
            for n, offset in enumerate(range(0, len(data), self.chunk_size)):
                if token is not None and token.cancelled:
                    break
                if self.fail_after_chunks is not None and n >= self.fail_after_chunks:
                    raise self.stream_error
                yield data[offset : offset + self.chunk_size]
        finally:
            self.closed += 1

    async def aclose(self):
        self.aclosed = True

    def describe(self):
        return {"provider": self.name}


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        DATABASE_URL="sqlite://",
        STORAGE_ROOT=str(tmp_path),
        PLACEHOLDER_BASE_URL="https://placeholder.test",
        PROBE_TIMEOUT=1.0,
        RETRY_MAX_ATTEMPTS=3,
        RETRY_BASE_DELAY=0,
        RETRY_JITTER=0,
    )


@pytest.fixture
def store():
    factory = get_sessionmaker("sqlite://")
    create_schema(factory.kw["bind"])
    return CatalogStore(factory)


@pytest.fixture
def provider():
    return FakeProvider(
        files={
            "Exhibition/clip.mp4": b"0123456789",
            "Exhibition/trailer.webm": b"abcdefghijklmnopqrstuvwxyz",
            "Comic/Issue 1/page10.jpg": b"page-ten",
            "Comic/Issue 1/page2.png": b"page-two",
            "Comic/Issue 1/Page1.jpg": b"page-one",
            "Comic/Issue 1/notes.txt": b"not an image",
        },
        folders={
            "Exhibition": ["Exhibition/clip.mp4", "Exhibition/trailer.webm"],
            "Comic": ["Comic/Issue 1"],
            "Comic/Issue 1": [
                "Comic/Issue 1/page10.jpg",
                "Comic/Issue 1/page2.png",
                "Comic/Issue 1/Page1.jpg",
                "Comic/Issue 1/notes.txt",
            ],
        },
    )


@pytest.fixture
def locator(provider, test_settings):
    return AssetLocator(provider, test_settings)


@pytest.fixture
def throttle_state():
    return ThrottleState()


@pytest.fixture
def relay(locator, throttle_state, test_settings):
    return RangeAwareRelay(locator, throttle_state, test_settings)


async def collect(response) -> bytes:
    """Drain a StreamingResponse body."""
    return b"".join([chunk async for chunk in response.body_iterator])


class FakeClock:
    """Manually advanced clock for TTL and window tests."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now
