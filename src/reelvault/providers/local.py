"""
Local drive provider.

Serves a directory tree as if it were the cloud drive. Locators are paths
relative to the configured root (``Comic/Issue 1``) or ``file://`` URLs inside
it. Useful for development and for mirrored drives.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

from ..infra.exceptions import UpstreamError
from ..shared.cancel import CancelToken
from .base import RemoteNode

logger = logging.getLogger(__name__)


class LocalDriveProvider:
    """AssetProvider backed by a local directory."""

    name = "local"

    def __init__(self, root: str | Path, chunk_size: int = 64 * 1024):
        self.root = Path(root).expanduser().resolve()
        self.chunk_size = chunk_size

    def _path_for(self, locator: str) -> Path:
        if locator.startswith("file://"):
            raw = unquote(urlparse(locator).path)
            candidate = Path(raw)
        else:
            candidate = self.root / locator.lstrip("/")

        resolved = candidate.resolve()
        # Paths that escape the root do not resolve
        if resolved != self.root and self.root not in resolved.parents:
            raise UpstreamError("ENOENT: not found", status=404, locator=locator)
        if not resolved.exists():
            raise UpstreamError("ENOENT: not found", status=404, locator=locator)
        return resolved

    def _locator_for(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def _node_for(self, path: Path) -> RemoteNode:
        is_dir = path.is_dir()
        return RemoteNode(
            locator=self._locator_for(path),
            name=path.name,
            size=None if is_dir else path.stat().st_size,
            is_directory=is_dir,
        )

    async def stat(self, locator: str) -> RemoteNode:
        path = self._path_for(locator)
        return self._node_for(path)

    async def list_children(self, locator: str) -> list[RemoteNode]:
        path = self._path_for(locator)
        if not path.is_dir():
            raise UpstreamError("ENOTDIR: not a folder", status=400, locator=locator)
        return [self._node_for(child) for child in path.iterdir() if not child.name.startswith(".")]

    async def open_range(
        self,
        locator: str,
        start: int = 0,
        end: int | None = None,
        token: CancelToken | None = None,
    ) -> AsyncIterator[bytes]:
        path = self._path_for(locator)
        if path.is_dir():
            raise UpstreamError("EISDIR: is a folder", status=400, locator=locator)

        remaining = None if end is None else end - start + 1
        handle = await asyncio.to_thread(path.open, "rb")
        try:
            await asyncio.to_thread(handle.seek, start)
            while remaining is None or remaining > 0:
                if token is not None and token.cancelled:
                    logger.debug(f"Local read of {locator} cancelled: {token.reason}")
                    break
                size = self.chunk_size if remaining is None else min(self.chunk_size, remaining)
                chunk = await asyncio.to_thread(handle.read, size)
                if not chunk:
                    break
                if remaining is not None:
                    remaining -= len(chunk)
                yield chunk
        except OSError as e:
            raise UpstreamError(f"Read failed: {e.strerror or type(e).__name__}", locator=locator) from e
        finally:
            handle.close()

    async def aclose(self) -> None:
        return None

    def describe(self) -> dict[str, Any]:
        return {"provider": self.name, "root": str(self.root)}
