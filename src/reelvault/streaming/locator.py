"""
Asset locator.

Turns a catalog storage locator into an ``AssetHandle`` using metadata calls
only, lists comic folders in reading order, and opens the upstream byte reader.
Metadata calls are retried with backoff; byte reads are not.
"""

from __future__ import annotations

import re
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath

from ..infra.settings import Settings
from ..providers.base import AssetProvider, RemoteNode
from ..shared.cancel import CancelToken
from .retry import retry_with_backoff
from .throttle import classify_upstream_error

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp"})
VIDEO_EXTENSIONS = frozenset({"mp4", "webm", "mkv", "avi", "mov", "m4v"})

VIDEO_MEDIA_TYPES = {
    "mp4": "video/mp4",
    "m4v": "video/mp4",
    "webm": "video/webm",
    "mkv": "video/x-matroska",
    "avi": "video/x-msvideo",
    "mov": "video/quicktime",
}
IMAGE_MEDIA_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
}

_DIGITS = re.compile(r"(\d+)")


class AssetKind(str, Enum):
    VIDEO = "video"
    IMAGE = "image"
    IMAGE_FOLDER = "image_folder"


@dataclass(frozen=True)
class AssetHandle:
    """A resolved upstream asset. Built per request, never cached."""

    kind: AssetKind
    locator: str
    resolved_size: int | None = None
    resolved_name: str | None = None


def extension_of(name: str) -> str:
    return PurePosixPath(name).suffix.lower().lstrip(".")


def media_type_for(name: str | None, kind: AssetKind) -> str:
    ext = extension_of(name or "")
    if kind == AssetKind.VIDEO:
        return VIDEO_MEDIA_TYPES.get(ext, "video/mp4")
    return IMAGE_MEDIA_TYPES.get(ext, "image/jpeg")


def natural_sort_key(name: str) -> tuple:
    """Numeric-aware, case-insensitive sort key (``page2`` before ``page10``)."""
    parts = _DIGITS.split(name.casefold())
    key = tuple(int(part) if i % 2 else part for i, part in enumerate(parts))
    return key, name


def _kind_from_name(name: str) -> AssetKind | None:
    ext = extension_of(name)
    if ext in VIDEO_EXTENSIONS:
        return AssetKind.VIDEO
    if ext in IMAGE_EXTENSIONS:
        return AssetKind.IMAGE
    return None


class AssetLocator:
    """Resolves, lists and opens upstream assets for one provider."""

    def __init__(self, provider: AssetProvider, settings: Settings):
        self.provider = provider
        self.settings = settings

    async def _metadata_call(self, label: str, call):
        async def attempt():
            try:
                return await call()
            except Exception as e:
                classified = classify_upstream_error(e, self.settings.throttle_default_reset)
                if classified is e:
                    raise
                raise classified from e

        return await retry_with_backoff(
            attempt,
            max_attempts=self.settings.retry_max_attempts,
            base_delay=self.settings.retry_base_delay,
            jitter=self.settings.retry_jitter,
            label=label,
        )

    async def resolve_handle(self, locator: str, expected_kind: AssetKind | None = None) -> AssetHandle:
        node: RemoteNode = await self._metadata_call("stat", lambda: self.provider.stat(locator))
        if node.is_directory:
            kind = AssetKind.IMAGE_FOLDER
        else:
            kind = _kind_from_name(node.name) or expected_kind or AssetKind.VIDEO
        return AssetHandle(kind=kind, locator=node.locator, resolved_size=node.size, resolved_name=node.name)

    async def list_children(self, folder_locator: str, kind: AssetKind = AssetKind.IMAGE) -> list[AssetHandle]:
        nodes = await self._metadata_call("list_children", lambda: self.provider.list_children(folder_locator))
        allowed = VIDEO_EXTENSIONS if kind == AssetKind.VIDEO else IMAGE_EXTENSIONS

        children = [
            AssetHandle(kind=kind, locator=node.locator, resolved_size=node.size, resolved_name=node.name)
            for node in nodes
            if not node.is_directory and extension_of(node.name) in allowed
        ]
        children.sort(key=lambda handle: natural_sort_key(handle.resolved_name or ""))
        return children

    async def list_folders(self, folder_locator: str) -> list[AssetHandle]:
        """Subfolders of ``folder_locator`` in natural order."""
        nodes = await self._metadata_call("list_folders", lambda: self.provider.list_children(folder_locator))
        folders = [
            AssetHandle(kind=AssetKind.IMAGE_FOLDER, locator=node.locator, resolved_name=node.name)
            for node in nodes
            if node.is_directory
        ]
        folders.sort(key=lambda handle: natural_sort_key(handle.resolved_name or ""))
        return folders

    def open_stream(
        self,
        handle: AssetHandle,
        start: int = 0,
        end: int | None = None,
        token: CancelToken | None = None,
    ) -> AsyncIterator[bytes]:
        return self.provider.open_range(handle.locator, start, end, token)
