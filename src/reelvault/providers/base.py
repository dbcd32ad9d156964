"""
Base protocol for upstream asset providers.

A provider is the third-party drive that actually holds the bytes. The core
only needs four things from it: a metadata stat, a folder listing, a ranged
byte reader and a way to release its connections.

Providers report failures as ``UpstreamError`` (message, optional status,
optional ``time_limit``). They do not decide what a failure means; that is
the job of ``reelvault.streaming.throttle.classify_upstream_error``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Protocol

from ..shared.cancel import CancelToken


@dataclass(frozen=True)
class RemoteNode:
    """Metadata for a single upstream entry, as reported by the provider."""

    locator: str
    """Locator that resolves back to this entry (URL or folder-scoped path)"""

    name: str
    """Entry name including extension"""

    size: int | None = None
    """Size in bytes; None for folders or when the upstream does not say"""

    is_directory: bool = False

    def __post_init__(self) -> None:
        if self.size is not None and self.size < 0:
            raise ValueError("size must be non-negative")


class AssetProvider(Protocol):
    """
    Contract for upstream providers.

    Rules:
    - stat() and list_children() fetch metadata only, never asset bytes.
    - open_range() returns an async iterator that stops as soon as the token is
      cancelled and releases its upstream handle when closed.
    - All failures are raised as UpstreamError.
    """

    name: str

    async def stat(self, locator: str) -> RemoteNode:
        ...

    async def list_children(self, locator: str) -> list[RemoteNode]:
        ...

    def open_range(
        self,
        locator: str,
        start: int = 0,
        end: int | None = None,
        token: CancelToken | None = None,
    ) -> AsyncIterator[bytes]:
        """
        Stream bytes ``start..end`` (inclusive) of the entry.

        Args:
            locator: Entry locator
            start: First byte offset
            end: Last byte offset, inclusive; None reads to EOF
            token: Cancellation token for the owning request
        """
        ...

    async def aclose(self) -> None:
        ...

    def describe(self) -> dict[str, Any]:
        ...
