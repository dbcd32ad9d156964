"""
HTTP drive provider.

Talks to a drive exposed over plain HTTP (an nginx ``autoindex`` share, a signed
link gateway, or anything that answers ``HEAD`` and ranged ``GET``). Relative
locators are joined onto ``base_url``; absolute URLs pass through untouched.
"""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import unquote, urljoin, urlparse

import httpx

from ..infra.exceptions import UpstreamError
from ..shared.cancel import CancelToken
from .base import RemoteNode

logger = logging.getLogger(__name__)

_FILENAME_RE = re.compile(r"filename\*?=(?:UTF-8'')?\"?([^\";]+)\"?", re.IGNORECASE)


def _int_header(response: httpx.Response, name: str) -> int | None:
    raw = response.headers.get(name)
    if raw is None:
        return None
    try:
        return int(float(raw))
    except ValueError:
        return None


def _error_from_response(response: httpx.Response, locator: str) -> UpstreamError:
    """Build an UpstreamError carrying whatever the upstream told us."""
    time_limit = _int_header(response, "X-Rate-Limit-Reset")
    if time_limit is None and response.status_code in (429, 509):
        time_limit = _int_header(response, "Retry-After")

    try:
        body = response.text.strip()
    except (httpx.ResponseNotRead, UnicodeDecodeError):
        body = ""
    message = body or response.reason_phrase or f"HTTP {response.status_code}"
    return UpstreamError(message, status=response.status_code, time_limit=time_limit, locator=locator)


class HttpDriveProvider:
    """AssetProvider backed by an httpx AsyncClient."""

    name = "http"

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 30.0,
        chunk_size: int = 64 * 1024,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.chunk_size = chunk_size
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(
            headers=headers, timeout=timeout, follow_redirects=True
        )

    def url_for(self, locator: str) -> str:
        if urlparse(locator).scheme in ("http", "https"):
            return locator
        return urljoin(self.base_url, locator.lstrip("/"))

    @staticmethod
    def _basename(url: str) -> str:
        path = urlparse(url).path.rstrip("/")
        return unquote(path.rsplit("/", 1)[-1])

    async def stat(self, locator: str) -> RemoteNode:
        url = self.url_for(locator)
        response = await self._client.head(url)
        if response.status_code >= 400:
            raise _error_from_response(response, locator)

        is_directory = url.endswith("/")
        name = self._basename(url)
        disposition = response.headers.get("Content-Disposition", "")
        match = _FILENAME_RE.search(disposition)
        if match:
            name = unquote(match.group(1))

        return RemoteNode(
            locator=locator,
            name=name,
            size=None if is_directory else _int_header(response, "Content-Length"),
            is_directory=is_directory,
        )

    async def list_children(self, locator: str) -> list[RemoteNode]:
        folder = locator if locator.endswith("/") else locator + "/"
        url = self.url_for(folder)
        response = await self._client.get(url, headers={"Accept": "application/json"})
        if response.status_code >= 400:
            raise _error_from_response(response, locator)

        try:
            entries = response.json()
        except ValueError as e:
            raise UpstreamError("Folder listing is not JSON", locator=locator) from e

        nodes = []
        for entry in entries:
            is_directory = entry.get("type") == "directory"
            child = folder + entry["name"] + ("/" if is_directory else "")
            nodes.append(
                RemoteNode(
                    locator=child,
                    name=entry["name"],
                    size=None if is_directory else entry.get("size"),
                    is_directory=is_directory,
                )
            )
        return nodes

    async def open_range(
        self,
        locator: str,
        start: int = 0,
        end: int | None = None,
        token: CancelToken | None = None,
    ) -> AsyncIterator[bytes]:
        url = self.url_for(locator)
        range_value = f"bytes={start}-{'' if end is None else end}"
        request = self._client.build_request("GET", url, headers={"Range": range_value})
        response = await self._client.send(request, stream=True)
        try:
            if response.status_code >= 400:
                await response.aread()
                raise _error_from_response(response, locator)

            # Upstream ignored Range: drop the prefix ourselves
            skip = start if response.status_code == 200 else 0
            if skip:
                logger.debug(f"Upstream ignored Range for {locator}, skipping {skip} bytes")

            async for chunk in response.aiter_bytes(self.chunk_size):
                if token is not None and token.cancelled:
                    break
                if skip:
                    if len(chunk) <= skip:
                        skip -= len(chunk)
                        continue
                    chunk = chunk[skip:]
                    skip = 0
                yield chunk
        finally:
            await response.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def describe(self) -> dict[str, Any]:
        return {"provider": self.name, "baseUrl": self.base_url}
