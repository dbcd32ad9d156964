"""
Upstream asset providers.

``build_provider`` is the only place that knows which concrete provider backs
the service; everything else talks to the ``AssetProvider`` protocol.
"""

from __future__ import annotations

from typing import Any

from ..infra.exceptions import ConfigurationError
from ..infra.settings import Settings
from .base import AssetProvider, RemoteNode
from .http import HttpDriveProvider
from .local import LocalDriveProvider

SUPPORTED_PROVIDERS = ["local", "http"]


def build_provider(settings: Settings) -> AssetProvider:
    kind = settings.storage_provider.lower()
    if kind == "local":
        return LocalDriveProvider(settings.storage_root, chunk_size=settings.stream_chunk_size)
    if kind == "http":
        return HttpDriveProvider(
            settings.storage_base_url,
            token=settings.storage_token,
            timeout=settings.upstream_timeout,
            chunk_size=settings.stream_chunk_size,
        )
    raise ConfigurationError(
        f"Unknown storage provider '{settings.storage_provider}'. "
        f"Supported: {', '.join(SUPPORTED_PROVIDERS)}"
    )


def describe_storage(settings: Settings) -> dict[str, Any]:
    """Public storage configuration; never includes credentials."""
    kind = settings.storage_provider.lower()
    return {
        "provider": kind,
        "baseUrl": settings.storage_base_url if kind == "http" else settings.storage_root,
        "supportedProviders": SUPPORTED_PROVIDERS,
    }


__all__ = [
    "AssetProvider",
    "HttpDriveProvider",
    "LocalDriveProvider",
    "RemoteNode",
    "SUPPORTED_PROVIDERS",
    "build_provider",
    "describe_storage",
]
