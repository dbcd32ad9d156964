"""Shared wiring for CLI commands."""

from __future__ import annotations

from ..catalog.store import CatalogStore
from ..infra.db import create_schema
from ..infra.settings import settings
from ..providers import build_provider
from ..streaming.locator import AssetLocator


def get_store() -> CatalogStore:
    create_schema()
    return CatalogStore()


def get_locator() -> AssetLocator:
    return AssetLocator(build_provider(settings), settings)
