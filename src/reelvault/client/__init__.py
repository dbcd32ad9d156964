"""
Client-side request governor for ReelVault consumers.

Keeps a viewer from hammering the relay: results are cached, failures are
remembered, provider-backed fetches are capped at two at a time, and the
upstream throttle window is mirrored from ``X-Rate-Limit-Reset``.
"""

from .api import ReelVaultClient, VideoAvailability
from .banner import RateLimitBanner, format_countdown
from .cache import CacheEntry, FailureMark, FailureMemo, ResultCache
from .governor import AssetState, LoadResult, RequestGovernor, is_provider_backed
from .mirror import ClientThrottleMirror, RateLimitInfo
from .queue import RequestQueue
from .visibility import LazyAdmission, Rect, within_margin

__all__ = [
    "AssetState",
    "CacheEntry",
    "ClientThrottleMirror",
    "FailureMark",
    "FailureMemo",
    "LazyAdmission",
    "LoadResult",
    "RateLimitBanner",
    "RateLimitInfo",
    "Rect",
    "ReelVaultClient",
    "RequestGovernor",
    "RequestQueue",
    "ResultCache",
    "VideoAvailability",
    "format_countdown",
    "is_provider_backed",
    "within_margin",
]
