"""
Streaming core: asset location, range math, throttle detection, retry and the
range-aware relay.
"""

from .locator import AssetHandle, AssetKind, AssetLocator, media_type_for, natural_sort_key
from .ranges import RangeRequest, content_range, parse_range_header
from .relay import RangeAwareRelay, RelaySession, RelayState
from .retry import retry_with_backoff
from .throttle import (
    RATE_LIMIT_HEADER,
    ThrottleSignal,
    ThrottleState,
    ThrottleWindow,
    classify_upstream_error,
    detect_throttle,
    rate_limited_response,
)

__all__ = [
    "AssetHandle",
    "AssetKind",
    "AssetLocator",
    "RATE_LIMIT_HEADER",
    "RangeAwareRelay",
    "RangeRequest",
    "RelaySession",
    "RelayState",
    "ThrottleSignal",
    "ThrottleState",
    "ThrottleWindow",
    "classify_upstream_error",
    "content_range",
    "detect_throttle",
    "media_type_for",
    "natural_sort_key",
    "parse_range_header",
    "rate_limited_response",
    "retry_with_backoff",
]
