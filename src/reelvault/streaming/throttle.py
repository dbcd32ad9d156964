"""
Throttle detection and upstream error translation.

``classify_upstream_error`` is the one place that turns whatever a provider
raised into the typed ReelVault taxonomy. Upstream drives report quota and
congestion problems inconsistently (a status, a ``timeLimit`` attribute, or
just a sentence in the body), so all of the string sniffing lives here and
nowhere else.

``ThrottleState`` is the process-wide view of the upstream account's quota
window. Every request writes to it when it sees a throttle, so the most recent
observation wins.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

import httpx
from fastapi.responses import JSONResponse

from ..infra.exceptions import (
    NotFoundError,
    ReelVaultError,
    ThrottledError,
    TransientError,
    UnauthorizedError,
    UpstreamError,
)
from ..infra.logging import get_logger

logger = get_logger(__name__)

RATE_LIMIT_HEADER = "X-Rate-Limit-Reset"
DEFAULT_RESET_SECONDS = 3600
RATE_LIMIT_MESSAGE = "Upstream bandwidth limit reached. Please try again later."

_THROTTLE_PHRASES = ("bandwidth limit", "over quota", "too many requests")
_TRANSIENT_PHRASES = ("eagain", "temporary", "congestion", "timeout", "timed out")
_NOT_FOUND_PHRASES = ("enoent", "not found")
_UNAUTHORIZED_PHRASES = ("eacces", "unauthorized", "forbidden")

_THROTTLE_STATUSES = {429, 509}
_TRANSIENT_STATUSES = {500, 502, 503, 504}
_NOT_FOUND_STATUSES = {404, 410}
_UNAUTHORIZED_STATUSES = {401, 403}


@dataclass(frozen=True)
class ThrottleSignal:
    throttled: bool
    reset_seconds: int


def _time_limit_of(exc: BaseException) -> int | None:
    for attr in ("time_limit", "timeLimit"):
        value = getattr(exc, attr, None)
        if value is None:
            continue
        try:
            return int(value)
        except (TypeError, ValueError):
            continue
    return None


def _status_of(exc: BaseException) -> int | None:
    status = getattr(exc, "status", None)
    if status is None and isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
    return status if isinstance(status, int) else None


def _throttled(message: str, time_limit: int | None, default_reset: int) -> ThrottledError:
    reset = time_limit if time_limit is not None and time_limit > 0 else default_reset
    return ThrottledError(message or "Upstream bandwidth limit reached", reset_seconds=reset)


def classify_upstream_error(exc: BaseException, default_reset: int = DEFAULT_RESET_SECONDS) -> ReelVaultError:
    """
    Translate a raw provider failure into a typed ReelVault error.

    Args:
        exc: Whatever the provider (or the transport under it) raised
        default_reset: Reset seconds to use when a throttle carries no time limit

    Returns:
        A ReelVaultError subclass. Already-typed errors are returned as is.
    """
    if isinstance(exc, ReelVaultError) and not isinstance(exc, UpstreamError):
        return exc

    message = str(exc)
    status = _status_of(exc)
    time_limit = _time_limit_of(exc)

    if time_limit is not None or status in _THROTTLE_STATUSES:
        return _throttled(message, time_limit, default_reset)
    if isinstance(exc, (TimeoutError, ConnectionError, httpx.TransportError)) or status in _TRANSIENT_STATUSES:
        return TransientError(message or type(exc).__name__)
    if status in _NOT_FOUND_STATUSES:
        return NotFoundError(message)
    if status in _UNAUTHORIZED_STATUSES:
        return UnauthorizedError(message)

    # Phrases are only consulted when the upstream gave no status
    if status is None:
        lowered = message.lower()
        if any(phrase in lowered for phrase in _THROTTLE_PHRASES):
            return _throttled(message, None, default_reset)
        if any(phrase in lowered for phrase in _TRANSIENT_PHRASES):
            return TransientError(message)
        if any(phrase in lowered for phrase in _NOT_FOUND_PHRASES):
            return NotFoundError(message)
        if any(phrase in lowered for phrase in _UNAUTHORIZED_PHRASES):
            return UnauthorizedError(message)

    if isinstance(exc, UpstreamError):
        return exc
    return UpstreamError(message or type(exc).__name__, status=status)


def detect_throttle(exc: BaseException, default_reset: int = DEFAULT_RESET_SECONDS) -> ThrottleSignal | None:
    classified = classify_upstream_error(exc, default_reset)
    if isinstance(classified, ThrottledError):
        return ThrottleSignal(throttled=True, reset_seconds=classified.reset_seconds)
    return None


@dataclass(frozen=True)
class ThrottleWindow:
    is_limited: bool
    reset_at: float | None = None


class ThrottleState:
    """Shared quota window for the upstream account. Last write wins."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._reset_at: float | None = None

    def mark_limited(self, seconds: int) -> None:
        self._reset_at = self._clock() + max(0, int(seconds))
        logger.warning("upstream_throttled", reset_seconds=int(seconds))

    def current(self) -> ThrottleWindow:
        if self._reset_at is None:
            return ThrottleWindow(is_limited=False)
        if self._clock() > self._reset_at:
            self._reset_at = None
            return ThrottleWindow(is_limited=False)
        return ThrottleWindow(is_limited=True, reset_at=self._reset_at)

    def remaining_seconds(self) -> int:
        window = self.current()
        if not window.is_limited or window.reset_at is None:
            return 0
        return max(0, int(window.reset_at - self._clock()))

    def clear(self) -> None:
        self._reset_at = None


def rate_limited_response(reset_seconds: int, message: str = RATE_LIMIT_MESSAGE) -> JSONResponse:
    """The 429 contract every endpoint uses for an upstream throttle."""
    seconds = int(reset_seconds)
    return JSONResponse(
        status_code=429,
        content={"success": False, "message": message, "timeLimit": seconds},
        headers={RATE_LIMIT_HEADER: str(seconds)},
    )
