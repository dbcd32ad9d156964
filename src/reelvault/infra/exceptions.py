"""
Custom exceptions for ReelVault operations.

Upstream providers raise the untyped ``UpstreamError``; the throttle detector
in ``reelvault.streaming.throttle`` translates it into one of the typed
categories below before anything is reported to a caller.
"""

from __future__ import annotations


class ReelVaultError(Exception):
    """Base exception for all ReelVault errors."""

    pass


class NotFoundError(ReelVaultError):
    """Raised when a catalog id or upstream locator does not resolve."""

    pass


class ThrottledError(ReelVaultError):
    """Raised when the upstream account is out of bandwidth quota."""

    def __init__(self, message: str = "Upstream bandwidth limit reached", reset_seconds: int = 3600):
        super().__init__(message)
        self.reset_seconds = int(reset_seconds)


class TransientError(ReelVaultError):
    """Raised for congestion, timeout and other temporary upstream conditions."""

    pass


class UnauthorizedError(ReelVaultError):
    """Raised when the provider rejects the configured credential."""

    pass


class ConfigurationError(ReelVaultError):
    """Raised when configuration or credentials are missing or invalid."""

    pass


class RangeNotSatisfiableError(ReelVaultError):
    """Raised when a requested byte range starts beyond the asset size."""

    def __init__(self, size: int):
        super().__init__(f"Range start is beyond asset size {size}")
        self.size = size


class ClientAbort(ReelVaultError):
    """Raised when the requester disconnected mid-stream."""

    pass


class UpstreamError(ReelVaultError):
    """Untyped upstream failure as reported by a provider.

    Attributes:
        status: HTTP status (or provider code) when the upstream supplied one
        time_limit: Seconds until the upstream quota window resets, when given
        locator: The asset the failure concerns. Kept out of the message so
            file names never influence classification.
    """

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        time_limit: int | None = None,
        locator: str | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.time_limit = time_limit
        self.locator = locator
