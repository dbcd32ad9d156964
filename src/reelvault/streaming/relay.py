"""
Range-aware relay.

Relays one upstream asset to one HTTP requester. The response status and
headers are committed only after the upstream has proven it can deliver
bytes (the preflight), because once headers are out the status can no
longer be changed to a 429 or a 503.

Lifecycle of a relay:

    idle -> metadata_probe -> range_check -> preflight -> streaming
         -> completed | aborted | failed

A relay that answers early (429, 404, 416, 503 or a placeholder redirect)
ends in ``failed`` without streaming.

Two preflight modes are supported:

- ``probe``: read a small prefix at the range start, close it, then open the
  real stream for the body. Costs one extra upstream open.
- ``prime``: open the real stream and hold back its first chunk, which becomes
  the first chunk of the body.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum

from fastapi.responses import JSONResponse, RedirectResponse, Response, StreamingResponse

from ..infra.exceptions import (
    ClientAbort,
    ConfigurationError,
    NotFoundError,
    RangeNotSatisfiableError,
    ReelVaultError,
    ThrottledError,
    UnauthorizedError,
)
from ..infra.logging import get_logger
from ..infra.settings import Settings
from ..shared.cancel import CancelToken
from .locator import AssetHandle, AssetKind, AssetLocator, media_type_for
from .ranges import content_range, parse_range_header
from .throttle import RATE_LIMIT_HEADER, ThrottleState, classify_upstream_error, rate_limited_response

logger = get_logger(__name__)

IMAGE_CACHE_CONTROL = "public, max-age=86400"
VIDEO_CACHE_CONTROL = "no-store"


class RelayState(str, Enum):
    IDLE = "idle"
    METADATA_PROBE = "metadata_probe"
    RANGE_CHECK = "range_check"
    PREFLIGHT = "preflight"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


TERMINAL_STATES = frozenset({RelayState.COMPLETED, RelayState.ABORTED, RelayState.FAILED})


@dataclass
class RelaySession:
    """Per-request relay bookkeeping: state, cancellation token and byte count."""

    locator: str
    token: CancelToken = field(default_factory=CancelToken)
    state: RelayState = RelayState.IDLE
    bytes_sent: int = 0
    relay_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def transition(self, state: RelayState, **details) -> None:
        if self.state in TERMINAL_STATES:
            return
        logger.debug(
            "relay_state",
            relay_id=self.relay_id,
            previous=self.state.value,
            state=state.value,
            **details,
        )
        self.state = state


@dataclass
class _Primed:
    reader: AsyncIterator[bytes]
    first_chunk: bytes


class RangeAwareRelay:
    """Relays videos (with Range support) and images with a preflight before commit."""

    def __init__(self, locator: AssetLocator, throttle_state: ThrottleState, settings: Settings):
        self.locator = locator
        self.throttle_state = throttle_state
        self.settings = settings

    # -- early answers -----------------------------------------------------

    def active_window(self) -> int | None:
        if not self.settings.throttle_short_circuit:
            return None
        if not self.throttle_state.current().is_limited:
            return None
        return max(1, self.throttle_state.remaining_seconds())

    def _record_throttle(self, exc: BaseException) -> ThrottledError | None:
        classified = classify_upstream_error(exc, self.settings.throttle_default_reset)
        if isinstance(classified, ThrottledError):
            self.throttle_state.mark_limited(classified.reset_seconds)
            return classified
        return None

    def _video_failure(self, session: RelaySession, exc: BaseException) -> Response:
        classified = classify_upstream_error(exc, self.settings.throttle_default_reset)
        session.transition(RelayState.FAILED, error=type(classified).__name__)

        if isinstance(classified, ThrottledError):
            self.throttle_state.mark_limited(classified.reset_seconds)
            return rate_limited_response(classified.reset_seconds)
        if isinstance(classified, NotFoundError):
            return JSONResponse(status_code=404, content={"success": False, "message": str(classified)})
        if isinstance(classified, (UnauthorizedError, ConfigurationError)):
            logger.error("upstream_credentials_rejected", relay_id=session.relay_id, error=str(classified))
            return JSONResponse(
                status_code=500,
                content={"success": False, "message": f"Storage provider configuration error: {classified}"},
            )
        logger.warning("upstream_unavailable", relay_id=session.relay_id, error=str(classified))
        return JSONResponse(
            status_code=503,
            content={"success": False, "message": "Upstream storage is temporarily unavailable"},
        )

    def redirect_to_placeholder(
        self,
        placeholder_url: str,
        *,
        reset_seconds: int | None = None,
        session: RelaySession | None = None,
    ) -> Response:
        """302 to a placeholder image, mirroring the throttle window when there is one."""
        headers = {}
        if reset_seconds is not None:
            headers[RATE_LIMIT_HEADER] = str(int(reset_seconds))
        if session is not None:
            session.transition(RelayState.FAILED, redirect=placeholder_url)
        return RedirectResponse(placeholder_url, status_code=302, headers=headers)

    def placeholder_for_error(
        self, placeholder_url: str, exc: BaseException, session: RelaySession | None = None
    ) -> Response:
        throttled = self._record_throttle(exc)
        if throttled is None:
            logger.info("image_placeholder_fallback", placeholder=placeholder_url, error=str(exc))
            return self.redirect_to_placeholder(placeholder_url, session=session)
        return self.redirect_to_placeholder(
            placeholder_url, reset_seconds=throttled.reset_seconds, session=session
        )

    # -- preflight ---------------------------------------------------------

    async def _preflight(
        self, handle: AssetHandle, start: int, end: int | None, token: CancelToken
    ) -> _Primed | None:
        if self.settings.preflight_mode == "prime":
            reader = self.locator.open_stream(handle, start, end, token)
            try:
                first_chunk = await reader.__anext__()
            except StopAsyncIteration:
                first_chunk = b""
            except BaseException:
                await reader.aclose()
                raise
            return _Primed(reader=reader, first_chunk=first_chunk)

        probe_end = start + self.settings.probe_bytes - 1
        if end is not None:
            probe_end = min(probe_end, end)
        if probe_end < start:
            return None

        probe = self.locator.open_stream(handle, start, probe_end, token)
        try:
            async for _chunk in probe:
                break
        finally:
            await probe.aclose()
        return None

    async def _run_preflight(
        self, session: RelaySession, handle: AssetHandle, start: int, end: int | None
    ) -> _Primed | None:
        session.transition(RelayState.PREFLIGHT, mode=self.settings.preflight_mode)
        try:
            return await asyncio.wait_for(
                self._preflight(handle, start, end, session.token),
                timeout=self.settings.probe_timeout,
            )
        except asyncio.CancelledError:
            session.token.cancel("client disconnected during preflight")
            session.transition(RelayState.ABORTED)
            logger.info("relay_aborted_before_commit", relay_id=session.relay_id)
            raise

    # -- body --------------------------------------------------------------

    async def _body(
        self,
        session: RelaySession,
        handle: AssetHandle,
        start: int,
        end: int | None,
        primed: _Primed | None,
    ) -> AsyncIterator[bytes]:
        expected = None if end is None else end - start + 1
        if primed is not None:
            reader, buffered = primed.reader, primed.first_chunk
        else:
            reader, buffered = self.locator.open_stream(handle, start, end, session.token), None

        session.transition(RelayState.STREAMING, start=start, end=end)
        try:
            while expected is None or session.bytes_sent < expected:
                if buffered is not None:
                    chunk, buffered = buffered, None
                else:
                    try:
                        chunk = await reader.__anext__()
                    except StopAsyncIteration:
                        break
                session.token.raise_if_cancelled()
                if expected is not None:
                    # Upstream may overshoot the requested end
                    chunk = chunk[: expected - session.bytes_sent]
                if not chunk:
                    continue
                session.bytes_sent += len(chunk)
                yield chunk

            session.transition(RelayState.COMPLETED, bytes_sent=session.bytes_sent)
            logger.info("relay_completed", relay_id=session.relay_id, bytes_sent=session.bytes_sent)
        except (asyncio.CancelledError, GeneratorExit):
            session.token.cancel("client disconnected")
            session.transition(RelayState.ABORTED, bytes_sent=session.bytes_sent)
            logger.info("relay_aborted", relay_id=session.relay_id, bytes_sent=session.bytes_sent)
            raise
        except ClientAbort:
            session.transition(RelayState.ABORTED, bytes_sent=session.bytes_sent)
            logger.info("relay_aborted", relay_id=session.relay_id, bytes_sent=session.bytes_sent)
        except Exception as e:
            # Headers are already out; all we can do is drop the connection
            self._record_throttle(e)
            session.transition(RelayState.FAILED, error=str(e))
            logger.error(
                "relay_failed_mid_stream",
                relay_id=session.relay_id,
                bytes_sent=session.bytes_sent,
                error=str(e),
            )
            raise
        finally:
            session.token.cancel("relay closed")
            await reader.aclose()

    # -- entry points --------------------------------------------------------

    async def stream_video(
        self,
        locator: str,
        range_header: str | None = None,
        session: RelaySession | None = None,
    ) -> Response:
        """
        Relay a video, honoring a ``Range`` header.

        Returns either a committed streaming response (200/206) or an early
        JSON/empty answer (429, 404, 416, 500, 503).
        """
        session = session or RelaySession(locator=locator)

        window = self.active_window()
        if window is not None:
            session.transition(RelayState.FAILED, reason="throttle window active")
            return rate_limited_response(window)

        session.transition(RelayState.METADATA_PROBE)
        try:
            handle = await self.locator.resolve_handle(locator, AssetKind.VIDEO)
        except ReelVaultError as e:
            return self._video_failure(session, e)

        session.transition(RelayState.RANGE_CHECK)
        size = handle.resolved_size
        requested = None
        if size is not None:
            try:
                requested = parse_range_header(range_header, size)
            except RangeNotSatisfiableError as e:
                session.transition(RelayState.FAILED, reason="range not satisfiable")
                return Response(status_code=416, headers={"Content-Range": f"bytes */{e.size}"})

        if requested is not None:
            start, end = requested.start, requested.end
        else:
            start, end = 0, (size - 1 if size is not None else None)

        try:
            primed = await self._run_preflight(session, handle, start, end)
        except asyncio.TimeoutError:
            session.transition(RelayState.FAILED, reason="preflight timeout")
            logger.warning("preflight_timeout", relay_id=session.relay_id, timeout=self.settings.probe_timeout)
            return JSONResponse(
                status_code=503,
                content={"success": False, "message": "Upstream storage did not respond in time"},
            )
        except ClientAbort:
            session.transition(RelayState.ABORTED)
            return Response(status_code=499)
        except Exception as e:
            return self._video_failure(session, e)

        headers = {
            "Accept-Ranges": "bytes",
            "Access-Control-Allow-Origin": "*",
            "Cache-Control": VIDEO_CACHE_CONTROL,
        }
        status_code = 200
        if requested is not None and size is not None:
            status_code = 206
            headers["Content-Range"] = content_range(start, end, size)

        return StreamingResponse(
            self._body(session, handle, start, end, primed),
            status_code=status_code,
            media_type=media_type_for(handle.resolved_name, AssetKind.VIDEO),
            headers=headers,
        )

    async def stream_image(
        self,
        target: str | AssetHandle,
        placeholder_url: str,
        cache_control: str = IMAGE_CACHE_CONTROL,
        session: RelaySession | None = None,
    ) -> Response:
        """
        Relay a single image. Any failure before commit redirects to
        ``placeholder_url``.
        """
        locator = target.locator if isinstance(target, AssetHandle) else target
        session = session or RelaySession(locator=locator)

        window = self.active_window()
        if window is not None:
            return self.redirect_to_placeholder(placeholder_url, reset_seconds=window, session=session)

        session.transition(RelayState.METADATA_PROBE)
        if isinstance(target, AssetHandle):
            handle = target
        else:
            try:
                handle = await self.locator.resolve_handle(target, AssetKind.IMAGE)
            except ReelVaultError as e:
                return self.placeholder_for_error(placeholder_url, e, session)

        session.transition(RelayState.RANGE_CHECK)
        size = handle.resolved_size
        end = size - 1 if size is not None else None

        try:
            primed = await self._run_preflight(session, handle, 0, end)
        except ClientAbort:
            session.transition(RelayState.ABORTED)
            return Response(status_code=499)
        except Exception as e:
            return self.placeholder_for_error(placeholder_url, e, session)

        return StreamingResponse(
            self._body(session, handle, 0, end, primed),
            status_code=200,
            media_type=media_type_for(handle.resolved_name, AssetKind.IMAGE),
            headers={"Cache-Control": cache_control, "Access-Control-Allow-Origin": "*"},
        )
