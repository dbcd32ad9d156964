"""
Web server for ReelVault.

Provides the FastAPI application that relays videos and comic pages from the
upstream drive, plus the read-only catalog endpoints.
"""

from __future__ import annotations

import contextlib
import time
import uuid

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..catalog.store import CatalogStore
from ..infra.db import create_schema, get_sessionmaker
from ..infra.exceptions import (
    ConfigurationError,
    NotFoundError,
    ThrottledError,
    TransientError,
    UnauthorizedError,
    UpstreamError,
)
from ..infra.logging import configure_logging, get_logger
from ..infra.settings import Settings
from ..infra.settings import settings as default_settings
from ..providers import AssetProvider, build_provider
from ..streaming.locator import AssetLocator
from ..streaming.relay import RangeAwareRelay
from ..streaming.throttle import RATE_LIMIT_HEADER, ThrottleState, rate_limited_response
from .api import assets, catalog

logger = get_logger(__name__)


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ThrottledError)
    async def throttled(request: Request, exc: ThrottledError):
        request.app.state.throttle_state.mark_limited(exc.reset_seconds)
        return rate_limited_response(exc.reset_seconds)

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"success": False, "message": str(exc)})

    @app.exception_handler(TransientError)
    @app.exception_handler(UpstreamError)
    async def unavailable(request: Request, exc: Exception):
        logger.warning("upstream_unavailable", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=503,
            content={"success": False, "message": "Upstream storage is temporarily unavailable"},
        )

    @app.exception_handler(UnauthorizedError)
    @app.exception_handler(ConfigurationError)
    async def misconfigured(request: Request, exc: Exception):
        logger.error("storage_misconfigured", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": f"Storage provider configuration error: {exc}"},
        )


def create_app(
    settings: Settings | None = None,
    *,
    store: CatalogStore | None = None,
    provider: AssetProvider | None = None,
) -> FastAPI:
    """
    Build the ReelVault application.

    Args:
        settings: Settings to use; defaults to the process settings
        store: Catalog store; defaults to one bound to ``settings.database_url``
        provider: Upstream provider; defaults to ``build_provider(settings)``
    """
    settings = settings or default_settings

    if store is None:
        factory = get_sessionmaker(settings.database_url)
        create_schema(factory.kw["bind"])
        store = CatalogStore(factory)
    if provider is None:
        provider = build_provider(settings)

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("reelvault_started", storage=provider.describe())
        try:
            yield
        finally:
            await provider.aclose()
            logger.info("reelvault_stopped")

    app = FastAPI(title="ReelVault", lifespan=lifespan)

    throttle_state = ThrottleState()
    locator = AssetLocator(provider, settings)
    app.state.settings = settings
    app.state.store = store
    app.state.provider = provider
    app.state.locator = locator
    app.state.throttle_state = throttle_state
    app.state.relay = RangeAwareRelay(locator, throttle_state, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins,
        allow_methods=["GET", "HEAD", "OPTIONS"],
        allow_headers=["Range"],
        expose_headers=[RATE_LIMIT_HEADER, "Content-Range", "Accept-Ranges"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(request_id=request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")
        response.headers["X-Request-ID"] = request_id
        logger.debug(
            "request_handled",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return response

    _register_exception_handlers(app)
    app.include_router(assets.router)
    app.include_router(catalog.router)
    return app


def run_server(host: str | None = None, port: int | None = None, settings: Settings | None = None) -> None:
    """Run the ReelVault HTTP service under uvicorn."""
    settings = settings or default_settings
    configure_logging(settings.log_level)
    app = create_app(settings)
    uvicorn.run(app, host=host or settings.host, port=port or settings.port)
