"""CORS proxy FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app(): testable application factory
  - lifespan: @asynccontextmanager startup/shutdown sequence
  - / route: informational root (rate limited, no target validation)
  - app = create_app(): module-level instance for uvicorn

Startup sequence:
  1. load_config()              → app.state.config
  2. RateLimiter.from_config()  → app.state.limiter
  3. create_http_client()       → app.state.http_client
  4. RequestGuardPipeline(...)  → app.state.pipeline
  5. app.state.ready = True

Shutdown sequence (reverse):
  app.state.ready = False → close shared HTTP client → drop rate-limit counters
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.routing import APIRouter
from starlette.exceptions import HTTPException as StarletteHTTPException

from corsproxy import __version__
from corsproxy.config import Config, load_config
from corsproxy.guard.limiter import RateLimiter, client_identity
from corsproxy.guard.resolver import TargetResolver
from corsproxy.models.responses import (
    HELLO_MSG,
    build_error_response,
    build_status_response,
)
from corsproxy.proxy.engine import router as engine_router
from corsproxy.proxy.fetcher import ProxyFetcher, create_http_client
from corsproxy.proxy.middleware import AllowAnyOriginMiddleware
from corsproxy.proxy.pipeline import RequestGuardPipeline
from corsproxy.proxy.prober import UpstreamProber
from corsproxy.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


# ─── Root Endpoint ────────────────────────────────────────────────────────────
# Registered before the catch-all proxy route so "/" never reaches the pipeline.

root_router = APIRouter(tags=["root"])


@root_router.get("/")
async def root(request: Request) -> Response:
    """Informational payload. Subject to both rate-limit windows."""
    limiter: RateLimiter = request.app.state.limiter
    decision = limiter.check(client_identity(request))
    if not decision.allowed:
        return build_error_response(decision)
    return JSONResponse(content=HELLO_MSG)


# ─── Lifespan ─────────────────────────────────────────────────────────────────


def build_pipeline(
    config: Config,
    limiter: RateLimiter,
    http_client: httpx.AsyncClient,
) -> RequestGuardPipeline:
    """Wire the guard stages from config around a shared HTTP client."""
    prober = None
    if config.upstream.probe_enabled:
        prober = UpstreamProber(
            http_client,
            timeout_s=config.upstream.probe_timeout_s,
            max_size=config.limits.max_response_bytes,
        )
    fetcher = ProxyFetcher(
        http_client,
        timeout_s=config.upstream.fetch_timeout_s,
        max_size=config.limits.max_response_bytes,
    )
    return RequestGuardPipeline(
        limiter=limiter,
        resolver=TargetResolver(),
        prober=prober,
        fetcher=fetcher,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("CORS proxy starting up...")

    config: Config = load_config()
    app.state.config = config

    limiter = RateLimiter.from_config(config.limits)
    app.state.limiter = limiter
    logger.info(
        "Rate limiter ready",
        windows=[
            {"name": w.name, "seconds": w.window_seconds, "max": w.max_requests}
            for w in limiter.windows
        ],
    )

    http_client: httpx.AsyncClient = create_http_client(config.upstream.fetch_timeout_s)
    app.state.http_client = http_client

    app.state.pipeline = build_pipeline(config, limiter, http_client)
    logger.info(
        "Guard pipeline ready",
        probe_enabled=config.upstream.probe_enabled,
        max_response_bytes=config.limits.max_response_bytes,
        fetch_timeout_s=config.upstream.fetch_timeout_s,
    )

    app.state.ready = True
    logger.info("CORS proxy ready", port=config.server.port)

    yield

    logger.info("CORS proxy shutting down...")
    app.state.ready = False

    try:
        await http_client.aclose()
        logger.info("HTTP client closed")
    except Exception as exc:  # noqa: BLE001
        logger.warning("HTTP client close error (non-fatal)", error=str(exc))

    limiter.reset()
    logger.info("CORS proxy shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the CORS proxy application.

    Call directly in tests for an isolated instance; the module-level ``app``
    is what uvicorn serves.
    """
    application = FastAPI(
        title="CORS Proxy",
        description="Public CORS proxy for JSON APIs with SSRF protection",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    application.state.ready = False

    # Permissive CORS on every response, success or error.
    # CORSMiddleware answers preflights and Origin-bearing requests;
    # AllowAnyOriginMiddleware (added last, so outermost) covers the rest.
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    application.add_middleware(AllowAnyOriginMiddleware)

    application.include_router(root_router)
    # Catch-all /{target:path}; MUST be included after every fixed route.
    application.include_router(engine_router)

    @application.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        response = build_status_response(
            exc.status_code,
            message=str(exc.detail),
            details="Only GET requests are supported" if exc.status_code == 405 else str(exc.detail),
        )
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @application.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return build_status_response(400, "Bad request", "Invalid request")

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return build_status_response(500, "Internal server error", "Error fetching the URL")

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────
#   uvicorn corsproxy.main:app --host 0.0.0.0 --port 12712

app = create_app()
