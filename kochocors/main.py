"""KochoCORS FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan — @asynccontextmanager startup/shutdown sequence
  - /ping router — delegated to kochocors/health.py
  - /proxy router — delegated to kochocors/proxy/engine.py
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. Config snapshot         → app.state.config (passed to create_app(), or
                               load_config() from env / .env / settings file)
  2. configure_logging()     → level and renderer from the snapshot, then
                               log_config_summary() at debug level
  3. build_rate_gate()       → app.state.rate_gate (None when disabled)
  4. create_http_client()    → app.state.http_client
  5. app.state.ready = True

Shutdown sequence (reverse):
  app.state.ready = False → close shared HTTP client

Usage:
  uvicorn kochocors.main:app --host 0.0.0.0 --port 3000
  kochocors --port 3000 --allowed-domains example.com      (see kochocors/run.py)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from kochocors.auth.limiter import build_rate_gate
from kochocors.config import Config, load_config, log_config_summary
from kochocors.constants import PROXY_PATH
from kochocors.health import router as health_router
from kochocors.models.errors import ProxyError, build_error_response
from kochocors.proxy.engine import create_http_client, router as engine_router, shutdown_proxy_engine
from kochocors.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)


# ─── Dependencies ─────────────────────────────────────────────────────────────


async def require_ready(request: Request) -> None:
    """FastAPI dependency: raises HTTP 503 if app.state.ready is not True."""
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(status_code=503, detail="KochoCORS is starting up")


# ─── Lifespan ─────────────────────────────────────────────────────────────────


def _configure_logging_from(config: Config) -> None:
    configure_logging(
        log_level="DEBUG" if config.debug else "INFO",
        json_output=config.json_logs,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup and shutdown sequence."""
    # ── Step 1: Config snapshot ──────────────────────────────────────────────
    # load_config() raises SystemExit on invalid values so the process exits
    # non-zero before ready=True is ever set.
    config: Optional[Config] = getattr(app.state, "config", None)
    if config is None:
        config = load_config()
        app.state.config = config

    # ── Step 2: Logging ──────────────────────────────────────────────────────
    _configure_logging_from(config)
    log_config_summary(config)
    logger.info("KochoCORS starting up...")

    # ── Step 3: Rate gate ────────────────────────────────────────────────────
    app.state.rate_gate = build_rate_gate(config)
    if app.state.rate_gate is not None:
        logger.info(
            "Rate limiting enabled",
            requests_per_minute=config.rate_limit,
            tokens_per_second=round(app.state.rate_gate.rate, 4),
        )

    # ── Step 4: Shared HTTP proxy client ─────────────────────────────────────
    http_client: httpx.AsyncClient = create_http_client(config)
    app.state.http_client = http_client
    logger.info(
        "HTTP proxy client created",
        verify_tls=not config.insecure_tls,
        follow_redirects=config.follow_redirects,
        timeout_s=config.upstream_timeout,
    )

    # ── Step 5: Ready ────────────────────────────────────────────────────────
    app.state.ready = True
    logger.info(
        "KochoCORS ready",
        proxy_endpoint=f"{PROXY_PATH}?url=TARGET_URL",
        auth_required=config.auth_enabled,
        auth_header=config.auth_header if config.auth_enabled else None,
        allowed_domains=list(config.allowed_domains) or "*",
    )

    yield

    # ── Shutdown ─────────────────────────────────────────────────────────────
    logger.info("KochoCORS shutting down...")
    app.state.ready = False

    try:
        await shutdown_proxy_engine(http_client)
    except Exception as exc:
        logger.warning("HTTP proxy client close error (non-fatal)", error=str(exc))

    logger.info("KochoCORS shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app(config: Optional[Config] = None) -> FastAPI:
    """Create and configure the KochoCORS FastAPI application.

    Args:
        config: Pre-resolved configuration snapshot (``kochocors.run`` passes
                the one built from CLI flags).  When omitted the lifespan
                resolves it from the environment, ``.env`` and settings file.

    Returns:
        Configured FastAPI application with lifespan, routers and handlers.
    """
    debug = bool(config and config.debug)

    application = FastAPI(
        title="KochoCORS",
        description="CORS-injecting forwarding proxy",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if debug else None,
        redoc_url="/redoc" if debug else None,
        openapi_url="/openapi.json" if debug else None,
    )

    # Requests that somehow arrive before startup completes get 503.
    application.state.ready = False
    if config is not None:
        application.state.config = config

    application.include_router(health_router)
    # require_ready gates every proxied request on app.state.ready=True.
    application.include_router(engine_router, dependencies=[Depends(require_ready)])

    # Global exception handlers
    @application.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError) -> Response:
        logger.info(
            "request_rejected",
            kind=exc.kind,
            status_code=exc.status_code,
            method=request.method,
            path=str(request.url.path),
        )
        return build_error_response(exc)

    @application.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

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
        return JSONResponse(
            status_code=500, content={"error": "Internal server error"}
        )

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────

app = create_app()
