"""Async forwarding handler for the /proxy endpoint.

Pipeline, in order (each stage either falls through or raises a ProxyError
that the app-level handler turns into a plain-text response):

  1. Auth gate            — ``authenticate_request`` dependency      → 401
  2. Rate gate            — ``enforce_rate_limit`` dependency        → 429
  3. URL validator        — ``parse_target_url()``                   → 400
  4. Domain allowlist     — ``check_domain_allowed()``               → 403
  5. CORS origin resolver — ``resolve_cors_origin()``; CORS headers are
                            attached to everything from here on
  6. Preflight            — OPTIONS returns 200, empty body, no forwarding
  7. Header sanitizer     — ``build_upstream_headers()``
  8. Forwarding client    — shared ``httpx.AsyncClient``             → 500
  9. Response relay       — upstream status + headers + streamed body

Key design properties:
  - Every HTTP method is routed to the handler (``AnyMethodRoute``); the
    PROXY_METHODS list only feeds Access-Control-Allow-Methods and OpenAPI.
  - Shared httpx.AsyncClient at app.state.http_client — never instantiated
    per-request.  TLS verification and redirect following are fixed on the
    client from the Config snapshot (``create_http_client``).
  - Bodies are streamed both ways; nothing is buffered in full.
  - Upstream 3xx/4xx/5xx are relayed as-is.  With follow_redirects=false the
    3xx and its Location reach the caller untouched.
  - Transport failures (DNS, refused, TLS, timeout, too many redirects) →
    UpstreamUnreachable (500).  A URL httpx cannot build a request for →
    RequestConstructionFailed (500).
  - With cancel_on_disconnect (default) a caller that goes away while the
    upstream call is pending cancels that call.
"""

from __future__ import annotations

import asyncio
from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import StreamingResponse
from fastapi.routing import APIRoute
from starlette.background import BackgroundTask
from starlette.requests import ClientDisconnect
from starlette.routing import Match
from starlette.types import Receive, Scope, Send

from kochocors.allowlist.matcher import check_domain_allowed
from kochocors.auth.limiter import enforce_rate_limit
from kochocors.auth.middleware import authenticate_request
from kochocors.config import Config
from kochocors.constants import (
    DISCONNECT_POLL_INTERVAL,
    POOL_KEEPALIVE_EXPIRY,
    POOL_MAX_CONNECTIONS,
    POOL_MAX_KEEPALIVE,
    PROXY_METHODS,
    PROXY_PATH,
    TARGET_URL_PARAM,
)
from kochocors.models.errors import RequestConstructionFailed, UpstreamUnreachable
from kochocors.proxy.cors import build_cors_headers, build_preflight_response, resolve_cors_origin
from kochocors.proxy.headers import build_relay_headers, build_upstream_headers
from kochocors.proxy.streaming import relay_response_body, stream_request_body
from kochocors.proxy.target import parse_target_url
from kochocors.utils.logger import get_logger, set_request_id
from kochocors.utils.ulid import generate_ulid

logger = get_logger(__name__)

# ─── Router ───────────────────────────────────────────────────────────────────


class AnyMethodRoute(APIRoute):
    """APIRoute that dispatches every HTTP method to its endpoint.

    ``methods`` still lists PROXY_METHODS for the OpenAPI schema, but extension
    methods (PROPFIND, MKCOL, QUERY, ...) reach the handler instead of a 405.
    """

    def matches(self, scope: Scope) -> tuple[Match, Scope]:
        match, child_scope = super().matches(scope)
        if match == Match.PARTIAL:
            return Match.FULL, child_scope
        return match, child_scope

    async def handle(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.app(scope, receive, send)


router = APIRouter(tags=["proxy"], route_class=AnyMethodRoute)

# Status returned (to nobody) when the caller disconnected before the upstream
# answered.  Matches the nginx convention for "client closed request".
CLIENT_CLOSED_REQUEST: int = 499


class CallerDisconnected(Exception):
    """The caller went away while the upstream request was in flight."""


# ─── httpx.AsyncClient factory ────────────────────────────────────────────────


def create_http_client(
    config: Config,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create the shared httpx.AsyncClient for all outbound requests.

    Created once at lifespan startup and stored in app.state.http_client.

    The same client serves ``http`` and ``https`` targets; ``verify`` applies
    to every TLS handshake regardless of the target scheme.

    Args:
        config:    Configuration snapshot (insecure_tls, follow_redirects,
                   upstream_timeout).
        transport: Optional transport override (tests use httpx.MockTransport).

    Returns:
        Configured httpx.AsyncClient.
    """
    return httpx.AsyncClient(
        transport=transport,
        verify=not config.insecure_tls,
        follow_redirects=config.follow_redirects,
        timeout=httpx.Timeout(config.upstream_timeout),
        limits=httpx.Limits(
            max_connections=POOL_MAX_CONNECTIONS,
            max_keepalive_connections=POOL_MAX_KEEPALIVE,
            keepalive_expiry=POOL_KEEPALIVE_EXPIRY,
        ),
        # Refuse every Set-Cookie: the client is shared by all callers.
        cookies=CookieJar(policy=DefaultCookiePolicy(allowed_domains=[])),
        trust_env=False,
    )


async def bind_request_id() -> None:
    """FastAPI dependency: tag this request's log lines with a fresh ULID."""
    set_request_id(generate_ulid())


# ─── Body / disconnect helpers ────────────────────────────────────────────────


def _has_body(request: Request) -> bool:
    headers = request.headers
    return "content-length" in headers or "transfer-encoding" in headers


async def _wait_for_disconnect(request: Request, body_consumed: asyncio.Event) -> None:
    # Polling receive() before the body is fully read would steal body chunks.
    await body_consumed.wait()
    while not await request.is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL_INTERVAL)


async def _discard(send_task: "asyncio.Task[httpx.Response]") -> None:
    """Cancel an in-flight send and close a response that raced the cancel."""
    send_task.cancel()
    results = await asyncio.gather(send_task, return_exceptions=True)
    if isinstance(results[0], httpx.Response):
        await results[0].aclose()


async def _send_upstream(
    http_client: httpx.AsyncClient,
    upstream_request: httpx.Request,
    request: Request,
    body_consumed: asyncio.Event,
    cancel_on_disconnect: bool,
) -> httpx.Response:
    """Send the outbound request, optionally racing it against caller disconnect.

    Raises:
        CallerDisconnected: The caller went away first (send cancelled).
        httpx.HTTPError / httpx.StreamError: From the transport.
    """
    if not cancel_on_disconnect:
        return await http_client.send(upstream_request, stream=True)

    send_task = asyncio.ensure_future(http_client.send(upstream_request, stream=True))
    watcher = asyncio.ensure_future(_wait_for_disconnect(request, body_consumed))
    try:
        await asyncio.wait({send_task, watcher}, return_when=asyncio.FIRST_COMPLETED)
    except BaseException:
        watcher.cancel()
        await _discard(send_task)
        raise
    watcher.cancel()

    if send_task.done():
        return send_task.result()

    await _discard(send_task)
    raise CallerDisconnected()


# ─── Proxy handler ────────────────────────────────────────────────────────────


@router.api_route(
    PROXY_PATH,
    methods=list(PROXY_METHODS),
    dependencies=[
        Depends(bind_request_id),
        Depends(authenticate_request),
        Depends(enforce_rate_limit),
    ],
)
async def proxy_handler(request: Request) -> Response:
    """Forward the request to the ``url`` query parameter and relay the answer.

    The auth and rate gates run first as router dependencies.

    Returns:
        200 empty response for OPTIONS preflights; otherwise a
        StreamingResponse with the upstream status, headers and body plus
        the injected CORS headers.

    Raises:
        MissingParameter / InvalidURL (400), DomainForbidden (403),
        RequestConstructionFailed / UpstreamUnreachable (500).
    """
    config: Config = request.app.state.config
    http_client: httpx.AsyncClient = request.app.state.http_client

    # ── Validate target ──────────────────────────────────────────────────────
    # First value wins when the parameter is repeated.
    url_values = request.query_params.getlist(TARGET_URL_PARAM)
    target = parse_target_url(url_values[0] if url_values else None)
    check_domain_allowed(target.hostname, config.allowed_domains)

    # ── CORS ─────────────────────────────────────────────────────────────────
    cors_origin = resolve_cors_origin(config, request.headers)
    cors_headers = build_cors_headers(cors_origin)

    if request.method == "OPTIONS":
        logger.debug("preflight_handled", target_host=target.host, origin=cors_origin)
        return build_preflight_response(cors_headers)

    # ── Build outbound request ───────────────────────────────────────────────
    upstream_headers = build_upstream_headers(request.headers.items())

    body_consumed = asyncio.Event()
    content = None
    if _has_body(request):
        content = stream_request_body(request, body_consumed)
    else:
        body_consumed.set()

    try:
        upstream_request = http_client.build_request(
            method=request.method,
            url=target.raw,
            headers=upstream_headers,
            content=content,
        )
    except (httpx.InvalidURL, ValueError) as exc:
        logger.error(
            "request_construction_failed",
            target=target.raw,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        raise RequestConstructionFailed(exc, headers=cors_headers) from exc

    # ── Send ─────────────────────────────────────────────────────────────────
    try:
        upstream_response = await _send_upstream(
            http_client,
            upstream_request,
            request,
            body_consumed,
            config.cancel_on_disconnect,
        )
    except (CallerDisconnected, ClientDisconnect):
        logger.info("caller_disconnected", method=request.method, target_host=target.host)
        return Response(status_code=CLIENT_CLOSED_REQUEST)
    except (httpx.HTTPError, httpx.StreamError) as exc:
        # ConnectError (DNS, refused, TLS handshake), TimeoutException,
        # RemoteProtocolError, TooManyRedirects, UnsupportedProtocol, or a
        # streamed body that a redirect tried to replay.
        logger.warning(
            "upstream_unreachable",
            method=request.method,
            target_host=target.host,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        raise UpstreamUnreachable(exc, headers=cors_headers) from exc

    # ── Relay ────────────────────────────────────────────────────────────────
    logger.info(
        "request_proxied",
        method=request.method,
        target_host=target.host,
        status_code=upstream_response.status_code,
        redirects=len(upstream_response.history),
    )

    response = StreamingResponse(
        content=relay_response_body(upstream_response, target.host),
        status_code=upstream_response.status_code,
        background=BackgroundTask(upstream_response.aclose),
    )
    response.raw_headers = build_relay_headers(cors_headers, upstream_response.headers.raw)
    return response


# ─── Lifecycle helpers (called from main.py lifespan) ─────────────────────────


async def shutdown_proxy_engine(http_client: httpx.AsyncClient) -> None:
    """Close the shared outbound client (drains its connection pool)."""
    await http_client.aclose()
    logger.info("HTTP proxy client closed")
