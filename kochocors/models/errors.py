"""Proxy failure taxonomy and plain-text error responses.

Every stage of the /proxy pipeline signals failure by raising one of the
``ProxyError`` subclasses below.  ``build_error_response()`` turns any of them
into the caller-facing response; the FastAPI exception handler registered in
``kochocors.main`` is the only caller.

  Kind                        Status   Raised by
  ──────────────────────────  ──────   ─────────────────────────────────────
  Unauthorized                401      auth gate
  RateLimited                 429      rate gate
  MissingParameter            400      target URL validator
  InvalidURL                  400      target URL validator
  DomainForbidden             403      domain allowlist
  RequestConstructionFailed   500      forwarding client (build_request)
  UpstreamUnreachable         500      forwarding client (send)

Upstream 4xx/5xx statuses are NOT errors — they are relayed unchanged.

Errors raised after the CORS stage carry the CORS headers in ``headers`` so the
browser can still read the failure body.
"""

from __future__ import annotations

from typing import Optional, Sequence

from fastapi.responses import PlainTextResponse

HeaderList = Sequence[tuple[str, str]]


class ProxyError(Exception):
    """Base class for terminal /proxy failures."""

    kind: str = "ProxyError"
    status_code: int = 500

    def __init__(self, message: str, *, headers: Optional[HeaderList] = None) -> None:
        super().__init__(message)
        self.message = message
        self.headers: list[tuple[str, str]] = list(headers or [])


class Unauthorized(ProxyError):
    kind = "Unauthorized"
    status_code = 401

    def __init__(self, header_name: str) -> None:
        super().__init__(f"Unauthorized - Invalid or missing {header_name} header")


class RateLimited(ProxyError):
    kind = "RateLimited"
    status_code = 429

    def __init__(self) -> None:
        super().__init__("Too many requests")


class MissingParameter(ProxyError):
    kind = "MissingParameter"
    status_code = 400

    def __init__(self, name: str) -> None:
        super().__init__(f"Missing {name} query parameter")
        self.name = name


class InvalidURL(ProxyError):
    kind = "InvalidURL"
    status_code = 400

    def __init__(self, raw_url: str) -> None:
        super().__init__("Invalid URL provided")
        self.raw_url = raw_url


class DomainForbidden(ProxyError):
    kind = "DomainForbidden"
    status_code = 403

    def __init__(self, hostname: str) -> None:
        super().__init__(f"Domain not allowed: {hostname}")
        self.hostname = hostname


class RequestConstructionFailed(ProxyError):
    kind = "RequestConstructionFailed"
    status_code = 500

    def __init__(self, cause: BaseException, *, headers: Optional[HeaderList] = None) -> None:
        super().__init__(f"Failed to create request to target URL: {cause}", headers=headers)
        self.cause = cause


class UpstreamUnreachable(ProxyError):
    kind = "UpstreamUnreachable"
    status_code = 500

    def __init__(self, cause: BaseException, *, headers: Optional[HeaderList] = None) -> None:
        # httpx timeouts stringify to "" — fall back to the exception type name.
        detail = str(cause) or type(cause).__name__
        super().__init__(f"Failed to fetch target URL: {detail}", headers=headers)
        self.cause = cause


def build_error_response(exc: ProxyError) -> PlainTextResponse:
    """Build the plain-text response for a pipeline failure.

    Body is the error message followed by a newline.  ``nosniff`` stops
    browsers from sniffing the body into something executable.  Headers
    carried by the error (CORS headers for late failures) are appended.

    Args:
        exc: The ProxyError raised by a pipeline stage.

    Returns:
        PlainTextResponse with ``exc.status_code``.
    """
    response = PlainTextResponse(content=exc.message + "\n", status_code=exc.status_code)
    response.headers["X-Content-Type-Options"] = "nosniff"
    for name, value in exc.headers:
        response.headers.append(name, value)
    return response
