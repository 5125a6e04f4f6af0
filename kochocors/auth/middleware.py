"""Shared-secret authentication for the /proxy endpoint.

Provides:
  - ``check_auth_token()``     — pure comparison of a caller token to the secret
  - ``authenticate_request()`` — FastAPI Depends()-compatible dependency

The auth gate is the FIRST stage of the proxy pipeline: it runs before the
rate gate, so unauthenticated callers cannot drain the shared token bucket.

Auth control:
  - ``config.auth_key`` empty     → auth disabled, every request passes
  - ``config.auth_key`` non-empty → header ``config.auth_header`` must equal it

The comparison is plain string equality.  The token header is consumed here
but, like every other inbound header, it is still forwarded upstream by the
header sanitizer.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from kochocors.config import Config
from kochocors.models.errors import Unauthorized
from kochocors.utils.logger import get_logger

logger = get_logger(__name__)


def check_auth_token(config: Config, provided: Optional[str]) -> bool:
    """Return True if the request may proceed.

    Args:
        config:   The configuration snapshot.
        provided: Value of the auth header, or None if absent.

    Returns:
        True when auth is disabled or ``provided`` equals the configured secret.
    """
    if not config.auth_enabled:
        return True
    return provided == config.auth_key


async def authenticate_request(request: Request) -> None:
    """FastAPI dependency: enforce the shared-secret header.

    Raises:
        Unauthorized: If auth is enabled and the header is absent or wrong.
    """
    config: Config = request.app.state.config
    if check_auth_token(config, request.headers.get(config.auth_header)):
        return

    logger.warning(
        "Authentication failed",
        path=str(request.url.path),
        method=request.method,
        header_present=config.auth_header in request.headers,
    )
    raise Unauthorized(config.auth_header)
