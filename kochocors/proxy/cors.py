"""CORS origin resolution and response header injection.

``resolve_cors_origin()`` picks the ``Access-Control-Allow-Origin`` value,
evaluated in order:

  1. ``default_origin`` is not ``*``  → the pinned origin, unconditionally.
  2. auth is enabled                   → the caller's ``Origin`` header, else
                                         ``scheme://host`` of its ``Referer``,
                                         else ``default_origin`` (``*``).
  3. otherwise                         → ``*``.

Reflecting the caller's origin only happens once the shared secret has
already gated the request.

``build_cors_headers()`` renders the header set for a resolved origin:
Allow-Origin, Allow-Methods (fixed broad list), Allow-Headers (``*``) and,
when the origin is not the wildcard, ``Access-Control-Allow-Credentials: true``.
"""

from __future__ import annotations

from typing import Mapping, Optional
from urllib.parse import urlsplit

from fastapi import Response

from kochocors.config import Config
from kochocors.constants import CORS_ALLOW_HEADERS, CORS_ALLOW_METHODS, WILDCARD_ORIGIN


def origin_from_referer(referer: str) -> Optional[str]:
    """Derive ``scheme://host`` from a Referer value, or None if unparseable."""
    try:
        parts = urlsplit(referer)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc.rpartition('@')[2]}"


def resolve_cors_origin(config: Config, headers: Mapping[str, str]) -> str:
    """Return the Access-Control-Allow-Origin value for this request.

    Args:
        config:  The configuration snapshot.
        headers: Inbound request headers (case-insensitive mapping).
    """
    if config.default_origin != WILDCARD_ORIGIN:
        return config.default_origin

    if config.auth_enabled:
        origin = headers.get("origin")
        if origin:
            return origin
        referer = headers.get("referer")
        if referer:
            derived = origin_from_referer(referer)
            if derived:
                return derived
        return config.default_origin

    return WILDCARD_ORIGIN


def build_cors_headers(origin: str) -> list[tuple[str, str]]:
    headers = [
        ("Access-Control-Allow-Origin", origin),
        ("Access-Control-Allow-Methods", CORS_ALLOW_METHODS),
        ("Access-Control-Allow-Headers", CORS_ALLOW_HEADERS),
    ]
    if origin != WILDCARD_ORIGIN:
        headers.append(("Access-Control-Allow-Credentials", "true"))
    return headers


def build_preflight_response(cors_headers: list[tuple[str, str]]) -> Response:
    """Return the 200 empty-body answer to an OPTIONS preflight."""
    response = Response(status_code=200)
    for name, value in cors_headers:
        response.headers.append(name, value)
    return response
