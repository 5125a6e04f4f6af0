"""HTTP header processing for the KochoCORS proxy.

  - build_upstream_headers(): the header list sent to the target.  Every
    inbound header is copied, all values in original order, EXCEPT:
      * ``Host`` — recomputed by httpx for the target URL
      * any name starting with ``Access-Control-`` (case-insensitive) — the
        browser's preflight negotiation with the proxy, not the target

  - build_relay_headers(): the raw header list sent back to the caller —
    the CORS headers first, then every upstream response header verbatim
    (all values, original order, no filtering).  Names are lower-cased as
    ASGI requires; values are untouched.
"""

from __future__ import annotations

from typing import Iterable

from kochocors.constants import CORS_HEADER_PREFIX

# ─── Constants ────────────────────────────────────────────────────────────────

# Inbound headers never forwarded by name (compared lower-case).
EXCLUDED_REQUEST_HEADERS: frozenset[str] = frozenset({"host"})


# ─── Public API ───────────────────────────────────────────────────────────────


def is_forwardable(name: str) -> bool:
    """Return False for headers the sanitizer strips."""
    lower_name = name.lower()
    if lower_name in EXCLUDED_REQUEST_HEADERS:
        return False
    return not lower_name.startswith(CORS_HEADER_PREFIX)


def build_upstream_headers(
    request_headers: Iterable[tuple[str, str]],
) -> list[tuple[str, str]]:
    """Build the header list to send to the target.

    A list (not a dict) keeps repeated headers such as ``Cookie`` or
    ``Accept`` with every value and in their original order.

    Args:
        request_headers: Iterable of (name, value) pairs from the incoming
                         request.  Typically ``request.headers.items()``,
                         which yields duplicates separately.

    Returns:
        ``list[tuple[str, str]]`` — headers for the outbound httpx request.
    """
    return [(name, value) for name, value in request_headers if is_forwardable(name)]


def build_relay_headers(
    cors_headers: Iterable[tuple[str, str]],
    upstream_raw_headers: Iterable[tuple[bytes, bytes]],
) -> list[tuple[bytes, bytes]]:
    """Build the raw ASGI header list for the caller-facing response.

    Args:
        cors_headers:         Output of ``build_cors_headers()``.
        upstream_raw_headers: ``httpx.Response.headers.raw`` byte pairs.

    Returns:
        ``list[tuple[bytes, bytes]]`` for ``Response.raw_headers``.
    """
    headers = [
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in cors_headers
    ]
    headers.extend((name.lower(), value) for name, value in upstream_raw_headers)
    return headers
