"""Target URL validation for the /proxy endpoint.

``parse_target_url()`` takes the raw ``url`` query parameter and returns a
``TargetURL`` for the later stages:

  - empty / absent                    → MissingParameter (400)
  - not absolute (no scheme or host)  → InvalidURL (400)
  - malformed port or IPv6 literal    → InvalidURL (400)

The scheme is not restricted here.  A scheme the forwarding client cannot
speak (``ftp://``) fails later as UpstreamUnreachable.

``hostname`` keeps the caller's casing: the allowlist comparison is
case-sensitive.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

from kochocors.constants import TARGET_URL_PARAM
from kochocors.models.errors import InvalidURL, MissingParameter


@dataclass(frozen=True)
class TargetURL:
    """A structurally valid absolute target URL.

    Attributes:
        raw:      The URL exactly as supplied; this is what gets requested.
        scheme:   URL scheme, e.g. ``https``.
        host:     Authority without userinfo, port included (``api.example.com:8443``).
        hostname: Host without port or IPv6 brackets.
    """

    raw: str
    scheme: str
    host: str
    hostname: str


def _split_hostname(host: str) -> str:
    if host.startswith("["):
        end = host.find("]")
        return host[1:end] if end != -1 else ""
    return host.split(":", 1)[0]


def parse_target_url(raw: Optional[str]) -> TargetURL:
    """Validate the caller-supplied target URL.

    Raises:
        MissingParameter: If ``raw`` is None or empty.
        InvalidURL:       If ``raw`` is not an absolute URL with scheme and host.
    """
    if not raw:
        raise MissingParameter(TARGET_URL_PARAM)

    try:
        parts = urlsplit(raw)
        parts.port  # raises ValueError on a non-numeric / out-of-range port
    except ValueError:
        raise InvalidURL(raw)

    if not parts.scheme or not parts.netloc:
        raise InvalidURL(raw)

    host = parts.netloc.rpartition("@")[2]
    hostname = _split_hostname(host)
    if not hostname:
        raise InvalidURL(raw)

    return TargetURL(raw=raw, scheme=parts.scheme, host=host, hostname=hostname)
