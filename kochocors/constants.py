"""Shared constants for KochoCORS.

Header names, defaults and client pool sizes used across modules are defined
here. No magic numbers in other modules — import from here.
"""

# ─── HTTP surface ─────────────────────────────────────────────────────────────

# Path of the single forwarding endpoint.
PROXY_PATH: str = "/proxy"

# Query parameter carrying the absolute target URL.
TARGET_URL_PARAM: str = "url"

# Default name of the shared-secret header.  Overridable via config (auth_header).
AUTH_TOKEN_HEADER: str = "X-KochoCORS-Auth-Token"

# Methods advertised in Access-Control-Allow-Methods.  /proxy itself routes
# every method, including extension methods not listed here.
PROXY_METHODS: tuple[str, ...] = (
    "GET",
    "POST",
    "PUT",
    "DELETE",
    "PATCH",
    "OPTIONS",
    "HEAD",
    "TRACE",
    "COPY",
    "LINK",
)

# ─── CORS ─────────────────────────────────────────────────────────────────────

WILDCARD_ORIGIN: str = "*"
CORS_ALLOW_METHODS: str = ", ".join(PROXY_METHODS)
CORS_ALLOW_HEADERS: str = "*"

# Inbound headers whose names start with this prefix are never forwarded upstream.
CORS_HEADER_PREFIX: str = "access-control-"

# ─── Config defaults ──────────────────────────────────────────────────────────

DEFAULT_HOST: str = "0.0.0.0"
DEFAULT_PORT: int = 3000

# Total upstream timeout in seconds.  0 or a negative value disables it.
DEFAULT_UPSTREAM_TIMEOUT: float = 30.0

# ─── Outbound client pool ─────────────────────────────────────────────────────

POOL_MAX_CONNECTIONS: int = 100
POOL_MAX_KEEPALIVE: int = 20
POOL_KEEPALIVE_EXPIRY: float = 30.0  # seconds

# How often the handler polls for caller disconnection while the upstream call
# is in flight (seconds).
DISCONNECT_POLL_INTERVAL: float = 0.1
