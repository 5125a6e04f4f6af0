"""Programmatic uvicorn entry point for KochoCORS.

Parses command-line flags, resolves the configuration snapshot (flags win
over environment variables, which win over ``.env`` and the settings file)
and starts uvicorn with the resolved app.

Usage:
    python -m kochocors --port 8080 --allowed-domains api.example.com
    kochocors --auth-key s3cret --rate-limit 120     # via pyproject [project.scripts]

Boolean flags are tri-state: ``--insecure-tls`` / ``--no-insecure-tls`` set
the value explicitly, omitting both leaves it to the lower layers.
"""

from __future__ import annotations

import argparse
from typing import Any, Optional, Sequence

import uvicorn

from kochocors.config import Config, load_config
from kochocors.constants import POOL_MAX_CONNECTIONS, PROXY_PATH
from kochocors.main import create_app
from kochocors.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)

# ─── Uvicorn hardened defaults ────────────────────────────────────────────────

# Maximum concurrent connections; new ones get HTTP 503 beyond this.
# Matches the outbound pool size (POOL_MAX_CONNECTIONS).
UVICORN_LIMIT_CONCURRENCY: int = POOL_MAX_CONNECTIONS

# OS-level TCP connection backlog queue size.
UVICORN_BACKLOG: int = 50

# HTTP keep-alive timeout in seconds.  Low value reduces the Slow Loris window.
UVICORN_TIMEOUT_KEEP_ALIVE: int = 5


def build_arg_parser() -> argparse.ArgumentParser:
    """Build the CLI parser.  Every option defaults to None (= not given)."""
    parser = argparse.ArgumentParser(
        prog="kochocors",
        description="CORS-injecting forwarding proxy",
        argument_default=None,
    )
    parser.add_argument("--port", help="port to listen on (default 3000)")
    parser.add_argument("--host", help="interface to bind (default 0.0.0.0)")
    parser.add_argument(
        "--allowed-domains",
        dest="allowed_domains",
        help="comma-separated list of allowed target domain suffixes",
    )
    parser.add_argument(
        "--rate-limit",
        dest="rate_limit",
        help="requests per minute across all callers (0 to disable)",
    )
    parser.add_argument(
        "--auth-key",
        dest="auth_key",
        help="shared secret required in the auth header for proxy requests",
    )
    parser.add_argument(
        "--auth-header",
        dest="auth_header",
        help="name of the header carrying the shared secret",
    )
    parser.add_argument(
        "--default-origin",
        dest="default_origin",
        help="Access-Control-Allow-Origin value to pin ('*' reflects callers when auth is on)",
    )
    parser.add_argument(
        "--upstream-timeout",
        dest="upstream_timeout",
        help="total upstream timeout in seconds (0 disables)",
    )
    parser.add_argument("--config", help="path to a YAML settings file")

    bool_flags = {
        "insecure_tls": "skip TLS certificate verification",
        "follow_redirects": "follow HTTP redirects from the target URL",
        "cancel_on_disconnect": "cancel the upstream request when the caller disconnects",
        "debug": "enable debug logging",
        "json_logs": "emit JSON log lines (console format otherwise)",
    }
    for dest, help_text in bool_flags.items():
        parser.add_argument(
            f"--{dest.replace('_', '-')}",
            dest=dest,
            action=argparse.BooleanOptionalAction,
            help=help_text,
        )
    return parser


def parse_flags(argv: Optional[Sequence[str]] = None) -> dict[str, Any]:
    """Parse ``argv`` into a flags mapping for ``load_config``."""
    return vars(build_arg_parser().parse_args(argv))


def resolve_config(argv: Optional[Sequence[str]] = None) -> Config:
    return load_config(flags=parse_flags(argv))


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Start the KochoCORS proxy server.

    Raises:
        SystemExit: Propagated from load_config() on invalid configuration.
    """
    config = resolve_config(argv)
    configure_logging(
        log_level="DEBUG" if config.debug else "INFO",
        json_output=config.json_logs,
    )

    logger.info(
        "Server starting",
        url=f"http://{config.host}:{config.port}",
        proxy_endpoint=f"http://{config.host}:{config.port}{PROXY_PATH}?url=TARGET_URL",
    )
    if config.auth_enabled:
        logger.info("Authentication required", header=config.auth_header)

    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level="debug" if config.debug else "info",
        limit_concurrency=UVICORN_LIMIT_CONCURRENCY,
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
    )


if __name__ == "__main__":
    main()
