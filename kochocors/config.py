"""Config loading for KochoCORS.

Resolves a single immutable ``Config`` snapshot before the first request is
served.  Every field is looked up through four layers, highest priority first:

  1. Explicit command-line flag (``flags`` argument, built by ``kochocors.run``)
  2. Process environment variable (``PORT``, ``ALLOWED_DOMAINS``, ...)
  3. ``.env`` file in the working directory (read with python-dotenv; never
     written into ``os.environ``)
  4. YAML settings file (``.kochocors/config.yaml`` or ``~/.kochocors/config.yaml``)

and falls back to the built-in default when no layer sets it.

Settings file search order:
  1. ``config_path`` argument (or ``--config`` flag)
  2. KOCHOCORS_CONFIG environment variable
  3. ``.kochocors/config.yaml`` (working directory — for development)
  4. ``~/.kochocors/config.yaml`` (home directory — for deployments)

A missing settings file is not an error.  An invalid one (bad YAML, not a
mapping, missing or unsupported ``version``) refuses startup with SystemExit(1).
"""

from __future__ import annotations

import dataclasses
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

import yaml
from dotenv import dotenv_values

from kochocors.constants import (
    AUTH_TOKEN_HEADER,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_UPSTREAM_TIMEOUT,
    WILDCARD_ORIGIN,
)
from kochocors.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

DEFAULT_CONFIG_PATHS = [
    ".kochocors/config.yaml",
    os.path.expanduser("~/.kochocors/config.yaml"),
]

DEFAULT_DOTENV_PATH = ".env"

# ─── Boolean spellings ───────────────────────────────────────────────────────

_TRUE_VALUES: frozenset[str] = frozenset({"true", "1", "yes", "on"})
_FALSE_VALUES: frozenset[str] = frozenset({"false", "0", "no", "off"})

# ─── Field → environment variable map ────────────────────────────────────────
# Settings file keys use the field names themselves.

ENV_VARS: dict[str, str] = {
    "host": "HOST",
    "port": "PORT",
    "allowed_domains": "ALLOWED_DOMAINS",
    "rate_limit": "RATE_LIMIT",
    "auth_key": "AUTH_KEY",
    "auth_header": "AUTH_HEADER",
    "default_origin": "DEFAULT_ORIGIN",
    "insecure_tls": "INSECURE_TLS",
    "follow_redirects": "FOLLOW_REDIRECTS",
    "upstream_timeout": "UPSTREAM_TIMEOUT",
    "cancel_on_disconnect": "CANCEL_ON_DISCONNECT",
    "debug": "DEBUG",
    "json_logs": "JSON_LOGS",
}


# ─── Dataclass ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Config:
    """Immutable configuration snapshot shared by every request.

    All fields have safe defaults — KochoCORS can start without any flag,
    environment variable or settings file.

    ``allowed_domains`` holds the raw suffix patterns in configured order; the
    allowlist matcher trims them; blank entries never match.  An empty tuple
    allows every hostname.
    """

    allowed_domains: tuple[str, ...] = ()
    rate_limit: int = 0                      # requests per minute, 0 = disabled
    auth_key: str = ""                       # empty = auth disabled
    auth_header: str = AUTH_TOKEN_HEADER
    default_origin: str = WILDCARD_ORIGIN
    insecure_tls: bool = False
    follow_redirects: bool = True
    upstream_timeout: Optional[float] = DEFAULT_UPSTREAM_TIMEOUT  # None = unbounded
    cancel_on_disconnect: bool = True
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    debug: bool = False
    json_logs: bool = True
    path: Optional[str] = field(default=None, compare=False)  # settings file used, if any

    @property
    def auth_enabled(self) -> bool:
        return bool(self.auth_key)

    @property
    def rate_limit_enabled(self) -> bool:
        return self.rate_limit > 0

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file, no environment)."""
        return cls()


# ─── Value parsing ────────────────────────────────────────────────────────────


def _config_error(msg: str) -> SystemExit:
    print(f"CONFIG ERROR: {msg}", file=sys.stderr)
    return SystemExit(1)


def parse_bool(value: Any, source: str) -> bool:
    """Parse a boolean setting from a flag, env string or YAML value.

    Raises:
        SystemExit(1): If the value is not a recognised boolean spelling.
    """
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise _config_error(
        f"{source} must be a boolean (true/false), got '{value}'"
    )


def parse_int(value: Any, source: str) -> int:
    if isinstance(value, bool):
        raise _config_error(f"{source} must be an integer, got '{value}'")
    try:
        return int(str(value).strip())
    except ValueError:
        raise _config_error(f"{source} must be an integer, got '{value}'")


def parse_timeout(value: Any, source: str) -> Optional[float]:
    """Parse a timeout in seconds; zero or negative disables the timeout."""
    if value is None:
        return None
    try:
        seconds = float(str(value).strip())
    except ValueError:
        raise _config_error(f"{source} must be a number of seconds, got '{value}'")
    return seconds if seconds > 0 else None


def parse_domains(value: Any, source: str) -> tuple[str, ...]:
    """Parse the allowlist from a comma-separated string or a YAML list.

    An empty string yields an empty allowlist (allow all).  Entries are kept
    verbatim; trimming happens in the matcher.
    """
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value)
    text = str(value)
    if text == "":
        return ()
    return tuple(text.split(","))


def _parse_str(value: Any, source: str) -> str:
    return "" if value is None else str(value)


_PARSERS: dict[str, Callable[[Any, str], Any]] = {
    "host": _parse_str,
    "port": parse_int,
    "allowed_domains": parse_domains,
    "rate_limit": parse_int,
    "auth_key": _parse_str,
    "auth_header": _parse_str,
    "default_origin": _parse_str,
    "insecure_tls": parse_bool,
    "follow_redirects": parse_bool,
    "upstream_timeout": parse_timeout,
    "cancel_on_disconnect": parse_bool,
    "debug": parse_bool,
    "json_logs": parse_bool,
}


# ─── Settings file ────────────────────────────────────────────────────────────


def _find_settings_file(config_path: Optional[str], environ: Mapping[str, str]) -> Optional[str]:
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = environ.get("KOCHOCORS_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            return expanded

    logger.debug("No settings file found — using defaults", searched=search_paths)
    return None


def load_settings_file(path: str) -> dict[str, Any]:
    """Read and validate a YAML settings file.

    Returns:
        The parsed mapping (including ``version``).

    Raises:
        SystemExit(1): On YAML parse error, unreadable file, non-mapping
                       document, missing or unsupported ``version``.
    """
    try:
        with open(path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise _config_error(
            f"Failed to parse {path}: {exc}\n"
            "KochoCORS refuses to start with an invalid settings file."
        )
    except OSError as exc:
        raise _config_error(f"Could not read {path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            raise _config_error(
                f"{path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your settings file."
            )
        raise _config_error(
            f"{path} is not a valid YAML mapping.\n"
            "The settings file must be a YAML dictionary at the top level."
        )

    version = raw.get("version")
    if version is None:
        raise _config_error(
            f"{path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your settings file."
        )
    if version not in SUPPORTED_VERSIONS:
        raise _config_error(
            f"Unsupported settings file version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    unknown = sorted(set(raw) - set(_PARSERS) - {"version"})
    if unknown:
        logger.warning("Unknown settings file keys ignored", path=path, keys=unknown)
    return raw


# ─── Resolution ───────────────────────────────────────────────────────────────


def load_config(
    flags: Optional[Mapping[str, Any]] = None,
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    dotenv_path: Optional[str] = DEFAULT_DOTENV_PATH,
) -> Config:
    """Resolve the configuration snapshot.

    Args:
        flags:       Parsed command-line flags keyed by field name.  ``None``
                     values mean "not given" and fall through to lower layers.
        config_path: Explicit settings file path (tried before the defaults).
        environ:     Environment mapping; defaults to ``os.environ``.
        dotenv_path: ``.env`` file to read; ``None`` skips it.

    Returns:
        Frozen Config.

    Raises:
        SystemExit(1): On any invalid value or invalid settings file.
    """
    flags = {k: v for k, v in (flags or {}).items() if v is not None}
    environ = os.environ if environ is None else environ

    dotenv: dict[str, Optional[str]] = {}
    if dotenv_path and os.path.isfile(dotenv_path):
        dotenv = dotenv_values(dotenv_path)
        logger.debug("Loaded .env file", path=dotenv_path, keys=sorted(dotenv))

    settings_path = _find_settings_file(flags.pop("config", None) or config_path, environ)
    settings: dict[str, Any] = load_settings_file(settings_path) if settings_path else {}

    values: dict[str, Any] = {}
    for name, parser in _PARSERS.items():
        env_name = ENV_VARS[name]
        if name in flags:
            values[name] = parser(flags[name], f"--{name.replace('_', '-')}")
        elif env_name in environ:
            values[name] = parser(environ[env_name], env_name)
        elif dotenv.get(env_name) is not None:
            values[name] = parser(dotenv[env_name], f"{env_name} (.env)")
        elif name in settings:
            values[name] = parser(settings[name], f"{settings_path}: {name}")

    config = Config(path=settings_path, **values)
    config = _normalise(config)
    _validate(config)

    if config.insecure_tls:
        logger.warning(
            "SECURITY WARNING: TLS certificate verification is disabled for all "
            "upstream requests (insecure_tls=true)."
        )

    return config


def log_config_summary(config: Config) -> None:
    """Log the resolved snapshot at debug level.

    Call after ``configure_logging()``: a fresh logger is bound here so the
    level configured for this run applies.
    """
    get_logger(__name__).debug(
        "config_loaded",
        path=config.path,
        allowed_domains=list(config.allowed_domains),
        rate_limit=config.rate_limit,
        auth_enabled=config.auth_enabled,
        default_origin=config.default_origin,
        insecure_tls=config.insecure_tls,
        follow_redirects=config.follow_redirects,
        upstream_timeout=config.upstream_timeout,
        cancel_on_disconnect=config.cancel_on_disconnect,
        port=config.port,
    )


def _normalise(config: Config) -> Config:
    # An empty origin would emit an empty Access-Control-Allow-Origin header.
    if config.default_origin == "":
        return dataclasses.replace(config, default_origin=WILDCARD_ORIGIN)
    return config


def _validate(config: Config) -> None:
    if config.rate_limit < 0:
        raise _config_error(f"rate_limit must be >= 0, got {config.rate_limit}")
    if not 1 <= config.port <= 65535:
        raise _config_error(f"port must be between 1 and 65535, got {config.port}")
    if not config.auth_header.strip():
        raise _config_error("auth_header must not be empty")
