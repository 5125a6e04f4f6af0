"""Target-domain allowlist for the /proxy endpoint.

``is_domain_allowed()`` decides whether a target hostname may be proxied;
``check_domain_allowed()`` is the pipeline stage that raises on rejection.

Matching rules:
  1. Empty allowlist (no entries at all) → every hostname is allowed.
  2. Each pattern is trimmed of surrounding whitespace; patterns that are
     empty after trimming never match.  An allowlist made only of blank
     entries therefore rejects every hostname.
  3. A hostname is allowed iff it ENDS WITH one of the non-blank patterns
     (suffix match, case-sensitive): ``example.com`` allows ``api.example.com``.
  4. First matching pattern wins.

Note: ``example.com`` also matches ``badexample.com``.  Configure
``.example.com`` to require a label boundary.
"""

from __future__ import annotations

from typing import Optional, Sequence

from kochocors.models.errors import DomainForbidden
from kochocors.utils.logger import get_logger

logger = get_logger(__name__)


def match_domain(hostname: str, patterns: Sequence[str]) -> Optional[str]:
    """Return the first (trimmed) pattern that ``hostname`` ends with, else None."""
    for raw_pattern in patterns:
        pattern = raw_pattern.strip()
        if not pattern:
            continue
        if hostname.endswith(pattern):
            return pattern
    return None


def is_domain_allowed(hostname: str, patterns: Sequence[str]) -> bool:
    """Return True if ``hostname`` passes the allowlist.

    Args:
        hostname: Target host without port, case preserved.
        patterns: Configured suffix patterns (raw, untrimmed).
    """
    if not patterns:
        return True
    return match_domain(hostname, patterns) is not None


def check_domain_allowed(hostname: str, patterns: Sequence[str]) -> None:
    """Pipeline stage: reject targets outside the allowlist.

    Raises:
        DomainForbidden: carrying the rejected hostname.
    """
    if is_domain_allowed(hostname, patterns):
        return
    logger.info("Domain not in allowlist", hostname=hostname, patterns=list(patterns))
    raise DomainForbidden(hostname)
