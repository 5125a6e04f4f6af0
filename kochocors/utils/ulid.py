"""ULID generation utility for KochoCORS.

Provides a single `generate_ulid()` function that returns a 26-character ULID
used as the per-request ``request_id`` in structured log entries.

ULIDs are lexicographically sortable by creation time, so log lines for the
same burst of requests sort in arrival order.

Uses the `python-ulid` library (see pyproject.toml) — do NOT hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Returns:
        str: A 26-character ULID string (Crockford Base32 — ``[0-9A-HJKMNP-TV-Z]``).
    """
    return str(ULID())
