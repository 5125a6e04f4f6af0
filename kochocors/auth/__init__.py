"""KochoCORS admission gates.

Public API:
  - authenticate_request() — FastAPI dependency: shared-secret header check
  - check_auth_token()     — pure secret comparison used by the dependency
  - enforce_rate_limit()   — FastAPI dependency: shared token bucket
  - build_rate_gate()      — lifespan factory for the bucket (None when disabled)
  - TokenBucket            — thread-safe capacity-1 token bucket
"""

from __future__ import annotations

from kochocors.auth.limiter import TokenBucket, build_rate_gate, enforce_rate_limit
from kochocors.auth.middleware import authenticate_request, check_auth_token

__all__ = [
    "TokenBucket",
    "authenticate_request",
    "build_rate_gate",
    "check_auth_token",
    "enforce_rate_limit",
]
