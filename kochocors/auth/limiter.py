"""Global token-bucket rate gate for the /proxy endpoint.

A single ``TokenBucket`` is created in the lifespan when ``rate_limit > 0`` and
stored on ``app.state.rate_gate``; it is shared by every concurrent request.
With rate limiting disabled the state holds ``None`` and the gate is a no-op.

Bucket semantics:
  - capacity 1, starts full
  - refills continuously at ``rate_limit / 60`` tokens per second
  - ``try_acquire()`` consumes the token or fails immediately (no queueing)

The refill-and-take step runs under a lock so two callers can never spend the
same token, whether they share the event loop or run on worker threads.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from fastapi import Request

from kochocors.config import Config
from kochocors.models.errors import RateLimited
from kochocors.utils.logger import get_logger

logger = get_logger(__name__)


class TokenBucket:
    """Thread-safe token bucket.

    Args:
        rate:     Refill rate in tokens per second (must be > 0).
        capacity: Maximum tokens held (default 1).
        clock:    Monotonic time source in seconds; injectable for tests.
    """

    def __init__(
        self,
        rate: float,
        capacity: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if rate <= 0:
            raise ValueError(f"rate must be > 0, got {rate}")
        if capacity <= 0:
            raise ValueError(f"capacity must be > 0, got {capacity}")
        self._rate = rate
        self._capacity = capacity
        self._clock = clock
        self._tokens = capacity
        self._updated = clock()
        self._lock = threading.Lock()

    @classmethod
    def per_minute(
        cls,
        requests_per_minute: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> "TokenBucket":
        """Build a capacity-1 bucket admitting ``requests_per_minute`` on average."""
        return cls(rate=requests_per_minute / 60.0, capacity=1.0, clock=clock)

    @property
    def rate(self) -> float:
        return self._rate

    def try_acquire(self) -> bool:
        """Take one token if available.  Never blocks waiting for a refill."""
        with self._lock:
            now = self._clock()
            elapsed = max(0.0, now - self._updated)
            self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
            self._updated = now
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False


def build_rate_gate(config: Config) -> Optional[TokenBucket]:
    """Return the shared bucket, or None when rate limiting is disabled."""
    if not config.rate_limit_enabled:
        return None
    return TokenBucket.per_minute(config.rate_limit)


async def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency: admit the request through the shared rate gate.

    Runs after ``authenticate_request``.

    Raises:
        RateLimited: If the bucket is empty.
    """
    gate: Optional[TokenBucket] = getattr(request.app.state, "rate_gate", None)
    if gate is None or gate.try_acquire():
        return

    logger.info("Rate limit exceeded", path=str(request.url.path), method=request.method)
    raise RateLimited()
