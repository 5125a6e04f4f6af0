"""Liveness endpoint for KochoCORS.

GET /ping — always 200 ``{"message": "pong"}`` once the process is serving.
No readiness gate and no dependency on the upstream client; container
probes and uptime monitors poll it.
"""

from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/ping")
async def ping() -> dict[str, str]:
    """Liveness check."""
    return {"message": "pong"}
