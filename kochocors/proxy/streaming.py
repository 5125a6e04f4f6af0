"""Streaming body transfer in both directions.

  - ``stream_request_body()`` feeds the inbound body to httpx chunk by chunk
    and signals when the caller has finished sending it.
  - ``relay_response_body()`` copies the upstream body to the caller as raw
    bytes (``aiter_raw``: no decompression, so ``Content-Encoding`` still
    matches what is sent).

Neither side is buffered in memory.

A failure while relaying is logged and ends the body early: the status and
headers are already on the wire, so the caller sees a truncated response,
the same as talking to the upstream directly.  Nothing is retried.  The
upstream response is always closed in ``finally`` — including when Starlette
cancels the generator because the caller went away.
"""

from __future__ import annotations

import asyncio
from typing import AsyncGenerator

import httpx
from starlette.requests import Request

from kochocors.utils.logger import get_logger

logger = get_logger(__name__)


async def stream_request_body(
    request: Request,
    body_consumed: asyncio.Event,
) -> AsyncGenerator[bytes, None]:
    """Yield the inbound body; set ``body_consumed`` once it is exhausted."""
    async for chunk in request.stream():
        if chunk:
            yield chunk
    body_consumed.set()


async def relay_response_body(
    upstream_response: httpx.Response,
    target_host: str,
) -> AsyncGenerator[bytes, None]:
    """Yield the upstream body bytes unchanged.

    Args:
        upstream_response: Response from ``AsyncClient.send(..., stream=True)``.
        target_host:       Target host, for log correlation.

    Yields:
        Raw body chunks as received from the upstream.
    """
    relayed = 0
    try:
        async for chunk in upstream_response.aiter_raw():
            relayed += len(chunk)
            yield chunk
    except (httpx.HTTPError, httpx.StreamError) as exc:
        logger.warning(
            "relay_body_error",
            target_host=target_host,
            bytes_relayed=relayed,
            error_type=type(exc).__name__,
            error=str(exc),
        )
    finally:
        await upstream_response.aclose()

    logger.debug("relay_body_complete", target_host=target_host, bytes_relayed=relayed)
