"""Unit tests for body streaming (kochocors/proxy/streaming.py).

Upstream responses are built with ``stream=`` so the body is still unread,
as it is for a real ``AsyncClient.send(..., stream=True)``.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator

import httpx
import pytest

from kochocors.proxy.streaming import relay_response_body, stream_request_body


class _ChunkedStream(httpx.AsyncByteStream):
    def __init__(self, chunks: list[bytes]) -> None:
        self._chunks = chunks
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self._chunks:
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


class _BrokenStream(_ChunkedStream):
    """Yields its chunks, then fails like a reset connection."""

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self._chunks:
            yield chunk
        raise httpx.ReadError("connection reset by peer")


class _FakeRequest:
    def __init__(self, chunks: list[bytes]) -> None:
        self._chunks = chunks

    async def stream(self) -> AsyncIterator[bytes]:
        for chunk in self._chunks:
            yield chunk


async def _collect(gen) -> list[bytes]:
    return [chunk async for chunk in gen]


class TestRelayResponseBody:
    @pytest.mark.asyncio
    async def test_relays_chunks_unchanged(self) -> None:
        stream = _ChunkedStream([b"hello ", b"world"])
        response = httpx.Response(200, stream=stream)
        assert await _collect(relay_response_body(response, "api.test")) == [b"hello ", b"world"]
        assert stream.closed is True
        assert response.is_closed is True

    @pytest.mark.asyncio
    async def test_compressed_bytes_not_decoded(self) -> None:
        stream = _ChunkedStream([b"\x1f\x8b\x08\x00garbage"])
        response = httpx.Response(200, headers={"content-encoding": "gzip"}, stream=stream)
        assert await _collect(relay_response_body(response, "api.test")) == [
            b"\x1f\x8b\x08\x00garbage"
        ]

    @pytest.mark.asyncio
    async def test_mid_stream_failure_truncates_and_closes(self) -> None:
        stream = _BrokenStream([b"partial"])
        response = httpx.Response(200, stream=stream)
        assert await _collect(relay_response_body(response, "api.test")) == [b"partial"]
        assert stream.closed is True

    @pytest.mark.asyncio
    async def test_early_close_still_closes_upstream(self) -> None:
        stream = _ChunkedStream([b"a", b"b", b"c"])
        response = httpx.Response(200, stream=stream)
        gen = relay_response_body(response, "api.test")
        assert await gen.__anext__() == b"a"
        await gen.aclose()
        assert stream.closed is True


class TestStreamRequestBody:
    @pytest.mark.asyncio
    async def test_yields_non_empty_chunks_then_signals(self) -> None:
        consumed = asyncio.Event()
        gen = stream_request_body(_FakeRequest([b"ab", b"", b"cd", b""]), consumed)
        chunks = []
        async for chunk in gen:
            assert not consumed.is_set()
            chunks.append(chunk)
        assert chunks == [b"ab", b"cd"]
        assert consumed.is_set()
