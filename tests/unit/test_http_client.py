"""Unit tests for the shared outbound client factory (kochocors/proxy/engine.py)."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from kochocors.config import Config
from kochocors.constants import POOL_MAX_CONNECTIONS
from kochocors.proxy.engine import create_http_client


def _captured_kwargs(monkeypatch: pytest.MonkeyPatch, config: Config) -> dict[str, Any]:
    captured: dict[str, Any] = {}

    class _RecordingClient:
        def __init__(self, **kwargs: Any) -> None:
            captured.update(kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", _RecordingClient)
    create_http_client(config)
    return captured


class TestCreateHttpClient:
    def test_tls_verified_by_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        assert _captured_kwargs(monkeypatch, Config())["verify"] is True

    def test_insecure_tls_disables_verification(self, monkeypatch: pytest.MonkeyPatch) -> None:
        assert _captured_kwargs(monkeypatch, Config(insecure_tls=True))["verify"] is False

    def test_environment_proxies_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        assert _captured_kwargs(monkeypatch, Config())["trust_env"] is False

    @pytest.mark.asyncio
    async def test_redirect_and_timeout_settings(self) -> None:
        client = create_http_client(Config(follow_redirects=False, upstream_timeout=5.0))
        try:
            assert client.follow_redirects is False
            assert client.timeout.read == 5.0
            assert client.timeout.connect == 5.0
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_timeout_disabled(self) -> None:
        client = create_http_client(Config(upstream_timeout=None))
        try:
            assert client.timeout.read is None
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    async def test_upstream_cookies_not_retained(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, headers={"set-cookie": "session=abc; Path=/"})

        client = create_http_client(Config(), transport=httpx.MockTransport(handler))
        try:
            await client.get("https://api.example.com/login")
            assert len(client.cookies.jar) == 0
            second = client.build_request("GET", "https://api.example.com/me")
            assert "cookie" not in second.headers
        finally:
            await client.aclose()

    def test_pool_size_constant(self) -> None:
        assert POOL_MAX_CONNECTIONS == 100
