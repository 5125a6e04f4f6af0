"""Root test configuration for KochoCORS.

Isolates every test from the developer's machine: the configuration
environment variables are cleared, the settings file search path is emptied
and the working directory is a fresh temp dir (so no stray ``.env`` is read).

Also provides ``proxy_client_factory``, which starts the app through its real
lifespan with the shared outbound client bound to an ``httpx.MockTransport``.
"""

from __future__ import annotations

from typing import Callable, Iterator

import httpx
import pytest
from starlette.testclient import TestClient

from kochocors.config import ENV_VARS, Config
from kochocors.main import create_app
from kochocors.proxy.engine import create_http_client


@pytest.fixture(autouse=True)
def isolate_config(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Clear config env vars, settings file paths and cwd for every test."""
    for env_name in ENV_VARS.values():
        monkeypatch.delenv(env_name, raising=False)
    monkeypatch.delenv("KOCHOCORS_CONFIG", raising=False)
    monkeypatch.setattr("kochocors.config.DEFAULT_CONFIG_PATHS", [])
    monkeypatch.chdir(tmp_path)


Handler = Callable[[httpx.Request], object]


@pytest.fixture
def proxy_client_factory(
    monkeypatch: pytest.MonkeyPatch,
) -> Iterator[Callable[..., TestClient]]:
    """Return ``make(handler, **config_overrides) -> TestClient`` (lifespan running).

    ``handler`` is an httpx.MockTransport handler (sync or async) standing in
    for every upstream server.
    """
    clients: list[TestClient] = []

    def make(handler: Handler, **overrides: object) -> TestClient:
        config = Config(**overrides)
        transport = httpx.MockTransport(handler)
        monkeypatch.setattr(
            "kochocors.main.create_http_client",
            lambda cfg: create_http_client(cfg, transport=transport),
        )
        client = TestClient(create_app(config))
        client.__enter__()
        clients.append(client)
        return client

    yield make

    for client in clients:
        client.__exit__(None, None, None)

