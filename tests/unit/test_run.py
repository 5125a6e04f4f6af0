"""Unit tests for the command-line entry point (kochocors/run.py)."""

from __future__ import annotations

from typing import Any

import pytest

from kochocors import run
from kochocors.run import build_arg_parser, parse_flags, resolve_config


class TestArgParser:
    def test_omitted_flags_are_none(self) -> None:
        flags = parse_flags([])
        assert all(value is None for value in flags.values())

    def test_value_flags(self) -> None:
        flags = parse_flags(
            ["--port", "8080", "--allowed-domains", "a.com,b.org", "--auth-key", "k"]
        )
        assert flags["port"] == "8080"
        assert flags["allowed_domains"] == "a.com,b.org"
        assert flags["auth_key"] == "k"

    def test_boolean_flags_are_tri_state(self) -> None:
        flags = parse_flags(["--insecure-tls", "--no-follow-redirects"])
        assert flags["insecure_tls"] is True
        assert flags["follow_redirects"] is False
        assert flags["cancel_on_disconnect"] is None

    def test_unknown_flag_exits(self) -> None:
        with pytest.raises(SystemExit):
            build_arg_parser().parse_args(["--bogus"])


class TestResolveConfig:
    def test_flag_overrides_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PORT", "8000")
        monkeypatch.setenv("RATE_LIMIT", "10")
        config = resolve_config(["--port", "9000"])
        assert config.port == 9000
        assert config.rate_limit == 10

    def test_negated_flag_overrides_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FOLLOW_REDIRECTS", "true")
        assert resolve_config(["--no-follow-redirects"]).follow_redirects is False

    def test_allowed_domains_flag(self) -> None:
        config = resolve_config(["--allowed-domains", "example.com,other.org"])
        assert config.allowed_domains == ("example.com", "other.org")


class TestMain:
    def test_starts_uvicorn_with_resolved_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        calls: list[dict[str, Any]] = []

        def fake_run(app: Any, **kwargs: Any) -> None:
            calls.append({"app": app, **kwargs})

        monkeypatch.setattr(run.uvicorn, "run", fake_run)
        run.main(["--port", "8123", "--host", "127.0.0.1", "--no-json-logs"])

        assert len(calls) == 1
        assert calls[0]["host"] == "127.0.0.1"
        assert calls[0]["port"] == 8123
        assert calls[0]["app"].state.config.port == 8123

    def test_invalid_configuration_exits_before_serving(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(run.uvicorn, "run", lambda *a, **k: pytest.fail("server started"))
        with pytest.raises(SystemExit):
            run.main(["--port", "not-a-port"])
