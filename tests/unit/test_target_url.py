"""Unit tests for target URL validation (kochocors/proxy/target.py)."""

from __future__ import annotations

import pytest

from kochocors.models.errors import InvalidURL, MissingParameter
from kochocors.proxy.target import parse_target_url


class TestParseTargetUrl:
    @pytest.mark.parametrize("raw", [None, ""])
    def test_absent_url_is_missing_parameter(self, raw) -> None:
        with pytest.raises(MissingParameter) as exc_info:
            parse_target_url(raw)
        assert exc_info.value.message == "Missing url query parameter"
        assert exc_info.value.status_code == 400

    @pytest.mark.parametrize(
        "raw",
        [
            "not-a-url",
            "/relative/path",
            "example.com/path",
            "http://",
            "http://example.com:notaport/",
            "http://example.com:99999/",
            "http://[::1/",
        ],
    )
    def test_non_absolute_or_malformed_is_invalid(self, raw: str) -> None:
        with pytest.raises(InvalidURL) as exc_info:
            parse_target_url(raw)
        assert exc_info.value.message == "Invalid URL provided"

    def test_components(self) -> None:
        target = parse_target_url("https://user:pw@API.Example.com:8443/v1?q=1")
        assert target.raw == "https://user:pw@API.Example.com:8443/v1?q=1"
        assert target.scheme == "https"
        assert target.host == "API.Example.com:8443"
        assert target.hostname == "API.Example.com"

    def test_ipv6_literal(self) -> None:
        target = parse_target_url("http://[::1]:8080/")
        assert target.hostname == "::1"
        assert target.host == "[::1]:8080"

    def test_scheme_not_restricted(self) -> None:
        assert parse_target_url("ftp://files.example.com/a").scheme == "ftp"
