"""Unit tests for the failure taxonomy and plain-text responses (kochocors/models/errors.py)."""

from __future__ import annotations

import httpx
import pytest

from kochocors.models.errors import (
    DomainForbidden,
    InvalidURL,
    MissingParameter,
    ProxyError,
    RateLimited,
    RequestConstructionFailed,
    Unauthorized,
    UpstreamUnreachable,
    build_error_response,
)


@pytest.mark.parametrize(
    "exc,status,body",
    [
        (
            Unauthorized("X-KochoCORS-Auth-Token"),
            401,
            "Unauthorized - Invalid or missing X-KochoCORS-Auth-Token header\n",
        ),
        (RateLimited(), 429, "Too many requests\n"),
        (MissingParameter("url"), 400, "Missing url query parameter\n"),
        (InvalidURL("nope"), 400, "Invalid URL provided\n"),
        (DomainForbidden("evil.test"), 403, "Domain not allowed: evil.test\n"),
        (
            RequestConstructionFailed(httpx.InvalidURL("bad host")),
            500,
            "Failed to create request to target URL: bad host\n",
        ),
        (
            UpstreamUnreachable(httpx.ConnectError("connection refused")),
            500,
            "Failed to fetch target URL: connection refused\n",
        ),
    ],
)
def test_status_and_body(exc: ProxyError, status: int, body: str) -> None:
    response = build_error_response(exc)
    assert response.status_code == status
    assert response.body.decode() == body
    assert response.headers["content-type"].startswith("text/plain")
    assert response.headers["x-content-type-options"] == "nosniff"


def test_empty_cause_message_uses_type_name() -> None:
    exc = UpstreamUnreachable(httpx.ReadTimeout(""))
    assert exc.message == "Failed to fetch target URL: ReadTimeout"


def test_carried_headers_are_appended() -> None:
    exc = UpstreamUnreachable(
        httpx.ConnectError("down"),
        headers=[("Access-Control-Allow-Origin", "*"), ("Vary", "a"), ("Vary", "b")],
    )
    response = build_error_response(exc)
    assert response.headers["access-control-allow-origin"] == "*"
    assert response.headers.getlist("vary") == ["a", "b"]


def test_early_errors_carry_no_headers() -> None:
    assert Unauthorized("X").headers == []
    assert DomainForbidden("h").headers == []


def test_kinds_are_distinct() -> None:
    kinds = {
        cls.kind
        for cls in (
            Unauthorized,
            RateLimited,
            MissingParameter,
            InvalidURL,
            DomainForbidden,
            RequestConstructionFailed,
            UpstreamUnreachable,
        )
    }
    assert len(kinds) == 7
