"""Unit tests for the shared-secret check (kochocors/auth/middleware.py)."""

from __future__ import annotations

from kochocors.auth.middleware import check_auth_token
from kochocors.config import Config


class TestCheckAuthToken:
    def test_disabled_auth_admits_everything(self) -> None:
        config = Config(auth_key="")
        assert check_auth_token(config, None) is True
        assert check_auth_token(config, "anything") is True

    def test_matching_token_admitted(self) -> None:
        assert check_auth_token(Config(auth_key="s3cret"), "s3cret") is True

    def test_missing_token_rejected(self) -> None:
        assert check_auth_token(Config(auth_key="s3cret"), None) is False

    def test_wrong_token_rejected(self) -> None:
        assert check_auth_token(Config(auth_key="s3cret"), "S3CRET") is False

    def test_empty_token_rejected(self) -> None:
        assert check_auth_token(Config(auth_key="s3cret"), "") is False
