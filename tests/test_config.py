"""Tests for configuration and admin passkey handling."""

import pytest

from storefront_analytics.config import (
    AnalyticsConfig,
    PasskeyTooShortError,
    hash_passkey,
    verify_passkey,
)


class TestPasskeys:
    def test_hash_and_verify(self):
        stored = hash_passkey("a-very-long-admin-passkey")
        assert stored.startswith("pbkdf2:100000:")
        assert verify_passkey(stored, "a-very-long-admin-passkey") is True
        assert verify_passkey(stored, "something-else-entirely") is False

    def test_short_passkey_rejected(self):
        with pytest.raises(PasskeyTooShortError):
            hash_passkey("short")

    def test_malformed_hash_never_verifies(self):
        assert verify_passkey("pbkdf2:notanumber:zz:zz", "anything") is False

    def test_plaintext_passkey_warns(self):
        with pytest.warns(DeprecationWarning):
            config = AnalyticsConfig(kv_rest_url="", kv_rest_token="", passkey="plaintext-passkey-123")
        assert config.is_passkey_hashed is False
        assert config.check_passkey("plaintext-passkey-123") is True

    def test_no_passkey_never_matches(self):
        config = AnalyticsConfig(kv_rest_url="", kv_rest_token="")
        assert config.has_auth is False
        assert config.check_passkey("anything-at-all-here") is False


class TestConfig:
    def test_from_env(self):
        config = AnalyticsConfig.from_env({
            "KV_REST_API_URL": "https://kv.example.com",
            "KV_REST_API_TOKEN": "token",
            "ANALYTICS_GEO_TIMEOUT": "2.5",
        })
        assert config.kv_rest_url == "https://kv.example.com"
        assert config.kv_rest_token == "token"
        assert config.geo_timeout_seconds == 2.5
        assert config.passkey is None

    def test_from_env_bad_timeout_uses_default(self):
        config = AnalyticsConfig.from_env({"ANALYTICS_GEO_TIMEOUT": "soon"})
        assert config.geo_timeout_seconds == 5.0

    def test_default_days_must_fit_window(self):
        with pytest.raises(ValueError):
            AnalyticsConfig(kv_rest_url="", kv_rest_token="", default_days=400)
