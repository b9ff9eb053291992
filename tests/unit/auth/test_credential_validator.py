"""
Unit tests for credential hygiene checks.

Usage:
    pytest tests/unit/auth/test_credential_validator.py
"""

from brale_core.auth import (
    AuthConfig,
    detect_credential_exposure,
    mask_credential,
    validate_credentials,
)


class TestValidateCredentials:
    """Test validate_credentials."""

    def test_production_credentials_valid(self, monkeypatch):
        monkeypatch.delenv("ENV", raising=False)

        result = validate_credentials("client_live_8f3a2c", "x" * 32)

        assert result.is_valid is True
        assert result.issues == []

    def test_test_or_demo_client_id_flagged(self):
        for client_id in ("test_client", "DemoAccount"):
            result = validate_credentials(client_id, "x" * 32)

            assert result.is_valid is False
            assert any("test/demo" in issue for issue in result.issues)

    def test_short_secret_flagged(self):
        result = validate_credentials("client_live_8f3a2c", "short")

        assert result.is_valid is False
        assert any("too short" in issue for issue in result.issues)

    def test_development_recommendation(self, monkeypatch):
        monkeypatch.setenv("ENV", "development")
        monkeypatch.delenv("BRALE_ALLOW_DEV_CREDS", raising=False)

        result = validate_credentials("client_live_8f3a2c", "x" * 32)

        assert result.is_valid is True
        assert result.recommendations


class TestMasking:
    """Test mask_credential and exposure detection."""

    def test_mask_keeps_edges(self):
        assert mask_credential("abcd1234efgh") == "abcd****efgh"

    def test_mask_short_values(self):
        assert mask_credential("") == "***"
        assert mask_credential("abc1234") == "***"

    def test_debug_with_credentials_is_exposure(self):
        config = AuthConfig("client_live_8f3a2c", "x" * 32, debug=True)

        risks = detect_credential_exposure(config)

        assert len(risks) == 1
        assert "Debug mode" in risks[0]

    def test_no_exposure_without_debug(self):
        assert detect_credential_exposure(AuthConfig("client", "x" * 32)) == []

    def test_auth_config_repr_masks_client_id(self):
        assert "client_live_8f3a2c" not in repr(AuthConfig("client_live_8f3a2c", "x" * 32))
