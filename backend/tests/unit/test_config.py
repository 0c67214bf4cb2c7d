"""Tests for Settings validation."""

import base64

import pytest
from pydantic import ValidationError


@pytest.mark.unit
class TestSettings:
    def test_defaults(self, settings_factory):
        settings = settings_factory()
        assert settings.ACCESS_TOKEN_EXPIRE_MINUTES == 5
        assert settings.REFRESH_TOKEN_EXPIRE_DAYS == 30
        assert settings.PENDING_2FA_TOKEN_EXPIRE_SECONDS == 720
        assert settings.TWO_FA_MAX_FAILED_ATTEMPTS == 5
        assert settings.RECOVERY_CODE_COUNT == 10
        assert settings.REFRESH_COOKIE_NAME == "refresh-token"
        assert len(settings.two_fa_master_key_bytes) == 32

    def test_settings_are_frozen(self, settings_factory):
        settings = settings_factory()
        with pytest.raises(ValidationError):
            settings.DEBUG = True

    def test_master_key_must_be_base64(self, settings_factory):
        with pytest.raises(ValidationError, match="base64"):
            settings_factory(TWO_FA_MASTER_KEY="not base64!!")

    def test_master_key_length(self, settings_factory):
        with pytest.raises(ValidationError, match="16, 24 or 32 bytes"):
            settings_factory(TWO_FA_MASTER_KEY=base64.b64encode(b"short").decode())

    def test_empty_jwt_secret(self, settings_factory):
        with pytest.raises(ValidationError):
            settings_factory(JWT_ACCESS_SECRET="")

    def test_short_secret_rejected_in_production(self, settings_factory, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        with pytest.raises(ValidationError, match="Insecure JWT secret"):
            settings_factory(ENVIRONMENT="production", JWT_REFRESH_SECRET="short")

    def test_short_secret_allowed_in_development(self, settings_factory, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "development")
        settings = settings_factory(JWT_REFRESH_SECRET="short")
        assert settings.JWT_REFRESH_SECRET == "short"
