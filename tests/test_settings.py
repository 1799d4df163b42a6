"""
Unit tests for settings.
"""
import pytest
from pydantic import ValidationError

from kpay_payments.config import Settings


class TestSettings:
    """Test suite for Settings."""

    @pytest.mark.unit
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test defaults match the gateway's documented values."""
        for name in ("KPAY_TOKEN", "KPAY_HASH", "KPAY_ENTITY", "KPAY_SANDBOX_MODE"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.entity == "0000"
        assert settings.factory_bag == "Content"
        assert settings.currency == "AOA"
        assert settings.reference_expiry_hours == 24
        assert settings.timeout == 30.0
        assert settings.webhook_path == "/api/kpay/webhook"
        assert settings.missing_credentials() == ["token", "hash"]

    @pytest.mark.unit
    def test_environment_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test KPAY_* variables are read."""
        monkeypatch.setenv("KPAY_TOKEN", "env-token")
        monkeypatch.setenv("KPAY_HASH", "env-hash")
        monkeypatch.setenv("KPAY_SANDBOX_MODE", "false")
        monkeypatch.setenv("KPAY_CURRENCY", "usd")

        settings = Settings(_env_file=None)

        assert settings.token == "env-token"
        assert settings.sandbox_mode is False
        assert settings.currency == "USD"
        assert settings.missing_credentials() == []

    @pytest.mark.unit
    def test_api_base_url_follows_mode(self) -> None:
        sandbox = Settings(_env_file=None, sandbox_mode=True, sandbox_url="https://sandbox.test/")
        production = Settings(_env_file=None, sandbox_mode=False, base_url="https://api.test")

        assert sandbox.api_base_url == "https://sandbox.test"
        assert production.api_base_url == "https://api.test"

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "overrides",
        [
            {"timeout": 0},
            {"reference_expiry_hours": -1},
            {"log_level": "LOUD"},
        ],
    )
    def test_invalid_values(self, overrides: dict) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **overrides)

    @pytest.mark.unit
    def test_is_production(self) -> None:
        assert Settings(_env_file=None, app_env="Production").is_production is True
        assert Settings(_env_file=None, app_env="development").is_production is False
