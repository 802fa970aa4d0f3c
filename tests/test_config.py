"""Tests for settings parsing and production checks."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from app.core.config import DEFAULT_JWT_SECRET, EnvironmentMode, Settings


def test_defaults():
    settings = Settings(_env_file=None, jwt_secret_key=DEFAULT_JWT_SECRET, env_mode="development")

    assert settings.is_development
    assert settings.default_currency == "INR"
    assert settings.default_tax_rate == Decimal("0.05")
    assert settings.validate_production_config() == []


def test_env_mode_is_case_insensitive():
    settings = Settings(_env_file=None, env_mode="PRODUCTION")

    assert settings.env_mode == EnvironmentMode.PRODUCTION
    assert settings.use_real_services


def test_invalid_env_mode():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, env_mode="qa")


def test_currency_is_upper_cased():
    assert Settings(_env_file=None, default_currency="usd").default_currency == "USD"


def test_production_requires_secrets():
    settings = Settings(
        _env_file=None,
        env_mode="staging",
        jwt_secret_key=DEFAULT_JWT_SECRET,
        google_client_id=None,
    )

    assert settings.validate_production_config() == ["JWT_SECRET_KEY", "GOOGLE_CLIENT_ID"]


def test_tax_rate_must_be_a_fraction():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, default_tax_rate="5")
