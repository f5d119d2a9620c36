"""Tests for environment-driven settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from nominal_ops.domain.ledger.entities import Layer
from nominal_ops.envs.settings import Settings, get_settings

LEDGER_ENV = (
    "LEDGER_PRE_PRIVATE_KEY_PEM",
    "LEDGER_PRE_SIGN_SYSTEM",
    "LEDGER_PRE_SIGN_THUMBPRINT",
    "LEDGER_PROD_PRIVATE_KEY_PEM",
    "LEDGER_PROD_SIGN_SYSTEM",
    "LEDGER_PROD_SIGN_THUMBPRINT",
    "LEDGER_PRE_URL",
    "LEDGER_PROD_URL",
    "LEDGER_TIMEOUT_SECONDS",
    "LEDGER_CACHE_TTL_SECONDS",
    "API_DEBUG",
    "API_CORS_ORIGINS",
    "API_PORT",
    "VENDING_API_KEY",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in LEDGER_ENV:
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_environment() -> None:
    settings = get_settings()

    assert settings.credentials() == {}
    assert settings.endpoints() == {}
    assert settings.ledger_timeout_seconds == 15.0
    assert settings.ledger_cache_ttl_seconds == 300.0
    assert settings.vending_api_key is None


def test_layer_credentials_from_env(
    monkeypatch: pytest.MonkeyPatch, private_key_pem: str
) -> None:
    one_line_pem = private_key_pem.replace("\n", "\\n")
    monkeypatch.setenv("LEDGER_PRE_PRIVATE_KEY_PEM", one_line_pem)
    monkeypatch.setenv("LEDGER_PRE_SIGN_SYSTEM", "platform")
    monkeypatch.setenv("LEDGER_PRE_SIGN_THUMBPRINT", "THUMB")
    monkeypatch.setenv("LEDGER_PRE_URL", "https://proxy.test/jsonrpc")

    settings = get_settings()

    assert list(settings.credentials()) == [Layer.PRE]
    assert settings.ledger_pre is not None
    assert settings.ledger_pre.private_key_pem == private_key_pem
    assert settings.ledger_pre.sign_system == "platform"
    assert settings.endpoints() == {Layer.PRE: "https://proxy.test/jsonrpc"}


def test_incomplete_layer_is_unconfigured(
    monkeypatch: pytest.MonkeyPatch, private_key_pem: str
) -> None:
    monkeypatch.setenv("LEDGER_PROD_PRIVATE_KEY_PEM", private_key_pem)
    monkeypatch.setenv("LEDGER_PROD_SIGN_SYSTEM", "platform")

    assert get_settings().ledger_prod is None


def test_invalid_private_key_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LEDGER_PRE_PRIVATE_KEY_PEM", "not a key")
    monkeypatch.setenv("LEDGER_PRE_SIGN_SYSTEM", "platform")
    monkeypatch.setenv("LEDGER_PRE_SIGN_THUMBPRINT", "THUMB")

    with pytest.raises(ValidationError, match="Invalid ledger private key PEM"):
        get_settings()


def test_non_rsa_key_rejected(
    monkeypatch: pytest.MonkeyPatch, ec_private_key_pem: str
) -> None:
    monkeypatch.setenv("LEDGER_PROD_PRIVATE_KEY_PEM", ec_private_key_pem)
    monkeypatch.setenv("LEDGER_PROD_SIGN_SYSTEM", "platform")
    monkeypatch.setenv("LEDGER_PROD_SIGN_THUMBPRINT", "THUMB")

    with pytest.raises(ValidationError, match="must be RSA"):
        get_settings()


def test_api_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("API_DEBUG", "TRUE")
    monkeypatch.setenv("API_CORS_ORIGINS", "https://a.test,https://b.test")
    monkeypatch.setenv("API_PORT", "9000")
    monkeypatch.setenv("LEDGER_TIMEOUT_SECONDS", "30")

    settings = get_settings()

    assert settings.api_debug is True
    assert settings.api_cors_origins == ["https://a.test", "https://b.test"]
    assert settings.api_port == 9000
    assert settings.ledger_timeout_seconds == 30.0


def test_non_positive_timeout_rejected() -> None:
    with pytest.raises(ValidationError, match="must be positive"):
        Settings(ledger_timeout_seconds=0)
