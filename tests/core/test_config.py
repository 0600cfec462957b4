from __future__ import annotations

import pytest

from tenant_access.core.config import load_settings

_VARS = (
    "APP_ENV",
    "LOG_LEVEL",
    "LOG_JSON",
    "PORT",
    "DATABASE_URL",
    "REDIS_URL",
    "INVITE_TTL_DAYS",
    "TENANT_FALLBACK",
    "DEFAULT_SEAT_LIMIT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


# ---- valid values ----


def test_load_settings_defaults() -> None:
    settings = load_settings()
    assert settings.app_env == "dev"
    assert settings.log_level == "info"
    assert settings.log_json is False
    assert settings.port == 8000
    assert settings.database_url is None
    assert settings.redis_url is None
    assert settings.invite_ttl_days == 7
    assert settings.tenant_fallback == "deny"
    assert settings.default_seat_limit == 5
    assert settings.is_dev


def test_load_settings_respects_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.setenv("LOG_LEVEL", "error")
    monkeypatch.setenv("LOG_JSON", "true")
    monkeypatch.setenv("INVITE_TTL_DAYS", "14")
    monkeypatch.setenv("TENANT_FALLBACK", "personal")
    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://db/tenants")
    settings = load_settings()
    assert settings.is_prod
    assert settings.log_level == "error"
    assert settings.log_json is True
    assert settings.invite_ttl_days == 14
    assert settings.tenant_fallback == "personal"
    assert settings.database_url == "postgresql+asyncpg://db/tenants"


def test_load_settings_normalizes_case_and_whitespace(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "  TEST ")
    monkeypatch.setenv("TENANT_FALLBACK", " DENY ")
    settings = load_settings()
    assert settings.app_env == "test"
    assert settings.tenant_fallback == "deny"


def test_blank_urls_mean_not_configured(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "   ")
    monkeypatch.setenv("REDIS_URL", "")
    settings = load_settings()
    assert settings.database_url is None
    assert settings.redis_url is None


# ---- invalid values ----


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("APP_ENV", "staging", "APP_ENV must be dev|test|prod"),
        ("LOG_LEVEL", "verbose", "LOG_LEVEL must be debug|info|warning|error"),
        ("TENANT_FALLBACK", "open", "TENANT_FALLBACK must be deny|personal"),
        ("PORT", "eighty", "PORT must be an integer"),
        ("INVITE_TTL_DAYS", "soon", "INVITE_TTL_DAYS must be an integer"),
        ("INVITE_TTL_DAYS", "0", "INVITE_TTL_DAYS must be >= 1"),
        ("DEFAULT_SEAT_LIMIT", "-3", "DEFAULT_SEAT_LIMIT must be >= 1"),
        ("LOG_JSON", "maybe", "LOG_JSON must be a boolean"),
    ],
)
def test_load_settings_rejects_invalid_values(
    monkeypatch: pytest.MonkeyPatch, name: str, value: str, message: str
) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError, match=message.replace("|", r"\|")):
        load_settings()
