"""Tests for BELTIC_* environment settings."""

import pytest

from beltic.config import (
    ENV_CLOCK_LEEWAY,
    ENV_DEFAULT_ALG,
    ENV_HTTP_SIGNATURE_TTL,
    BelticSettings,
    get_settings,
)
from beltic.crypto.algorithms import Algorithm
from beltic.errors import ConfigurationError


def test_defaults() -> None:
    settings = BelticSettings.from_env({})
    assert settings.http_signature_ttl == 60
    assert settings.directory_ttl == 300
    assert settings.clock_leeway == 0
    assert settings.key_rotation_days == 365
    assert settings.default_algorithm is Algorithm.EDDSA


def test_values_from_environment() -> None:
    settings = BelticSettings.from_env(
        {
            ENV_HTTP_SIGNATURE_TTL: "120",
            ENV_CLOCK_LEEWAY: " 5 ",
            ENV_DEFAULT_ALG: "ecdsa-p256-sha256",
        }
    )
    assert settings.http_signature_ttl == 120
    assert settings.clock_leeway == 5
    assert settings.default_algorithm is Algorithm.ES256


def test_blank_values_use_defaults() -> None:
    assert BelticSettings.from_env({ENV_HTTP_SIGNATURE_TTL: "  "}).http_signature_ttl == 60


@pytest.mark.parametrize(
    ("name", "value"),
    [
        (ENV_HTTP_SIGNATURE_TTL, "0"),
        (ENV_HTTP_SIGNATURE_TTL, "soon"),
        (ENV_CLOCK_LEEWAY, "-1"),
        (ENV_DEFAULT_ALG, "RS256"),
    ],
)
def test_invalid_values(name: str, value: str) -> None:
    """Invalid values name the offending variable."""
    with pytest.raises(ConfigurationError) as exc_info:
        BelticSettings.from_env({name: value})
    assert exc_info.value.details["variables"] == [name]


def test_settings_are_frozen() -> None:
    settings = BelticSettings()
    with pytest.raises(ValueError):
        settings.clock_leeway = 3  # type: ignore[misc]


def test_get_settings_reads_os_environ(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(ENV_CLOCK_LEEWAY, "7")
    assert get_settings().clock_leeway == 7
