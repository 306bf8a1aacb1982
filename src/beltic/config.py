"""Runtime settings resolved from ``BELTIC_*`` environment variables.

Environment variables:
    BELTIC_HTTP_SIGNATURE_TTL: Request signature lifetime in seconds (default 60)
    BELTIC_DIRECTORY_TTL: Directory signature lifetime / max-age in seconds (default 300)
    BELTIC_CLOCK_LEEWAY: Clock skew tolerated by verifiers in seconds (default 0)
    BELTIC_KEY_ROTATION_DAYS: Key age that triggers a rotation warning (default 365)
    BELTIC_DEFAULT_ALG: Algorithm for new keys, ``EdDSA`` or ``ES256`` (default EdDSA)
"""

from __future__ import annotations

import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from beltic.crypto.algorithms import Algorithm
from beltic.errors import ConfigurationError

ENV_HTTP_SIGNATURE_TTL = "BELTIC_HTTP_SIGNATURE_TTL"
ENV_DIRECTORY_TTL = "BELTIC_DIRECTORY_TTL"
ENV_CLOCK_LEEWAY = "BELTIC_CLOCK_LEEWAY"
ENV_KEY_ROTATION_DAYS = "BELTIC_KEY_ROTATION_DAYS"
ENV_DEFAULT_ALG = "BELTIC_DEFAULT_ALG"

_ENV_FIELDS = {
    ENV_HTTP_SIGNATURE_TTL: "http_signature_ttl",
    ENV_DIRECTORY_TTL: "directory_ttl",
    ENV_CLOCK_LEEWAY: "clock_leeway",
    ENV_KEY_ROTATION_DAYS: "key_rotation_days",
    ENV_DEFAULT_ALG: "default_algorithm",
}


class BelticSettings(BaseModel):
    """Validated settings; construct with ``from_env()``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    http_signature_ttl: int = Field(default=60, gt=0)
    directory_ttl: int = Field(default=300, gt=0)
    clock_leeway: int = Field(default=0, ge=0)
    key_rotation_days: int = Field(default=365, gt=0)
    default_algorithm: Algorithm = Algorithm.EDDSA

    @field_validator("default_algorithm", mode="before")
    @classmethod
    def _parse_algorithm(cls, value: object) -> object:
        if isinstance(value, str):
            return Algorithm.from_label(value)
        return value

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> BelticSettings:
        """Read settings from ``environ`` (default ``os.environ``).

        Raises:
            ConfigurationError: If a variable holds an invalid value.
        """
        env = os.environ if environ is None else environ
        values = {
            field: env[name].strip()
            for name, field in _ENV_FIELDS.items()
            if env.get(name, "").strip()
        }
        try:
            return cls.model_validate(values)
        except ValidationError as e:
            invalid = sorted(
                name
                for name, field in _ENV_FIELDS.items()
                if any(err["loc"] and err["loc"][0] == field for err in e.errors())
            )
            raise ConfigurationError(
                f"Invalid environment configuration: {', '.join(invalid)}",
                details={"variables": invalid},
            ) from e


def get_settings() -> BelticSettings:
    return BelticSettings.from_env()
