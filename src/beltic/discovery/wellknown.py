"""Well-known location and media type of the HTTP message signatures directory."""

from __future__ import annotations

from beltic.http_signatures.models import KEY_DIRECTORY_PATH

DIRECTORY_CONTENT_TYPE = "application/http-message-signatures-directory+json"
"""Content-Type of the key directory document."""

DIRECTORY_SIGNATURE_TAG = "http-message-signatures-directory"
"""``tag`` parameter of the directory response signature."""

CACHE_MAX_AGE_SECONDS = 300
"""Default directory signature lifetime; also the Cache-Control max-age."""


def key_directory_url(authority: str) -> str:
    """HTTPS URL of the key directory served by ``authority`` (host[:port])."""
    return f"https://{authority}{KEY_DIRECTORY_PATH}"


def cache_control_value(max_age: int = CACHE_MAX_AGE_SECONDS) -> str:
    return f"max-age={max_age}"


__all__ = [
    "CACHE_MAX_AGE_SECONDS",
    "DIRECTORY_CONTENT_TYPE",
    "DIRECTORY_SIGNATURE_TAG",
    "KEY_DIRECTORY_PATH",
    "cache_control_value",
    "key_directory_url",
]
