"""Base64url (RFC 4648 §5, unpadded) and standard base64 helpers."""

from __future__ import annotations

import base64
import binascii
import re

_B64URL_PATTERN = re.compile(r"^[A-Za-z0-9_-]*$")


def b64url_encode(data: bytes) -> str:
    """Encode bytes as base64url without padding."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(value: str) -> bytes:
    """Decode unpadded base64url, accepting only the canonical encoding.

    Raises ValueError for padding, characters outside the URL-safe alphabet,
    impossible lengths, or non-zero trailing bits (which would let two
    different strings decode to the same bytes).
    """
    if not _B64URL_PATTERN.match(value):
        raise ValueError("invalid base64url characters")
    if len(value) % 4 == 1:
        raise ValueError("invalid base64url length")
    try:
        decoded = base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))
    except binascii.Error as e:
        raise ValueError(f"invalid base64url: {e}") from e
    if b64url_encode(decoded) != value:
        raise ValueError("non-canonical base64url encoding")
    return decoded


def b64_encode(data: bytes) -> str:
    """Standard base64 with padding (structured-field byte sequences, RFC 8941)."""
    return base64.b64encode(data).decode("ascii")


def b64_decode(value: str) -> bytes:
    """Decode standard base64 strictly. Raises ValueError when invalid."""
    try:
        return base64.b64decode(value, validate=True)
    except binascii.Error as e:
        raise ValueError(f"invalid base64: {e}") from e
