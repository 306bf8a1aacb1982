"""Shared helpers for Beltic."""

from beltic.utils.encoding import b64_decode, b64_encode, b64url_decode, b64url_encode

__all__ = ["b64_decode", "b64_encode", "b64url_decode", "b64url_encode"]
