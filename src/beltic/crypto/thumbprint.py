"""JWK thumbprints (RFC 7638) used as key identifiers.

The thumbprint is the base64url (unpadded) SHA-256 of the JCS-canonical
(RFC 8785) JSON object holding only the required JWK members of the public
key: ``crv, kty, x`` for OKP keys and ``crv, kty, x, y`` for EC keys. Any
party holding the public key alone can derive it.
"""

import hashlib
from typing import cast

import jcs

from beltic.crypto.keys import VerificationKey
from beltic.utils.encoding import b64url_encode

THUMBPRINT_LENGTH = 43
"""Length of a base64url-encoded SHA-256 digest without padding."""


def public_jwk(key: VerificationKey) -> dict[str, str]:
    """Required public JWK members for ``key`` (RFC 7517 / RFC 8037)."""
    jwk: dict[str, str] = {
        "kty": key.algorithm.key_type,
        "crv": key.algorithm.curve,
    }
    for member, value in key.algorithm.public_coordinates(key.raw).items():
        jwk[member] = b64url_encode(value)
    return jwk


def canonical_jwk(key: VerificationKey) -> bytes:
    return cast(bytes, jcs.canonicalize(public_jwk(key)))


def thumbprint(key: VerificationKey) -> str:
    """RFC 7638 SHA-256 thumbprint of ``key``; deterministic and side-effect free."""
    digest = hashlib.sha256(canonical_jwk(key)).digest()
    return b64url_encode(digest)
