"""Beltic Cryptographic Layer.

Key management and key identification shared by credential tokens, HTTP
message signatures and key directories:
- Algorithm: closed enum over EdDSA (Ed25519) and ES256 (P-256)
- Key generation, PEM (PKCS#8 / SPKI) serialization, scoped private keys
- RFC 7638 JWK thumbprints (JCS canonicalization, RFC 8785)

Public exports:
    algorithms: Algorithm enum and raw sign/verify dispatch
    keys: SigningKey, VerificationKey and PEM helpers
    thumbprint: thumbprint and public_jwk
"""

from beltic.crypto import algorithms, keys, thumbprint
from beltic.crypto.algorithms import Algorithm
from beltic.crypto.keys import (
    KeyManager,
    SigningKey,
    VerificationKey,
    decode_private_key,
    decode_public_key,
    encode_private_key,
    encode_public_key,
    generate_keypair,
)
from beltic.crypto.thumbprint import public_jwk

__all__ = [
    "algorithms",
    "keys",
    "thumbprint",
    "Algorithm",
    "KeyManager",
    "SigningKey",
    "VerificationKey",
    "decode_private_key",
    "decode_public_key",
    "encode_private_key",
    "encode_public_key",
    "generate_keypair",
    "public_jwk",
]
