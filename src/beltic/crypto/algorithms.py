"""Signature algorithms supported for credentials and HTTP message signatures.

``Algorithm`` is a closed enumeration. Every operation dispatches on the tag,
so a key of one family is never accepted where the other is expected.

* ``EDDSA`` - Ed25519 (RFC 8032), JOSE ``EdDSA`` (RFC 8037), RFC 9421 ``ed25519``.
* ``ES256`` - ECDSA P-256 / SHA-256, JOSE ``ES256`` (raw ``r || s`` signatures),
  RFC 9421 ``ecdsa-p256-sha256``.

Private keys are handled as raw bytes: the 32-byte Ed25519 seed or the 32-byte
big-endian P-256 scalar. Public keys are the 32-byte Ed25519 point or the
65-byte uncompressed SEC1 P-256 point.
"""

from __future__ import annotations

from enum import Enum
from typing import Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

PrivateKeyObject = Union[Ed25519PrivateKey, ec.EllipticCurvePrivateKey]
PublicKeyObject = Union[Ed25519PublicKey, ec.EllipticCurvePublicKey]

_P256_COORDINATE_LENGTH = 32


class Algorithm(str, Enum):
    """Closed set of signature algorithms; the value is the JOSE ``alg`` label."""

    EDDSA = "EdDSA"
    ES256 = "ES256"

    def __str__(self) -> str:
        return self.value

    @property
    def jose_label(self) -> str:
        return self.value

    @property
    def http_label(self) -> str:
        """Algorithm name from the HTTP Signature Algorithms registry (RFC 9421)."""
        return _HTTP_LABELS[self]

    @property
    def key_type(self) -> str:
        return "OKP" if self is Algorithm.EDDSA else "EC"

    @property
    def curve(self) -> str:
        return "Ed25519" if self is Algorithm.EDDSA else "P-256"

    @property
    def signature_length(self) -> int:
        return 64

    @property
    def public_key_length(self) -> int:
        return 32 if self is Algorithm.EDDSA else 1 + 2 * _P256_COORDINATE_LENGTH

    @property
    def private_key_length(self) -> int:
        return 32

    @classmethod
    def from_label(cls, label: str) -> Algorithm:
        """Resolve a JOSE or RFC 9421 label (case-insensitive).

        Raises ValueError for unknown labels.
        """
        normalized = label.strip().lower()
        for alg in cls:
            if normalized in (alg.value.lower(), alg.http_label):
                return alg
        raise ValueError(f"unknown algorithm '{label}', expected EdDSA or ES256")

    @classmethod
    def from_jose(cls, label: str) -> Algorithm:
        """Exact JOSE ``alg`` lookup, used on untrusted token headers."""
        for alg in cls:
            if alg.value == label:
                return alg
        raise ValueError(f"unsupported JWS alg: {label!r}")

    @classmethod
    def from_http(cls, label: str) -> Algorithm:
        """Exact RFC 9421 ``alg`` lookup, used on untrusted signature parameters."""
        for alg in cls:
            if alg.http_label == label:
                return alg
        raise ValueError(f"unsupported HTTP signature alg: {label!r}")

    @classmethod
    def of_key(cls, key: PrivateKeyObject | PublicKeyObject) -> Algorithm | None:
        """Algorithm of a ``cryptography`` key object, or None if unsupported."""
        if isinstance(key, (Ed25519PrivateKey, Ed25519PublicKey)):
            return cls.EDDSA
        if isinstance(key, (ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey)):
            if isinstance(key.curve, ec.SECP256R1):
                return cls.ES256
        return None

    def describe_key(self) -> str:
        return f"{self.key_type}/{self.curve}"

    # -- key objects -------------------------------------------------------

    def generate_private_key(self) -> PrivateKeyObject:
        """Generate a key from the OS CSPRNG; entropy failures propagate."""
        if self is Algorithm.EDDSA:
            return Ed25519PrivateKey.generate()
        return ec.generate_private_key(ec.SECP256R1())

    def private_key_from_raw(self, raw: bytes | bytearray) -> PrivateKeyObject:
        """Key object for one operation.

        The Ed25519 path passes an immutable ``bytes`` copy of the seed to
        ``cryptography``; that copy (and the key object) cannot be zeroed by
        ``SigningKey.release()`` and is only freed when garbage collected.
        """
        if len(raw) != self.private_key_length:
            raise ValueError(
                f"{self.value} private key must be {self.private_key_length} bytes, got {len(raw)}"
            )
        if self is Algorithm.EDDSA:
            return Ed25519PrivateKey.from_private_bytes(bytes(raw))
        return ec.derive_private_key(int.from_bytes(raw, "big"), ec.SECP256R1())

    def private_key_to_raw(self, key: PrivateKeyObject) -> bytearray:
        """Raw private bytes in a mutable buffer the caller is expected to zero."""
        if self is Algorithm.EDDSA:
            assert isinstance(key, Ed25519PrivateKey)
            return bytearray(
                key.private_bytes(
                    encoding=serialization.Encoding.Raw,
                    format=serialization.PrivateFormat.Raw,
                    encryption_algorithm=serialization.NoEncryption(),
                )
            )
        assert isinstance(key, ec.EllipticCurvePrivateKey)
        scalar = key.private_numbers().private_value
        return bytearray(scalar.to_bytes(self.private_key_length, "big"))

    def public_key_from_raw(self, raw: bytes) -> PublicKeyObject:
        if len(raw) != self.public_key_length:
            raise ValueError(
                f"{self.value} public key must be {self.public_key_length} bytes, got {len(raw)}"
            )
        if self is Algorithm.EDDSA:
            return Ed25519PublicKey.from_public_bytes(raw)
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), raw)

    def public_key_to_raw(self, key: PublicKeyObject) -> bytes:
        if self is Algorithm.EDDSA:
            return key.public_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PublicFormat.Raw,
            )
        return key.public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.UncompressedPoint,
        )

    def public_coordinates(self, raw: bytes) -> dict[str, bytes]:
        """JWK coordinate members (``x`` or ``x``/``y``) of a raw public key."""
        if self is Algorithm.EDDSA:
            return {"x": raw}
        return {
            "x": raw[1 : 1 + _P256_COORDINATE_LENGTH],
            "y": raw[1 + _P256_COORDINATE_LENGTH :],
        }

    def public_key_from_coordinates(self, x: bytes, y: bytes | None = None) -> bytes:
        """Inverse of public_coordinates; returns raw public bytes."""
        if self is Algorithm.EDDSA:
            return x
        if y is None:
            raise ValueError("EC public key requires both x and y coordinates")
        if len(x) != _P256_COORDINATE_LENGTH or len(y) != _P256_COORDINATE_LENGTH:
            raise ValueError("P-256 coordinates must be 32 bytes each")
        return b"\x04" + x + y

    # -- raw sign / verify -------------------------------------------------

    def sign(self, private_raw: bytes | bytearray, message: bytes) -> bytes:
        key = self.private_key_from_raw(private_raw)
        if self is Algorithm.EDDSA:
            assert isinstance(key, Ed25519PrivateKey)
            signature = key.sign(message)
        else:
            assert isinstance(key, ec.EllipticCurvePrivateKey)
            der = key.sign(message, ec.ECDSA(hashes.SHA256()))
            r, s = decode_dss_signature(der)
            signature = r.to_bytes(_P256_COORDINATE_LENGTH, "big") + s.to_bytes(
                _P256_COORDINATE_LENGTH, "big"
            )
        assert len(signature) == self.signature_length
        return signature

    def verify(self, public_raw: bytes, signature: bytes, message: bytes) -> bool:
        """Return True iff ``signature`` is valid for ``message`` under ``public_raw``."""
        if len(signature) != self.signature_length:
            return False
        try:
            key = self.public_key_from_raw(public_raw)
        except ValueError:
            return False
        try:
            if self is Algorithm.EDDSA:
                assert isinstance(key, Ed25519PublicKey)
                key.verify(signature, message)
            else:
                assert isinstance(key, ec.EllipticCurvePublicKey)
                r = int.from_bytes(signature[:_P256_COORDINATE_LENGTH], "big")
                s = int.from_bytes(signature[_P256_COORDINATE_LENGTH:], "big")
                key.verify(encode_dss_signature(r, s), message, ec.ECDSA(hashes.SHA256()))
        except InvalidSignature:
            return False
        return True


_HTTP_LABELS: dict[Algorithm, str] = {
    Algorithm.EDDSA: "ed25519",
    Algorithm.ES256: "ecdsa-p256-sha256",
}
