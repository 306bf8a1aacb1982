"""Key generation, PEM (de)serialization, and scoped private key handling.

``SigningKey`` exclusively owns its raw private bytes in a mutable buffer and
overwrites them with zeros on ``release()``. Use it as a context manager so
the bytes are cleared on every exit path::

    with decode_private_key(pem, Algorithm.EDDSA) as key:
        signature = key.sign(message)

``VerificationKey`` is a frozen value holding public bytes only.

Zeroing is best effort: ``cryptography`` and ``joserfc`` key objects built
from the buffer for a single operation keep their own immutable copies,
which are freed (not wiped) with those objects.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from types import TracebackType
from typing import Optional, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import (
    load_pem_private_key,
    load_pem_public_key,
)
from joserfc.jwk import ECKey, OKPKey
from pydantic import BaseModel

from beltic.crypto.algorithms import Algorithm
from beltic.errors import AlgorithmMismatchError, KeyFormatError
from beltic.observability import get_logger
from beltic.utils.encoding import b64url_encode

logger = get_logger(__name__)

# Age in days after which to log a key rotation warning.
KEY_ROTATION_WARNING_DAYS = 365
# Mode for private key files (owner read/write only).
KEY_FILE_MODE = 0o600


def zeroize(buffer: bytearray) -> None:
    """Overwrite every byte of ``buffer`` with zero, in place."""
    for index in range(len(buffer)):
        buffer[index] = 0


def _jwk_members(algorithm: Algorithm, public_raw: bytes) -> dict[str, str]:
    members = {"kty": algorithm.key_type, "crv": algorithm.curve}
    for name, value in algorithm.public_coordinates(public_raw).items():
        members[name] = b64url_encode(value)
    return members


def _import_jose_key(algorithm: Algorithm, members: dict[str, str]) -> Union[OKPKey, ECKey]:
    if algorithm is Algorithm.EDDSA:
        return OKPKey.import_key(members)
    return ECKey.import_key(members)


class SigningKey:
    """Private key tagged with its Algorithm; owns and zeroes its raw bytes."""

    __slots__ = ("_algorithm", "_raw", "_released")

    def __init__(self, algorithm: Algorithm, raw: Union[bytes, bytearray]) -> None:
        if not isinstance(raw, bytearray):
            raw = bytearray(raw)
        if len(raw) != algorithm.private_key_length:
            length = len(raw)
            zeroize(raw)
            raise KeyFormatError(
                f"{algorithm.value} private key must be {algorithm.private_key_length} bytes",
                details={"length": length},
            )
        self._algorithm = algorithm
        self._raw = raw
        self._released = False

    @property
    def algorithm(self) -> Algorithm:
        return self._algorithm

    @property
    def released(self) -> bool:
        return self._released

    def _require_live(self) -> bytearray:
        if self._released:
            raise KeyFormatError("signing key has been released")
        return self._raw

    def sign(self, message: bytes) -> bytes:
        """Sign ``message`` with this key's algorithm."""
        return self._algorithm.sign(self._require_live(), message)

    def verification_key(self) -> VerificationKey:
        private = self._algorithm.private_key_from_raw(self._require_live())
        public_raw = self._algorithm.public_key_to_raw(private.public_key())
        return VerificationKey(algorithm=self._algorithm, raw=public_raw)

    def jose_key(self) -> Union[OKPKey, ECKey]:
        """Private JWK (``OKPKey`` or ``ECKey``) for joserfc signing."""
        members = _jwk_members(self._algorithm, self.verification_key().raw)
        members["d"] = b64url_encode(bytes(self._require_live()))
        return _import_jose_key(self._algorithm, members)

    def release(self) -> None:
        """Zero the private bytes; the key is unusable afterwards. Idempotent."""
        if not self._released:
            zeroize(self._raw)
            self._released = True

    def __enter__(self) -> SigningKey:
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.release()

    def __del__(self) -> None:
        try:
            self.release()
        except AttributeError:
            pass

    def __repr__(self) -> str:
        state = "released" if self._released else "live"
        return f"SigningKey(algorithm={self._algorithm.value}, {state})"

    def __reduce__(self) -> tuple[object, ...]:
        raise TypeError("SigningKey cannot be pickled")


@dataclass(frozen=True)
class VerificationKey:
    """Public key tagged with its Algorithm (raw Ed25519 point or SEC1 P-256 point)."""

    algorithm: Algorithm
    raw: bytes

    def __post_init__(self) -> None:
        try:
            self.algorithm.public_key_from_raw(self.raw)
        except ValueError as e:
            raise KeyFormatError(str(e)) from e

    def verify(self, signature: bytes, message: bytes) -> bool:
        return self.algorithm.verify(self.raw, signature, message)

    def jose_key(self) -> Union[OKPKey, ECKey]:
        """Public JWK (``OKPKey`` or ``ECKey``) for joserfc verification."""
        return _import_jose_key(self.algorithm, _jwk_members(self.algorithm, self.raw))


class KeyMetadata(BaseModel):
    """Key creation time (or file mtime); used for rotation/audit."""

    created_at: datetime


def generate_keypair(
    algorithm: Algorithm = Algorithm.EDDSA,
) -> tuple[SigningKey, VerificationKey]:
    """Generate a key pair from the OS CSPRNG.

    Entropy-source failures are not caught: they are fatal.
    """
    private = algorithm.generate_private_key()
    signing_key = SigningKey(algorithm, algorithm.private_key_to_raw(private))
    public_raw = algorithm.public_key_to_raw(private.public_key())
    return signing_key, VerificationKey(algorithm=algorithm, raw=public_raw)


def encode_private_key(key: SigningKey) -> str:
    """PEM (PKCS#8, unencrypted)."""
    private = key.algorithm.private_key_from_raw(key._require_live())
    pem: bytes = private.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return pem.decode("ascii")


def encode_public_key(key: VerificationKey) -> str:
    """PEM (SubjectPublicKeyInfo)."""
    public = key.algorithm.public_key_from_raw(key.raw)
    pem: bytes = public.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return pem.decode("ascii")


def encode_key(key: Union[SigningKey, VerificationKey]) -> str:
    if isinstance(key, SigningKey):
        return encode_private_key(key)
    return encode_public_key(key)


def _as_pem_bytes(text: Union[str, bytes]) -> bytes:
    if isinstance(text, str):
        return text.strip().encode("utf-8")
    return text.strip()


def _check_algorithm(actual: Optional[Algorithm], expected: Optional[Algorithm]) -> Algorithm:
    if actual is None:
        raise KeyFormatError("unsupported key type (expected Ed25519 or P-256)")
    if expected is not None and actual is not expected:
        raise AlgorithmMismatchError(
            expected=f"{expected.value} ({expected.describe_key()})",
            actual=f"{actual.value} ({actual.describe_key()})",
        )
    return actual


def decode_private_key(
    text: Union[str, bytes],
    expected_algorithm: Optional[Algorithm] = None,
) -> SigningKey:
    """From PKCS#8 (or SEC1 for P-256) PEM.

    Raises KeyFormatError if the PEM is malformed or encrypted, and
    AlgorithmMismatchError if the key's curve differs from ``expected_algorithm``.
    """
    try:
        private = load_pem_private_key(_as_pem_bytes(text), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyFormatError("could not parse private key PEM") from e
    algorithm = _check_algorithm(Algorithm.of_key(private), expected_algorithm)  # type: ignore[arg-type]
    return SigningKey(algorithm, algorithm.private_key_to_raw(private))  # type: ignore[arg-type]


def decode_public_key(
    text: Union[str, bytes],
    expected_algorithm: Optional[Algorithm] = None,
) -> VerificationKey:
    """From SPKI PEM. Raises KeyFormatError / AlgorithmMismatchError."""
    try:
        public = load_pem_public_key(_as_pem_bytes(text))
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyFormatError("could not parse public key PEM") from e
    algorithm = _check_algorithm(Algorithm.of_key(public), expected_algorithm)  # type: ignore[arg-type]
    return VerificationKey(algorithm=algorithm, raw=algorithm.public_key_to_raw(public))  # type: ignore[arg-type]


def decode_verification_key(
    text: Union[str, bytes],
    expected_algorithm: Optional[Algorithm] = None,
) -> VerificationKey:
    """Public key from either a public PEM or a private PEM (public half derived)."""
    if b"PRIVATE KEY" in _as_pem_bytes(text):
        with decode_private_key(text, expected_algorithm) as private:
            return private.verification_key()
    return decode_public_key(text, expected_algorithm)


def write_private_key(path: Union[str, Path], key: SigningKey) -> Path:
    """Write PKCS#8 PEM with owner-only permissions (0600).

    Failure to set the permission is logged as a warning; I/O errors of the
    write itself propagate.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    pem = bytearray(encode_private_key(key).encode("ascii"))
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, KEY_FILE_MODE)
        with os.fdopen(fd, "wb") as fh:
            fh.write(pem)
    finally:
        zeroize(pem)
    try:
        path.chmod(KEY_FILE_MODE)
    except OSError as exc:
        logger.warning(
            "beltic.keys.permissions_not_set",
            path=str(path),
            error=str(exc),
            recommended=oct(KEY_FILE_MODE),
        )
    return path


def write_public_key(path: Union[str, Path], key: VerificationKey) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(encode_public_key(key), encoding="ascii")
    return path


def get_key_metadata_from_file(path: Union[str, Path]) -> KeyMetadata:
    """KeyMetadata from file mtime (UTC)."""
    mtime = Path(path).stat().st_mtime
    return KeyMetadata(created_at=datetime.fromtimestamp(mtime, tz=timezone.utc))


def warn_if_key_old(
    metadata: KeyMetadata,
    max_age_days: int = KEY_ROTATION_WARNING_DAYS,
) -> None:
    now = datetime.now(timezone.utc)
    age_days = (now - metadata.created_at).days
    if age_days >= max_age_days:
        logger.warning(
            "beltic.keys.rotation_recommended",
            age_days=age_days,
            max_age_days=max_age_days,
            created_at=metadata.created_at.isoformat(),
        )


def warn_if_key_file_permissions_loose(path: Path) -> None:
    """Warn when key file is group/other readable (recommend chmod 0600)."""
    try:
        mode = path.stat().st_mode
    except OSError:
        return
    if (mode & 0o77) != 0:
        logger.warning(
            "beltic.keys.permissions_loose",
            path=str(path),
            mode=oct(mode & 0o777),
            recommended=oct(KEY_FILE_MODE),
        )


def load_private_key_file(
    path: Union[str, Path],
    expected_algorithm: Optional[Algorithm] = None,
    max_age_days: int = KEY_ROTATION_WARNING_DAYS,
) -> SigningKey:
    """Load a private key PEM file (blocking I/O).

    Logs a warning when the file is readable by group or others, and a
    rotation warning when it is older than ``max_age_days``.
    """
    path = Path(path)
    warn_if_key_file_permissions_loose(path)
    pem = bytearray(path.read_bytes())
    try:
        key = decode_private_key(bytes(pem), expected_algorithm)
    finally:
        zeroize(pem)
    warn_if_key_old(get_key_metadata_from_file(path), max_age_days)
    return key


def load_public_key_file(
    path: Union[str, Path],
    expected_algorithm: Optional[Algorithm] = None,
) -> VerificationKey:
    return decode_verification_key(Path(path).read_bytes(), expected_algorithm)


def load_private_key_from_env(
    var_name: str,
    expected_algorithm: Optional[Algorithm] = None,
) -> SigningKey:
    """From env var (PEM string). Raises KeyFormatError if unset or invalid."""
    value = os.environ.get(var_name)
    if not value:
        raise KeyFormatError(f"environment variable {var_name!r} is not set or empty")
    return decode_private_key(value, expected_algorithm)


load_private_key_env = load_private_key_from_env


class KeyManager:
    """Key lifecycle operations grouped for injection into higher layers."""

    generate = staticmethod(generate_keypair)
    encode_private = staticmethod(encode_private_key)
    encode_public = staticmethod(encode_public_key)
    decode_private = staticmethod(decode_private_key)
    decode_public = staticmethod(decode_public_key)
    write_private = staticmethod(write_private_key)
    write_public = staticmethod(write_public_key)
