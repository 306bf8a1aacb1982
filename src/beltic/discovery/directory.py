"""HTTP message signatures key directory (Web Bot Auth).

The directory is a JWK Set served at
``/.well-known/http-message-signatures-directory``::

    {
      "keys": [{"kty": "OKP", "crv": "Ed25519", "x": "..."}],
      "credentialUrl": "https://...",
      "agentMetadata": {...}
    }

Verifiers locate a signing key by the RFC 7638 thumbprint carried in the
``keyid`` signature parameter.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Optional, Union

from joserfc import jwk
from joserfc.errors import JoseError
from pydantic import BaseModel, ConfigDict, Field

from beltic.crypto.algorithms import Algorithm
from beltic.crypto.keys import SigningKey, VerificationKey
from beltic.crypto.thumbprint import public_jwk, thumbprint
from beltic.discovery.wellknown import (
    CACHE_MAX_AGE_SECONDS,
    DIRECTORY_CONTENT_TYPE,
    DIRECTORY_SIGNATURE_TAG,
    cache_control_value,
    key_directory_url,
)
from beltic.errors import ConfigurationError, KeyFormatError
from beltic.http_signatures.components import RequestTarget
from beltic.http_signatures.engine import new_nonce, sign_context, validate_ttl
from beltic.http_signatures.models import HttpSignatureContext
from beltic.observability import get_logger
from beltic.utils.encoding import b64url_decode

logger = get_logger(__name__)

_DIRECTORY_PARAM_ORDER = ("alg", "keyid", "nonce", "tag", "created", "expires")


class KeyDirectoryEntry(BaseModel):
    """Public JWK: required members only."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kty: str
    crv: str
    x: str
    y: Optional[str] = None

    @classmethod
    def from_key(cls, key: VerificationKey) -> KeyDirectoryEntry:
        return cls(**public_jwk(key))

    def algorithm(self) -> Algorithm:
        for alg in Algorithm:
            if alg.key_type == self.kty and alg.curve == self.crv:
                return alg
        raise KeyFormatError(
            f"unsupported directory key {self.kty}/{self.crv}",
            details={"kty": self.kty, "crv": self.crv},
        )

    def to_verification_key(self) -> VerificationKey:
        algorithm = self.algorithm()
        try:
            x = b64url_decode(self.x)
            y = b64url_decode(self.y) if self.y is not None else None
            raw = algorithm.public_key_from_coordinates(x, y)
        except ValueError as e:
            raise KeyFormatError(f"invalid {self.crv} coordinates: {e}") from e
        return VerificationKey(algorithm=algorithm, raw=raw)

    def thumbprint(self) -> str:
        return thumbprint(self.to_verification_key())


class KeyDirectory(BaseModel):
    """Ordered key list plus optional credential reference and agent metadata."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    keys: list[KeyDirectoryEntry] = Field(default_factory=list)
    credential_url: Optional[str] = Field(default=None, alias="credentialUrl")
    agent_metadata: Optional[dict[str, Any]] = Field(default=None, alias="agentMetadata")

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_document(), indent=indent)

    def thumbprints(self) -> list[str]:
        return [entry.thumbprint() for entry in self.keys]

    def find(self, key_thumbprint: str) -> Optional[VerificationKey]:
        """Key whose thumbprint equals ``key_thumbprint``, or None."""
        for entry in self.keys:
            key = entry.to_verification_key()
            if thumbprint(key) == key_thumbprint:
                return key
        return None


def build(
    public_keys: list[VerificationKey],
    credential_url: Optional[str] = None,
    agent_metadata: Optional[dict[str, Any]] = None,
) -> KeyDirectory:
    """Directory listing ``public_keys`` in caller order (duplicates kept)."""
    if agent_metadata is not None and not isinstance(agent_metadata, dict):
        raise ConfigurationError("Agent metadata must be a JSON object")
    return KeyDirectory(
        keys=[KeyDirectoryEntry.from_key(key) for key in public_keys],
        credential_url=credential_url,
        agent_metadata=agent_metadata,
    )


def parse_directory(document: Union[str, bytes, dict[str, Any]]) -> KeyDirectory:
    """Parse a directory document; keys are imported through a JWK Set.

    Raises:
        KeyFormatError: Invalid JSON, invalid JWK Set, or unsupported key type.
    """
    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise KeyFormatError("key directory is not valid JSON") from e
    if not isinstance(document, dict) or not isinstance(document.get("keys"), list):
        raise KeyFormatError("key directory must be an object with a 'keys' array")
    try:
        key_set = jwk.KeySet.import_key_set(document)
    except (JoseError, ValueError, KeyError, TypeError) as e:
        raise KeyFormatError(f"invalid JWK Set: {e}") from e

    entries: list[KeyDirectoryEntry] = []
    for key in key_set.keys:
        members = key.as_dict(private=False)
        entry = KeyDirectoryEntry(
            kty=members["kty"],
            crv=members.get("crv", ""),
            x=members.get("x", ""),
            y=members.get("y"),
        )
        entry.algorithm()
        entries.append(entry)
    credential_url = document.get("credentialUrl")
    agent_metadata = document.get("agentMetadata")
    return KeyDirectory(
        keys=entries,
        credential_url=credential_url if isinstance(credential_url, str) else None,
        agent_metadata=agent_metadata if isinstance(agent_metadata, dict) else None,
    )


@dataclass(frozen=True)
class SignedDirectoryResponse:
    """Directory body with the headers to serve it under."""

    body: bytes
    headers: dict[str, str]
    keyid: str
    expires: int


def sign_response(
    directory_bytes: bytes,
    signing_key: SigningKey,
    authority: str,
    ttl: int = CACHE_MAX_AGE_SECONDS,
    now: Optional[int] = None,
    label: str = "sig1",
) -> SignedDirectoryResponse:
    """Sign a directory response over ``@authority`` for ``authority``.

    Cache-Control max-age equals ``ttl`` so cached copies never outlive
    their signature.

    Raises:
        ConfigurationError: Invalid ttl or authority.
    """
    validate_ttl(ttl)
    if not authority or "/" in authority or "://" in authority:
        raise ConfigurationError(
            f"Authority must be a bare host[:port], got {authority!r}",
            details={"authority": authority},
        )
    keyid = thumbprint(signing_key.verification_key())
    created = int(time.time()) if now is None else now
    context = HttpSignatureContext(
        target=RequestTarget("GET", key_directory_url(authority)),
        components=["@authority"],
        headers={},
        keyid=keyid,
        alg=signing_key.algorithm.http_label,
        created=created,
        expires=created + ttl,
        nonce=new_nonce(),
        tag=DIRECTORY_SIGNATURE_TAG,
        label=label,
        param_order=_DIRECTORY_PARAM_ORDER,
    )
    signature_input, signature = sign_context(context, signing_key)
    logger.info(
        "beltic.directory.signed",
        authority=context.target.authority,
        keyid=keyid,
        expires=created + ttl,
    )
    return SignedDirectoryResponse(
        body=directory_bytes,
        headers={
            "Content-Type": DIRECTORY_CONTENT_TYPE,
            "Signature": signature,
            "Signature-Input": signature_input,
            "Cache-Control": cache_control_value(ttl),
        },
        keyid=keyid,
        expires=created + ttl,
    )
