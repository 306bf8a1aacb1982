"""JWS compact serialization of credential tokens.

Signing and signature checks go through ``joserfc.jws``. The claims payload
is handed to joserfc as compact UTF-8 JSON in a fixed key order, so the
claims segment is byte-stable. ``parse_token`` is the strict structural
decoder run before any key is involved: it pins ``alg`` and ``typ`` to the
supported values and validates header and claims against their models.
"""

from __future__ import annotations

import json
import warnings
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from joserfc import jws
from joserfc.errors import BadSignatureError, JoseError, SecurityWarning
from pydantic import ValidationError

from beltic.credentials.models import ClaimsSet, CredentialKind, SignedToken, TokenHeader
from beltic.crypto.algorithms import Algorithm
from beltic.crypto.keys import SigningKey, VerificationKey
from beltic.errors import InvalidSignatureError, MalformedTokenError
from beltic.utils.encoding import b64url_decode


def _json_bytes(value: dict[str, Any]) -> bytes:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


@contextmanager
def _jose_algorithm_scope() -> Iterator[None]:
    # joserfc flags "EdDSA" as superseded by RFC 9864; tokens keep that label.
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", SecurityWarning)
        yield


def _registry(algorithm: Algorithm) -> jws.JWSRegistry:
    """Registry allowing exactly ``algorithm``; unknown header members are ignored."""
    return jws.JWSRegistry(algorithms=[algorithm.jose_label], strict_check_header=False)


def encode_token(header: TokenHeader, claims: ClaimsSet, signing_key: SigningKey) -> SignedToken:
    """Sign ``claims`` under ``header`` with joserfc and split the result."""
    with _jose_algorithm_scope():
        compact = jws.serialize_compact(
            header.model_dump(),
            _json_bytes(claims.to_json_dict()),
            signing_key.jose_key(),
            registry=_registry(signing_key.algorithm),
        )
    header_segment, claims_segment, signature_segment = compact.split(".")
    return SignedToken(header_segment, claims_segment, signature_segment)


@dataclass(frozen=True)
class ParsedToken:
    """Structurally valid token whose signature has not been checked yet."""

    token: SignedToken
    header: TokenHeader
    claims: ClaimsSet
    algorithm: Algorithm
    kind: CredentialKind
    signature: bytes


def _decode_json_segment(segment: str, name: str) -> dict[str, Any]:
    try:
        raw = b64url_decode(segment)
    except ValueError as e:
        raise MalformedTokenError(f"{name} is not valid base64url") from e
    try:
        value = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedTokenError(f"{name} is not valid JSON") from e
    if not isinstance(value, dict):
        raise MalformedTokenError(f"{name} must be a JSON object")
    return value


def parse_token(text: str) -> ParsedToken:
    """Split and decode a compact token.

    Raises:
        MalformedTokenError: Wrong segment count, bad base64url or JSON,
            missing or unknown ``alg``/``typ``, or claims of the wrong shape.
    """
    segments = text.strip().split(".")
    if len(segments) != 3:
        raise MalformedTokenError(
            f"expected 3 segments, found {len(segments)}",
            details={"segments": len(segments)},
        )
    header_segment, claims_segment, signature_segment = segments

    header_json = _decode_json_segment(header_segment, "header")
    alg = header_json.get("alg")
    if not isinstance(alg, str):
        raise MalformedTokenError("header is missing 'alg'")
    try:
        algorithm = Algorithm.from_jose(alg)
    except ValueError as e:
        raise MalformedTokenError(f"unsupported alg '{alg}'", details={"alg": alg}) from e
    typ = header_json.get("typ")
    if not isinstance(typ, str):
        raise MalformedTokenError("header is missing 'typ'")
    kind = CredentialKind.from_typ(typ)
    if kind is None:
        raise MalformedTokenError(f"unsupported typ '{typ}'", details={"typ": typ})
    try:
        header = TokenHeader.model_validate(header_json)
    except ValidationError as e:
        raise MalformedTokenError("invalid header", details={"errors": e.error_count()}) from e

    claims_json = _decode_json_segment(claims_segment, "claims")
    try:
        claims = ClaimsSet.model_validate(claims_json)
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        raise MalformedTokenError(
            f"invalid claims ({', '.join(fields)})", details={"fields": fields}
        ) from e

    try:
        signature = b64url_decode(signature_segment)
    except ValueError as e:
        raise MalformedTokenError("signature is not valid base64url") from e

    return ParsedToken(
        token=SignedToken(header_segment, claims_segment, signature_segment),
        header=header,
        claims=claims,
        algorithm=algorithm,
        kind=kind,
        signature=signature,
    )


def verify_signature(parsed: ParsedToken, verification_key: VerificationKey) -> None:
    """Check the token signature with joserfc, allowing only the key's algorithm.

    Raises:
        InvalidSignatureError: Header ``alg`` differs from the key's algorithm,
            or the signature does not verify.
        MalformedTokenError: joserfc rejects the token structure.
    """
    key_alg = verification_key.algorithm
    if parsed.algorithm is not key_alg:
        raise InvalidSignatureError(
            f"Token alg '{parsed.header.alg}' does not match the "
            f"{key_alg.jose_label} verification key",
            details={"header_alg": parsed.header.alg, "key_alg": key_alg.jose_label},
        )
    if len(parsed.signature) != key_alg.signature_length:
        raise InvalidSignatureError(
            "Signature has the wrong length",
            details={"expected": key_alg.signature_length, "actual": len(parsed.signature)},
        )
    try:
        with _jose_algorithm_scope():
            jws.deserialize_compact(
                parsed.token.compact,
                verification_key.jose_key(),
                registry=_registry(key_alg),
            )
    except BadSignatureError as e:
        raise InvalidSignatureError("Signature verification failed") from e
    except JoseError as e:
        raise MalformedTokenError(
            f"token rejected by JWS decoder: {e.description or e.error}",
            details={"error": e.error},
        ) from e
