"""Credential signing: JSON credential payload to compact signed token.

The token is a JWS compact serialization with header
``{"alg", "typ", "cty", "kid"}`` and claims
``{"iss", "sub", "jti", "nbf", "iat", "exp", "aud", "vc"}`` (optional claims
omitted when unset). The caller's ``SigningKey`` is used but not released.
"""

from __future__ import annotations

import json
import time
from typing import Any, Mapping, Optional, Union

from beltic.credentials.claims import build_claims, resolve_kind
from beltic.credentials.models import SignedToken, SignOverrides, TokenHeader
from beltic.credentials.token import encode_token
from beltic.crypto.algorithms import Algorithm
from beltic.crypto.keys import SigningKey
from beltic.errors import AlgorithmMismatchError, ConfigurationError
from beltic.observability import get_logger
from beltic.schemas import SchemaValidator

logger = get_logger(__name__)

CredentialPayload = Union[Mapping[str, Any], str, bytes]


def load_payload(payload: CredentialPayload) -> dict[str, Any]:
    """Credential payload as a dict; JSON text is parsed.

    Raises:
        ConfigurationError: If the payload is not a JSON object.
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ConfigurationError(f"Credential payload is not valid JSON: {e}") from e
    if not isinstance(payload, Mapping):
        raise ConfigurationError("Credential payload must be a JSON object")
    return dict(payload)


def sign(
    payload: CredentialPayload,
    signing_key: SigningKey,
    algorithm: Optional[Algorithm],
    key_id: str,
    overrides: Optional[SignOverrides] = None,
    schema_validator: Optional[SchemaValidator] = None,
    now: Optional[int] = None,
) -> SignedToken:
    """Sign a credential payload.

    Args:
        payload: Credential JSON (object or JSON text); embedded verbatim as ``vc``
        signing_key: Private key; must carry ``algorithm`` when one is given
        algorithm: Declared algorithm, or None to use the key's own
        key_id: Value of the ``kid`` header (non-empty)
        overrides: Issuer/subject/audience/type/jti overrides and skip-schema flag
        schema_validator: Validator for the pre-sign schema gate (default cache if None)
        now: Signing time in Unix seconds (``iat``; ``nbf`` fallback)

    Returns:
        SignedToken; ``str(token)`` is the compact form.

    Raises:
        AlgorithmMismatchError: ``algorithm`` differs from the key's algorithm.
        CredentialTypeAmbiguousError: Type cannot be detected and was not forced.
        SchemaViolationError: Payload violates its schema (unless skipped).
        MissingIssuerError: No issuer available.
        MissingSubjectError: Agent credential without subject.
        ConfigurationError: Empty key id, invalid payload or dates.
    """
    if algorithm is not None and algorithm is not signing_key.algorithm:
        raise AlgorithmMismatchError(
            expected=algorithm.value, actual=signing_key.algorithm.value
        )
    if not key_id:
        raise ConfigurationError("Key id (kid) must be a non-empty string")

    overrides = overrides or SignOverrides()
    document = load_payload(payload)
    kind = resolve_kind(document, overrides.credential_type)

    if not overrides.skip_schema:
        schema_id = overrides.schema_id or kind.schema_for(document)
        (schema_validator or SchemaValidator()).check(document, schema_id)

    issued_at = int(time.time()) if now is None else now
    claims = build_claims(document, kind, overrides, issued_at)
    header = TokenHeader(alg=signing_key.algorithm.jose_label, typ=kind.typ, kid=key_id)
    token = encode_token(header, claims, signing_key)

    logger.info(
        "beltic.credential.signed",
        kind=kind.value,
        alg=header.alg,
        kid=key_id,
        jti=claims.jti,
        schema_checked=not overrides.skip_schema,
    )
    return token
