"""Credential verification: signature, algorithm binding, claims and schema.

Structural problems and signature failures raise immediately. Claim and
schema problems are collected so callers (and audit logs) see every failure
kind at once; ``VerifiedResult.raise_for_failures()`` turns them back into an
exception.

Audience rule: every expected audience must be present in the token's
``aud`` claim (string or list). A token carrying extra audiences still
matches; a token without ``aud`` fails any audience expectation.
"""

from __future__ import annotations

import time
from typing import Optional

from beltic.credentials.models import VerifiedResult, VerifyExpectations
from beltic.credentials.token import parse_token, verify_signature
from beltic.crypto.keys import VerificationKey
from beltic.errors import (
    AudienceMismatchError,
    BelticError,
    CredentialTypeMismatchError,
    ExpiredError,
    InvalidSignatureError,
    IssuerMismatchError,
    NotYetValidError,
    SchemaViolationError,
)
from beltic.observability import get_logger
from beltic.schemas import SchemaValidator, SchemaViolation

logger = get_logger(__name__)


def verify(
    token: str,
    verification_key: VerificationKey,
    expectations: Optional[VerifyExpectations] = None,
    schema_validator: Optional[SchemaValidator] = None,
    now: Optional[int] = None,
) -> VerifiedResult:
    """Verify a compact credential token.

    Args:
        token: JWS compact serialization
        verification_key: Public key; its algorithm must equal the header ``alg``
        expectations: Expected issuer/audience/type, skip-schema flag and leeway
        schema_validator: Validator for the embedded ``vc`` (default cache if None)
        now: Evaluation time in Unix seconds

    Returns:
        VerifiedResult with ``signature_valid`` True and any claim or schema
        failures recorded in order.

    Raises:
        MalformedTokenError: Token cannot be parsed.
        InvalidSignatureError: Algorithm confusion or signature mismatch.
    """
    expectations = expectations or VerifyExpectations()
    parsed = parse_token(token)

    try:
        verify_signature(parsed, verification_key)
    except InvalidSignatureError as e:
        logger.warning(
            "beltic.credential.signature_invalid",
            kid=parsed.header.kid,
            header_alg=parsed.header.alg,
            key_alg=verification_key.algorithm.jose_label,
            reason=e.message,
        )
        raise

    current = int(time.time()) if now is None else now
    leeway = expectations.leeway
    claims = parsed.claims
    failures: list[BelticError] = []

    if claims.exp is not None and claims.exp <= current - leeway:
        failures.append(ExpiredError(claims.exp, current))
    if claims.nbf > current + leeway:
        failures.append(NotYetValidError(claims.nbf, current))
    if expectations.issuer is not None and claims.iss != expectations.issuer:
        failures.append(IssuerMismatchError(expectations.issuer, claims.iss))
    if expectations.audience:
        actual = claims.audiences
        if any(aud not in actual for aud in expectations.audience):
            failures.append(AudienceMismatchError(list(expectations.audience), actual))
    if (
        expectations.credential_type is not None
        and parsed.kind is not expectations.credential_type
    ):
        failures.append(
            CredentialTypeMismatchError(expectations.credential_type.value, parsed.kind.value)
        )

    violations: list[SchemaViolation] = []
    if not expectations.skip_schema:
        schema_id = expectations.schema_id or parsed.kind.schema_for(claims.vc)
        violations = (schema_validator or SchemaValidator()).validate(claims.vc, schema_id)
        if violations:
            failures.append(
                SchemaViolationError(schema_id.value, [v.as_tuple() for v in violations])
            )

    result = VerifiedResult(
        signature_valid=True,
        header=parsed.header,
        claims=claims,
        kind=parsed.kind,
        failures=failures,
        schema_violations=violations,
    )
    if result.valid:
        logger.info(
            "beltic.credential.verified",
            kind=parsed.kind.value,
            kid=parsed.header.kid,
            jti=claims.jti,
        )
    else:
        logger.warning(
            "beltic.credential.rejected",
            kind=parsed.kind.value,
            kid=parsed.header.kid,
            jti=claims.jti,
            failures=result.failure_codes,
        )
    return result
