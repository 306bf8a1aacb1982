"""Credential type detection and claim derivation for the Beltic signing profile."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Mapping, Optional

from beltic.credentials.models import ClaimsSet, CredentialKind, SignOverrides
from beltic.errors import (
    ConfigurationError,
    CredentialTypeAmbiguousError,
    MissingIssuerError,
    MissingSubjectError,
)

ISSUER_FIELD = "issuerDid"
SUBJECT_FIELD = "subjectDid"
CREDENTIAL_ID_FIELD = "credentialId"


def detect_kind(payload: Mapping[str, Any]) -> CredentialKind:
    """Detect the credential type of ``payload``.

    A ``$schema`` URL containing ``/agent/`` or ``/developer/`` is decisive.
    Otherwise ``agentName`` + ``agentId`` marks an agent credential and
    ``legalName`` + ``subjectDid`` a developer credential.

    Raises:
        CredentialTypeAmbiguousError: If both or neither field sets match.
    """
    hint = payload.get("$schema")
    if isinstance(hint, str):
        if "/agent/" in hint:
            return CredentialKind.AGENT
        if "/developer/" in hint:
            return CredentialKind.DEVELOPER

    candidates: list[CredentialKind] = []
    if "agentName" in payload and "agentId" in payload:
        candidates.append(CredentialKind.AGENT)
    if "legalName" in payload and "subjectDid" in payload:
        candidates.append(CredentialKind.DEVELOPER)
    if len(candidates) != 1:
        raise CredentialTypeAmbiguousError([kind.value for kind in candidates])
    return candidates[0]


def resolve_kind(
    payload: Mapping[str, Any], forced: Optional[CredentialKind] = None
) -> CredentialKind:
    return forced if forced is not None else detect_kind(payload)


def parse_timestamp(value: Any, field: str) -> int:
    """RFC 3339 date-time string to Unix seconds (fractions truncated).

    Raises:
        ConfigurationError: If the value is not a timezone-qualified date-time.
    """
    if not isinstance(value, str):
        raise ConfigurationError(
            f"Credential field '{field}' must be an RFC 3339 date-time string",
            details={"field": field},
        )
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise ConfigurationError(
            f"Credential field '{field}' is not a valid RFC 3339 date-time: {value}",
            details={"field": field, "value": value},
        ) from e
    if parsed.tzinfo is None:
        raise ConfigurationError(
            f"Credential field '{field}' must include a timezone offset: {value}",
            details={"field": field, "value": value},
        )
    return int(parsed.timestamp())


def _string_field(payload: Mapping[str, Any], field: str) -> Optional[str]:
    value = payload.get(field)
    if isinstance(value, str) and value:
        return value
    return None


def audience_claim(audience: list[str]) -> Optional[str | list[str]]:
    """``aud`` is omitted when empty, a string for one value, a list otherwise."""
    if not audience:
        return None
    if len(audience) == 1:
        return audience[0]
    return list(audience)


def build_claims(
    payload: Mapping[str, Any],
    kind: CredentialKind,
    overrides: SignOverrides,
    now: int,
) -> ClaimsSet:
    """Derive the claims set for ``payload``; ``now`` becomes ``iat``.

    Raises:
        MissingIssuerError: No issuer override and no ``issuerDid``.
        MissingSubjectError: Agent credential without subject.
        ConfigurationError: Unparseable dates or ``exp`` before ``nbf``.
    """
    issuer = overrides.issuer or _string_field(payload, ISSUER_FIELD)
    if issuer is None:
        raise MissingIssuerError(ISSUER_FIELD)

    subject = overrides.subject or _string_field(payload, SUBJECT_FIELD)
    if subject is None and kind.requires_subject:
        raise MissingSubjectError(SUBJECT_FIELD)

    jti = (
        overrides.jti
        or _string_field(payload, CREDENTIAL_ID_FIELD)
        or f"urn:uuid:{uuid.uuid4()}"
    )

    nbf = now
    if payload.get(kind.issuance_field) is not None:
        nbf = parse_timestamp(payload[kind.issuance_field], kind.issuance_field)
    exp: Optional[int] = None
    if payload.get(kind.expiration_field) is not None:
        exp = parse_timestamp(payload[kind.expiration_field], kind.expiration_field)
    if exp is not None and exp < nbf:
        raise ConfigurationError(
            f"Credential expires before it becomes valid ({exp} < {nbf})",
            details={"nbf": nbf, "exp": exp},
        )

    return ClaimsSet(
        iss=issuer,
        sub=subject,
        jti=jti,
        nbf=nbf,
        iat=now,
        exp=exp,
        aud=audience_claim(overrides.audience),
        vc=dict(payload),
    )
