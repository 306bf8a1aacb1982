"""Signed credential tokens (JWS compact serialization).

Public exports:
    sign: Credential payload to SignedToken
    verify: Token to VerifiedResult
    CredentialKind, TokenHeader, ClaimsSet, SignedToken: Token data model
    SignOverrides, VerifyExpectations, VerifiedResult: Call options and results
"""

from beltic.credentials.claims import build_claims, detect_kind
from beltic.credentials.models import (
    AGENT_TYP,
    DEVELOPER_TYP,
    ClaimsSet,
    CredentialKind,
    SignedToken,
    SignOverrides,
    TokenHeader,
    VerifiedResult,
    VerifyExpectations,
)
from beltic.credentials.signer import sign
from beltic.credentials.token import parse_token
from beltic.credentials.verifier import verify

__all__ = [
    "AGENT_TYP",
    "DEVELOPER_TYP",
    "ClaimsSet",
    "CredentialKind",
    "SignOverrides",
    "SignedToken",
    "TokenHeader",
    "VerifiedResult",
    "VerifyExpectations",
    "build_claims",
    "detect_kind",
    "parse_token",
    "sign",
    "verify",
]
