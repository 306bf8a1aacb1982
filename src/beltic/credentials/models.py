"""Pydantic models for credential tokens: header, claims, overrides and results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr

from beltic.errors import BelticError
from beltic.schemas import SchemaId, SchemaViolation

JSON_CONTENT_TYPE = "application/json"
AGENT_TYP = "application/beltic-agent+jwt"
DEVELOPER_TYP = "application/beltic-developer+jwt"


class CredentialKind(str, Enum):
    """Credential families that can be signed; each maps to one ``typ``."""

    AGENT = "agent"
    DEVELOPER = "developer"

    def __str__(self) -> str:
        return self.value

    @property
    def typ(self) -> str:
        return AGENT_TYP if self is CredentialKind.AGENT else DEVELOPER_TYP

    @property
    def display_name(self) -> str:
        return "AgentCredential" if self is CredentialKind.AGENT else "DeveloperCredential"

    @property
    def issuance_field(self) -> str:
        return "credentialIssuanceDate" if self is CredentialKind.AGENT else "issuanceDate"

    @property
    def expiration_field(self) -> str:
        return "credentialExpirationDate" if self is CredentialKind.AGENT else "expirationDate"

    @property
    def requires_subject(self) -> bool:
        return self is CredentialKind.AGENT

    def schema_for(self, payload: Any) -> SchemaId:
        """Schema for a payload of this kind: v2 when the payload declares it, else v1."""
        version = 1
        if isinstance(payload, dict):
            hint = payload.get("$schema")
            schema_version = payload.get("schemaVersion")
            if isinstance(hint, str) and "/v2/" in hint:
                version = 2
            elif isinstance(schema_version, str) and schema_version.startswith("2."):
                version = 2
        if self is CredentialKind.AGENT:
            return SchemaId.AGENT_V2 if version == 2 else SchemaId.AGENT_V1
        return SchemaId.DEVELOPER_V2 if version == 2 else SchemaId.DEVELOPER_V1

    @classmethod
    def from_typ(cls, typ: str) -> Optional[CredentialKind]:
        """Exact lookup by media type; None when ``typ`` is not a Beltic type."""
        for kind in cls:
            if kind.typ == typ:
                return kind
        return None

    @classmethod
    def parse(cls, label: str) -> CredentialKind:
        """Parse a user-facing label (``agent``, ``DeveloperCredential``, ...).

        Raises ValueError for unknown labels.
        """
        normalized = label.strip().lower()
        for kind in cls:
            if normalized in (kind.value, kind.display_name.lower()):
                return kind
        raise ValueError(f"unknown credential type '{label}', expected 'agent' or 'developer'")


class TokenHeader(BaseModel):
    """JOSE protected header. Field order is the serialized key order."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    alg: StrictStr
    typ: StrictStr
    cty: StrictStr = JSON_CONTENT_TYPE
    kid: StrictStr = Field(..., min_length=1)


class ClaimsSet(BaseModel):
    """Registered claims plus the embedded credential (``vc``).

    Field order is the serialized key order; unset optional claims are omitted.
    Unknown claims in received tokens are ignored.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    iss: StrictStr
    sub: Optional[StrictStr] = None
    jti: StrictStr
    nbf: StrictInt
    iat: Optional[StrictInt] = None
    exp: Optional[StrictInt] = None
    aud: Optional[Union[StrictStr, list[StrictStr]]] = None
    vc: dict[str, Any]

    @property
    def audiences(self) -> list[str]:
        if self.aud is None:
            return []
        if isinstance(self.aud, str):
            return [self.aud]
        return list(self.aud)

    def to_json_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", exclude={"vc"}, exclude_none=True)
        data["vc"] = self.vc
        return data


class SignOverrides(BaseModel):
    """Caller-supplied values that take precedence over the credential payload."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    issuer: Optional[str] = None
    subject: Optional[str] = None
    audience: list[str] = Field(default_factory=list)
    credential_type: Optional[CredentialKind] = None
    jti: Optional[str] = None
    schema_id: Optional[SchemaId] = None
    skip_schema: bool = False


class VerifyExpectations(BaseModel):
    """What a verifier requires of a token beyond a valid signature."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    issuer: Optional[str] = None
    audience: list[str] = Field(default_factory=list)
    credential_type: Optional[CredentialKind] = None
    schema_id: Optional[SchemaId] = None
    skip_schema: bool = False
    leeway: int = Field(default=0, ge=0)


@dataclass(frozen=True)
class SignedToken:
    """JWS compact serialization split into its three base64url segments."""

    header_segment: str
    claims_segment: str
    signature_segment: str

    @property
    def signing_input(self) -> bytes:
        return f"{self.header_segment}.{self.claims_segment}".encode("ascii")

    @property
    def compact(self) -> str:
        return f"{self.header_segment}.{self.claims_segment}.{self.signature_segment}"

    def __str__(self) -> str:
        return self.compact


@dataclass
class VerifiedResult:
    """Outcome of verification with every failure kind preserved.

    ``signature_valid`` reports the cryptographic check alone. ``valid`` is
    True only when the signature is valid and no claim or schema check failed.
    """

    signature_valid: bool
    header: TokenHeader
    claims: ClaimsSet
    kind: CredentialKind
    failures: list[BelticError] = field(default_factory=list)
    schema_violations: list[SchemaViolation] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return self.signature_valid and not self.failures

    @property
    def failure_codes(self) -> list[str]:
        return [failure.code for failure in self.failures]

    def raise_for_failures(self) -> None:
        """Raise the first recorded failure, if any."""
        if self.failures:
            raise self.failures[0]

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "signature_valid": self.signature_valid,
            "kind": self.kind.value,
            "header": self.header.model_dump(),
            "claims": self.claims.to_json_dict(),
            "failures": [failure.to_dict() for failure in self.failures],
        }
