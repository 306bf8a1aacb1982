"""Beltic Error Taxonomy.

This module defines the error hierarchy for credential signing, credential
verification, HTTP message signatures and key handling. Every error carries a
stable code, a human-readable message and a details dict so callers (and audit
logs) always receive the specific failure kind.

Messages and details never include raw key material.
"""
from __future__ import annotations

from typing import Any


class BelticError(Exception):
    """Base exception for all Beltic errors.

    Attributes:
        code: Error code following the beltic:<area>/<kind> pattern
        message: Human-readable error message
        details: Optional additional error context
    """

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize to ``{code, message, details}`` dict."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class KeyFormatError(BelticError):
    """Raised when key text or raw key bytes cannot be decoded."""

    def __init__(self, reason: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="beltic:key/format",
            message=f"Invalid key: {reason}",
            details=details or {},
        )
        self.reason = reason


class AlgorithmMismatchError(BelticError):
    """Raised when a key's curve does not match the declared algorithm.

    Attributes:
        expected: Algorithm label the caller declared
        actual: Algorithm label of the decoded key
    """

    def __init__(self, expected: str, actual: str, details: dict[str, Any] | None = None) -> None:
        message = f"Algorithm mismatch: expected {expected}, got {actual}"
        super().__init__(
            code="beltic:key/algorithm_mismatch",
            message=message,
            details={"expected": expected, "actual": actual, **(details or {})},
        )
        self.expected = expected
        self.actual = actual


class MalformedTokenError(BelticError):
    """Raised when a token or signature header cannot be parsed."""

    def __init__(self, reason: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="beltic:token/malformed",
            message=f"Malformed token: {reason}",
            details=details or {},
        )
        self.reason = reason


class InvalidSignatureError(BelticError):
    """Tampering, wrong algorithm, or invalid/corrupted signature; see message for cause."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="beltic:token/invalid_signature",
            message=message,
            details=details or {},
        )


class ExpiredError(BelticError):
    """Raised when ``exp`` (or an HTTP signature ``expires``) is not in the future.

    Attributes:
        expired_at: The expiry timestamp (Unix seconds)
        now: The evaluation time (Unix seconds)
    """

    def __init__(self, expired_at: int, now: int, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="beltic:token/expired",
            message=f"Token expired at {expired_at} (now {now})",
            details={"exp": expired_at, "now": now, **(details or {})},
        )
        self.expired_at = expired_at
        self.now = now


class NotYetValidError(BelticError):
    """Raised when ``nbf`` lies in the future."""

    def __init__(self, not_before: int, now: int, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="beltic:token/not_yet_valid",
            message=f"Token not valid before {not_before} (now {now})",
            details={"nbf": not_before, "now": now, **(details or {})},
        )
        self.not_before = not_before
        self.now = now


class IssuerMismatchError(BelticError):
    """Raised when the token issuer differs from the expected issuer."""

    def __init__(
        self, expected: str, actual: str | None, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(
            code="beltic:claims/issuer_mismatch",
            message=f"Issuer mismatch: expected '{expected}', got '{actual}'",
            details={"expected": expected, "actual": actual, **(details or {})},
        )
        self.expected = expected
        self.actual = actual


class AudienceMismatchError(BelticError):
    """Raised when an expected audience is missing from the token's ``aud`` claim.

    Attributes:
        expected: Expected audiences
        actual: Audiences carried by the token
        missing: Expected audiences not present in the token
    """

    def __init__(
        self,
        expected: list[str],
        actual: list[str],
        details: dict[str, Any] | None = None,
    ) -> None:
        missing = [aud for aud in expected if aud not in actual]
        super().__init__(
            code="beltic:claims/audience_mismatch",
            message=f"Audience mismatch: token is not issued for {', '.join(missing)}",
            details={
                "expected": list(expected),
                "actual": list(actual),
                "missing": missing,
                **(details or {}),
            },
        )
        self.expected = expected
        self.actual = actual
        self.missing = missing


class CredentialTypeMismatchError(BelticError):
    """Raised when the token's credential type differs from the expected type."""

    def __init__(
        self, expected: str, actual: str | None, details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(
            code="beltic:claims/credential_type_mismatch",
            message=f"Credential type mismatch: expected {expected}, got {actual}",
            details={"expected": expected, "actual": actual, **(details or {})},
        )
        self.expected = expected
        self.actual = actual


class CredentialTypeAmbiguousError(BelticError):
    """Raised when the credential type cannot be detected from the payload."""

    def __init__(self, candidates: list[str], details: dict[str, Any] | None = None) -> None:
        if candidates:
            reason = f"payload matches several credential types ({', '.join(candidates)})"
        else:
            reason = "payload does not identify a credential type"
        super().__init__(
            code="beltic:credential/type_ambiguous",
            message=f"Cannot determine credential type: {reason}; pass an explicit type",
            details={"candidates": candidates, **(details or {})},
        )
        self.candidates = candidates


class MissingIssuerError(BelticError):
    """Raised when no issuer is supplied by override or payload."""

    def __init__(self, field: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="beltic:credential/missing_issuer",
            message=f"Issuer is required (pass an issuer or include '{field}' in the credential)",
            details={"field": field, **(details or {})},
        )
        self.field = field


class MissingSubjectError(BelticError):
    """Raised when an agent credential has no resolvable subject."""

    def __init__(self, field: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="beltic:credential/missing_subject",
            message=f"Subject is required (pass a subject or include '{field}' in the credential)",
            details={"field": field, **(details or {})},
        )
        self.field = field


class SchemaViolationError(BelticError):
    """Raised when a credential does not satisfy its JSON Schema.

    Attributes:
        schema_id: Identifier of the schema that was applied
        violations: Ordered list of ``(json_pointer, message)`` pairs
    """

    def __init__(
        self,
        schema_id: str,
        violations: list[tuple[str, str]],
        details: dict[str, Any] | None = None,
    ) -> None:
        count = len(violations)
        noun = "violation" if count == 1 else "violations"
        super().__init__(
            code="beltic:schema/violation",
            message=f"Credential does not match {schema_id}: {count} {noun}",
            details={
                "schema_id": schema_id,
                "violations": [
                    {"pointer": pointer, "message": message} for pointer, message in violations
                ],
                **(details or {}),
            },
        )
        self.schema_id = schema_id
        self.violations = violations


class InsecureTransportError(BelticError):
    """Raised when a key directory URL does not use HTTPS."""

    def __init__(self, url: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="beltic:http/insecure_transport",
            message=f"Key directory URL must use https: {url}",
            details={"url": url, **(details or {})},
        )
        self.url = url


class ConfigurationError(BelticError):
    """Raised for invalid caller configuration (unknown schema id, bad ttl, ...)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            code="beltic:config/invalid",
            message=message,
            details=details or {},
        )
