"""Shared pytest fixtures for Beltic tests.

Credential payloads are valid against the v1 schemas and issued for 2025;
tests pass an explicit ``now`` inside that window so they never depend on the
wall clock.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import pytest

from beltic.crypto.algorithms import Algorithm
from beltic.crypto.keys import SigningKey, VerificationKey, generate_keypair
from beltic.schemas import SchemaCache, SchemaValidator

# 2025-06-15T00:00:00Z, inside the validity window of the sample credentials.
NOW = 1749945600
ISSUED_AT = 1735689600  # 2025-01-01T00:00:00Z
EXPIRES_AT = 1767225600  # 2026-01-01T00:00:00Z

ISSUER_DID = "did:web:beltic.dev"
AGENT_DID = "did:web:agent.example.com"
DEVELOPER_DID = "did:web:acme.example.com"
KEY_DIRECTORY_URL = "https://agent.example.com/.well-known/http-message-signatures-directory"


def make_agent_credential(**overrides: Any) -> dict[str, Any]:
    credential: dict[str, Any] = {
        "schemaVersion": "1.0",
        "agentId": "0b7f3c4e-8a51-4c7d-9a0e-2f6d5b1c9e11",
        "agentName": "Support Agent",
        "agentVersion": "1.2.0",
        "currentStatus": "production",
        "credentialId": "6d1f0c2a-3b4e-4f5a-8c9d-0e1f2a3b4c5d",
        "issuerDid": ISSUER_DID,
        "subjectDid": AGENT_DID,
        "credentialIssuanceDate": "2025-01-01T00:00:00Z",
        "credentialExpirationDate": "2026-01-01T00:00:00Z",
    }
    credential.update(overrides)
    return credential


def make_developer_credential(**overrides: Any) -> dict[str, Any]:
    credential: dict[str, Any] = {
        "schemaVersion": "1.0",
        "credentialId": "9a8b7c6d-5e4f-4a3b-9c2d-1e0f9a8b7c6d",
        "legalName": "Acme Corporation",
        "entityType": "corporation",
        "subjectDid": DEVELOPER_DID,
        "issuerDid": ISSUER_DID,
        "issuanceDate": "2025-01-01T00:00:00Z",
        "expirationDate": "2026-01-01T00:00:00Z",
    }
    credential.update(overrides)
    return credential


@pytest.fixture
def agent_credential() -> dict[str, Any]:
    return make_agent_credential()


@pytest.fixture
def developer_credential() -> dict[str, Any]:
    return make_developer_credential()


@pytest.fixture
def ed25519_keypair() -> Iterator[tuple[SigningKey, VerificationKey]]:
    signing_key, verification_key = generate_keypair(Algorithm.EDDSA)
    with signing_key:
        yield signing_key, verification_key


@pytest.fixture
def es256_keypair() -> Iterator[tuple[SigningKey, VerificationKey]]:
    signing_key, verification_key = generate_keypair(Algorithm.ES256)
    with signing_key:
        yield signing_key, verification_key


@pytest.fixture(params=[Algorithm.EDDSA, Algorithm.ES256], ids=["EdDSA", "ES256"])
def keypair(request: pytest.FixtureRequest) -> Iterator[tuple[SigningKey, VerificationKey]]:
    """Key pair for each supported algorithm."""
    signing_key, verification_key = generate_keypair(request.param)
    with signing_key:
        yield signing_key, verification_key


@pytest.fixture
def schema_validator() -> SchemaValidator:
    """Validator with its own cache so tests never share compiled state."""
    return SchemaValidator(SchemaCache())


@pytest.fixture
def now() -> int:
    return NOW
