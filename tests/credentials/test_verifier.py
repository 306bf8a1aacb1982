"""Tests for credential verification."""

import json
from typing import Any

import pytest
from joserfc import jws
from joserfc.jwk import ECKey

from beltic.credentials import (
    AGENT_TYP,
    SignOverrides,
    SignedToken,
    VerifyExpectations,
    sign,
    verify,
)
from beltic.credentials.models import CredentialKind
from beltic.crypto.algorithms import Algorithm
from beltic.crypto.keys import (
    SigningKey,
    VerificationKey,
    encode_private_key,
    generate_keypair,
)
from beltic.errors import (
    AudienceMismatchError,
    CredentialTypeMismatchError,
    ExpiredError,
    InvalidSignatureError,
    IssuerMismatchError,
    MalformedTokenError,
    NotYetValidError,
    SchemaViolationError,
)
from beltic.schemas import SchemaValidator
from beltic.utils.encoding import b64url_decode, b64url_encode

ISSUED_AT = 1735689600
EXPIRES_AT = 1767225600


def _sign(
    signing_key: SigningKey,
    payload: dict[str, Any],
    now: int,
    **overrides: Any,
) -> SignedToken:
    return sign(
        payload,
        signing_key,
        None,
        "did:web:agent.example.com#key-1",
        overrides=SignOverrides(**overrides),
        now=now,
    )


def _resign_with_header(
    signing_key: SigningKey, token: SignedToken, extra: dict[str, Any]
) -> SignedToken:
    header = json.loads(b64url_decode(token.header_segment))
    header.update(extra)
    unsigned = SignedToken(
        b64url_encode(json.dumps(header).encode("utf-8")), token.claims_segment, ""
    )
    signature = b64url_encode(signing_key.sign(unsigned.signing_input))
    return SignedToken(unsigned.header_segment, unsigned.claims_segment, signature)


def test_roundtrip(
    keypair: tuple[SigningKey, VerificationKey],
    agent_credential: dict[str, Any],
    schema_validator: SchemaValidator,
    now: int,
) -> None:
    """A freshly signed token verifies with the matching public key."""
    signing_key, verification_key = keypair
    token = _sign(signing_key, agent_credential, now)

    result = verify(token.compact, verification_key, schema_validator=schema_validator, now=now)

    assert result.valid
    assert result.signature_valid
    assert result.kind is CredentialKind.AGENT
    assert result.claims.vc == agent_credential
    assert result.failures == []
    result.raise_for_failures()


def test_unknown_header_member_is_ignored(
    ed25519_keypair: tuple[SigningKey, VerificationKey],
    agent_credential: dict[str, Any],
    now: int,
) -> None:
    signing_key, verification_key = ed25519_keypair
    token = _resign_with_header(
        signing_key, _sign(signing_key, agent_credential, now), {"x-trace": "abc"}
    )
    assert verify(token.compact, verification_key, now=now).valid


def test_to_dict(
    ed25519_keypair: tuple[SigningKey, VerificationKey],
    developer_credential: dict[str, Any],
    now: int,
) -> None:
    signing_key, verification_key = ed25519_keypair
    token = _sign(signing_key, developer_credential, now)
    data = verify(token.compact, verification_key, now=now).to_dict()
    assert data["valid"] is True
    assert data["kind"] == "developer"
    assert data["claims"]["iss"] == "did:web:beltic.dev"
    assert data["failures"] == []


class TestSignatureFailures:
    """Failures that raise instead of being collected."""

    def test_tampered_claims(
        self,
        ed25519_keypair: tuple[SigningKey, VerificationKey],
        agent_credential: dict[str, Any],
        now: int,
    ) -> None:
        signing_key, verification_key = ed25519_keypair
        token = _sign(signing_key, agent_credential, now)
        claims = json.loads(b64url_decode(token.claims_segment))
        claims["vc"]["agentName"] = "Evil Agent"
        tampered = SignedToken(
            token.header_segment,
            b64url_encode(json.dumps(claims).encode("utf-8")),
            token.signature_segment,
        )
        with pytest.raises(InvalidSignatureError, match="verification failed"):
            verify(tampered.compact, verification_key, now=now)

    def test_wrong_key(
        self,
        ed25519_keypair: tuple[SigningKey, VerificationKey],
        agent_credential: dict[str, Any],
        now: int,
    ) -> None:
        signing_key, _ = ed25519_keypair
        _, other_key = generate_keypair(Algorithm.EDDSA)
        token = _sign(signing_key, agent_credential, now)
        with pytest.raises(InvalidSignatureError):
            verify(token.compact, other_key, now=now)

    def test_algorithm_confusion(
        self,
        ed25519_keypair: tuple[SigningKey, VerificationKey],
        es256_keypair: tuple[SigningKey, VerificationKey],
        agent_credential: dict[str, Any],
        now: int,
    ) -> None:
        """An EdDSA token is never checked against an ES256 key."""
        signing_key, _ = ed25519_keypair
        _, es256_key = es256_keypair
        token = _sign(signing_key, agent_credential, now)
        with pytest.raises(InvalidSignatureError) as exc_info:
            verify(token.compact, es256_key, now=now)
        assert exc_info.value.details == {"header_alg": "EdDSA", "key_alg": "ES256"}

    def test_es256_token_against_ed25519_key(
        self,
        ed25519_keypair: tuple[SigningKey, VerificationKey],
        es256_keypair: tuple[SigningKey, VerificationKey],
        agent_credential: dict[str, Any],
        now: int,
    ) -> None:
        """An ES256 token is never checked against an Ed25519 key."""
        signing_key, _ = es256_keypair
        _, ed25519_key = ed25519_keypair
        token = _sign(signing_key, agent_credential, now)
        with pytest.raises(InvalidSignatureError) as exc_info:
            verify(token.compact, ed25519_key, now=now)
        assert exc_info.value.details == {"header_alg": "ES256", "key_alg": "EdDSA"}

    def test_single_bit_flips_are_rejected(
        self,
        ed25519_keypair: tuple[SigningKey, VerificationKey],
        agent_credential: dict[str, Any],
        now: int,
    ) -> None:
        """Flipping one bit at any byte of any segment never yields a valid token."""
        signing_key, verification_key = ed25519_keypair
        segments = _sign(signing_key, agent_credential, now).compact.split(".")
        for index, segment in enumerate(segments):
            raw = b64url_decode(segment)
            for position in range(len(raw)):
                flipped = bytearray(raw)
                flipped[position] ^= 1 << (position % 8)
                candidate = list(segments)
                candidate[index] = b64url_encode(bytes(flipped))
                with pytest.raises((InvalidSignatureError, MalformedTokenError)):
                    verify(".".join(candidate), verification_key, now=now)

    def test_unsupported_critical_header(
        self,
        ed25519_keypair: tuple[SigningKey, VerificationKey],
        agent_credential: dict[str, Any],
        now: int,
    ) -> None:
        """Critical header extensions the decoder does not understand are rejected."""
        signing_key, verification_key = ed25519_keypair
        token = _resign_with_header(
            signing_key,
            _sign(signing_key, agent_credential, now),
            {"crit": ["x-policy"], "x-policy": "strict"},
        )
        with pytest.raises(MalformedTokenError, match="JWS decoder"):
            verify(token.compact, verification_key, now=now)

    def test_truncated_signature(
        self,
        ed25519_keypair: tuple[SigningKey, VerificationKey],
        agent_credential: dict[str, Any],
        now: int,
    ) -> None:
        signing_key, verification_key = ed25519_keypair
        token = _sign(signing_key, agent_credential, now)
        short = b64url_encode(b64url_decode(token.signature_segment)[:63])
        truncated = SignedToken(token.header_segment, token.claims_segment, short)
        with pytest.raises(InvalidSignatureError, match="wrong length"):
            verify(truncated.compact, verification_key, now=now)

    def test_malformed_token(self, ed25519_keypair: tuple[SigningKey, VerificationKey]) -> None:
        _, verification_key = ed25519_keypair
        with pytest.raises(MalformedTokenError):
            verify("not-a-token", verification_key)


class TestTimeWindow:
    """Tests for nbf/exp evaluation."""

    def test_expired_at_exact_boundary(
        self,
        ed25519_keypair: tuple[SigningKey, VerificationKey],
        agent_credential: dict[str, Any],
        now: int,
    ) -> None:
        signing_key, verification_key = ed25519_keypair
        token = _sign(signing_key, agent_credential, now)

        assert verify(token.compact, verification_key, now=EXPIRES_AT - 1).valid
        result = verify(token.compact, verification_key, now=EXPIRES_AT)

        assert not result.valid
        assert result.signature_valid
        assert isinstance(result.failures[0], ExpiredError)
        with pytest.raises(ExpiredError):
            result.raise_for_failures()

    def test_leeway_extends_expiry(
        self,
        ed25519_keypair: tuple[SigningKey, VerificationKey],
        agent_credential: dict[str, Any],
        now: int,
    ) -> None:
        signing_key, verification_key = ed25519_keypair
        token = _sign(signing_key, agent_credential, now)
        result = verify(
            token.compact,
            verification_key,
            VerifyExpectations(leeway=30),
            now=EXPIRES_AT + 29,
        )
        assert result.valid

    def test_absent_exp_never_expires(
        self,
        ed25519_keypair: tuple[SigningKey, VerificationKey],
        agent_credential: dict[str, Any],
        now: int,
    ) -> None:
        signing_key, verification_key = ed25519_keypair
        payload = dict(agent_credential)
        del payload["credentialExpirationDate"]
        token = _sign(signing_key, payload, now, skip_schema=True)

        result = verify(
            token.compact, verification_key, VerifyExpectations(skip_schema=True), now=2**40
        )

        assert result.claims.exp is None
        assert result.valid

    def test_not_yet_valid(
        self,
        ed25519_keypair: tuple[SigningKey, VerificationKey],
        agent_credential: dict[str, Any],
        now: int,
    ) -> None:
        signing_key, verification_key = ed25519_keypair
        token = _sign(signing_key, agent_credential, now)

        assert verify(token.compact, verification_key, now=ISSUED_AT).valid
        result = verify(token.compact, verification_key, now=ISSUED_AT - 1)
        assert result.failure_codes == ["beltic:token/not_yet_valid"]
        assert isinstance(result.failures[0], NotYetValidError)


class TestExpectations:
    """Tests for issuer, audience and type expectations."""

    def test_issuer_mismatch(
        self,
        ed25519_keypair: tuple[SigningKey, VerificationKey],
        agent_credential: dict[str, Any],
        now: int,
    ) -> None:
        signing_key, verification_key = ed25519_keypair
        token = _sign(signing_key, agent_credential, now)
        result = verify(
            token.compact,
            verification_key,
            VerifyExpectations(issuer="did:web:someone-else.dev"),
            now=now,
        )
        assert isinstance(result.failures[0], IssuerMismatchError)

    @pytest.mark.parametrize(
        ("token_audience", "expected", "valid"),
        [
            (["https://a"], ["https://a"], True),
            (["https://a", "https://b"], ["https://a"], True),
            (["https://a", "https://b"], ["https://b", "https://a"], True),
            (["https://a"], ["https://a", "https://b"], False),
            ([], ["https://a"], False),
            ([], [], True),
        ],
    )
    def test_audience_subset_rule(
        self,
        ed25519_keypair: tuple[SigningKey, VerificationKey],
        agent_credential: dict[str, Any],
        now: int,
        token_audience: list[str],
        expected: list[str],
        valid: bool,
    ) -> None:
        """Every expected audience must appear in the token's aud claim."""
        signing_key, verification_key = ed25519_keypair
        token = _sign(signing_key, agent_credential, now, audience=token_audience)
        result = verify(
            token.compact, verification_key, VerifyExpectations(audience=expected), now=now
        )
        assert result.valid is valid
        if not valid:
            assert isinstance(result.failures[0], AudienceMismatchError)

    def test_credential_type_mismatch(
        self,
        ed25519_keypair: tuple[SigningKey, VerificationKey],
        developer_credential: dict[str, Any],
        now: int,
    ) -> None:
        signing_key, verification_key = ed25519_keypair
        token = _sign(signing_key, developer_credential, now)
        result = verify(
            token.compact,
            verification_key,
            VerifyExpectations(credential_type=CredentialKind.AGENT),
            now=now,
        )
        failure = result.failures[0]
        assert isinstance(failure, CredentialTypeMismatchError)
        assert failure.actual == "developer"

    def test_all_failures_are_collected_in_order(
        self,
        ed25519_keypair: tuple[SigningKey, VerificationKey],
        agent_credential: dict[str, Any],
        now: int,
    ) -> None:
        signing_key, verification_key = ed25519_keypair
        token = _sign(signing_key, agent_credential, now)
        result = verify(
            token.compact,
            verification_key,
            VerifyExpectations(
                issuer="did:web:other.dev",
                audience=["https://rp"],
                credential_type=CredentialKind.DEVELOPER,
            ),
            now=EXPIRES_AT,
        )
        assert result.failure_codes == [
            "beltic:token/expired",
            "beltic:claims/issuer_mismatch",
            "beltic:claims/audience_mismatch",
            "beltic:claims/credential_type_mismatch",
        ]


class TestEmbeddedSchema:
    """Tests for schema validation of the embedded credential."""

    def test_schema_violation_is_reported(
        self,
        ed25519_keypair: tuple[SigningKey, VerificationKey],
        agent_credential: dict[str, Any],
        schema_validator: SchemaValidator,
        now: int,
    ) -> None:
        signing_key, verification_key = ed25519_keypair
        agent_credential["currentStatus"] = "shipping"
        token = _sign(signing_key, agent_credential, now, skip_schema=True)

        result = verify(token.compact, verification_key, schema_validator=schema_validator, now=now)

        assert result.signature_valid
        assert not result.valid
        assert isinstance(result.failures[0], SchemaViolationError)
        assert [v.pointer for v in result.schema_violations] == ["/currentStatus"]

    def test_skip_schema(
        self,
        ed25519_keypair: tuple[SigningKey, VerificationKey],
        agent_credential: dict[str, Any],
        now: int,
    ) -> None:
        signing_key, verification_key = ed25519_keypair
        agent_credential["currentStatus"] = "shipping"
        token = _sign(signing_key, agent_credential, now, skip_schema=True)
        result = verify(
            token.compact, verification_key, VerifyExpectations(skip_schema=True), now=now
        )
        assert result.valid
        assert result.schema_violations == []


def test_verifies_token_signed_by_joserfc(
    es256_keypair: tuple[SigningKey, VerificationKey],
    agent_credential: dict[str, Any],
    now: int,
) -> None:
    """ES256 tokens produced by another JOSE implementation verify."""
    signing_key, verification_key = es256_keypair
    key = ECKey.import_key(encode_private_key(signing_key))
    header = {"alg": "ES256", "typ": AGENT_TYP, "cty": "application/json", "kid": "k"}
    claims = {
        "iss": "did:web:beltic.dev",
        "sub": "did:web:agent.example.com",
        "jti": "j-1",
        "nbf": ISSUED_AT,
        "vc": agent_credential,
    }
    token = jws.serialize_compact(header, json.dumps(claims), key, algorithms=["ES256"])

    result = verify(token, verification_key, now=now)

    assert result.valid
    assert result.claims.jti == "j-1"


def test_joserfc_decodes_signed_token(
    keypair: tuple[SigningKey, VerificationKey],
    agent_credential: dict[str, Any],
    now: int,
) -> None:
    """Tokens are plain JWS: joserfc verifies them with the public JWK."""
    signing_key, verification_key = keypair
    token = _sign(signing_key, agent_credential, now)
    alg = verification_key.algorithm.jose_label

    obj = jws.deserialize_compact(token.compact, verification_key.jose_key(), algorithms=[alg])

    assert obj.headers()["kid"] == "did:web:agent.example.com#key-1"
    assert json.loads(obj.payload)["vc"] == agent_credential
