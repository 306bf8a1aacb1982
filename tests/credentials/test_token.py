"""Tests for JWS compact token encoding and parsing."""

import json
from typing import Any

import pytest

from beltic.credentials.models import AGENT_TYP, ClaimsSet, CredentialKind, TokenHeader
from beltic.credentials.token import encode_token, parse_token
from beltic.crypto.algorithms import Algorithm
from beltic.crypto.keys import SigningKey, VerificationKey
from beltic.errors import MalformedTokenError
from beltic.utils.encoding import b64url_decode, b64url_encode


def _segment(value: Any) -> str:
    return b64url_encode(json.dumps(value).encode("utf-8"))


def _claims() -> ClaimsSet:
    return ClaimsSet(iss="did:web:beltic.dev", sub="did:web:a", jti="id-1", nbf=1, vc={"a": "é"})


def test_encode_uses_fixed_header_order(
    ed25519_keypair: tuple[SigningKey, VerificationKey],
) -> None:
    signing_key, verification_key = ed25519_keypair
    header = TokenHeader(alg="EdDSA", typ=AGENT_TYP, kid="key-1")
    token = encode_token(header, _claims(), signing_key)

    assert b64url_decode(token.header_segment) == (
        b'{"alg":"EdDSA","typ":"application/beltic-agent+jwt",'
        b'"cty":"application/json","kid":"key-1"}'
    )
    assert verification_key.verify(b64url_decode(token.signature_segment), token.signing_input)
    assert str(token) == token.compact
    assert token.compact.count(".") == 2


def test_claims_are_utf8_json(ed25519_keypair: tuple[SigningKey, VerificationKey]) -> None:
    signing_key, _ = ed25519_keypair
    header = TokenHeader(alg="EdDSA", typ=AGENT_TYP, kid="key-1")
    token = encode_token(header, _claims(), signing_key)
    assert "é".encode("utf-8") in b64url_decode(token.claims_segment)


def test_parse_roundtrip(ed25519_keypair: tuple[SigningKey, VerificationKey]) -> None:
    signing_key, _ = ed25519_keypair
    header = TokenHeader(alg="EdDSA", typ=AGENT_TYP, kid="key-1")
    token = encode_token(header, _claims(), signing_key)

    parsed = parse_token(token.compact)

    assert parsed.header == header
    assert parsed.claims == _claims()
    assert parsed.algorithm is Algorithm.EDDSA
    assert parsed.kind is CredentialKind.AGENT
    assert len(parsed.signature) == 64


_HEADER = {"alg": "EdDSA", "typ": AGENT_TYP, "cty": "application/json", "kid": "k"}
_CLAIMS = {"iss": "did:web:x", "jti": "j", "nbf": 1, "vc": {}}


@pytest.mark.parametrize(
    ("token", "reason"),
    [
        ("a.b", "expected 3 segments"),
        ("a.b.c.d", "expected 3 segments"),
        (f"!!.{_segment(_CLAIMS)}.AA", "header is not valid base64url"),
        (f"{b64url_encode(b'nope')}.{_segment(_CLAIMS)}.AA", "header is not valid JSON"),
        (f"{_segment([1])}.{_segment(_CLAIMS)}.AA", "header must be a JSON object"),
        (f"{_segment({**_HEADER, 'alg': 'none'})}.{_segment(_CLAIMS)}.AA", "unsupported alg"),
        (f"{_segment({**_HEADER, 'typ': 'JWT'})}.{_segment(_CLAIMS)}.AA", "unsupported typ"),
        (f"{_segment({**_HEADER, 'kid': ''})}.{_segment(_CLAIMS)}.AA", "invalid header"),
        (f"{_segment(_HEADER)}.{_segment({**_CLAIMS, 'nbf': '1'})}.AA", "invalid claims (nbf)"),
        (f"{_segment(_HEADER)}.{_segment({'vc': {}})}.AA", "invalid claims"),
        (f"{_segment(_HEADER)}.{_segment(_CLAIMS)}.A=", "signature is not valid base64url"),
    ],
)
def test_parse_rejects_malformed(token: str, reason: str) -> None:
    with pytest.raises(MalformedTokenError) as exc_info:
        parse_token(token)
    assert reason in exc_info.value.message


def test_parse_ignores_unknown_header_members() -> None:
    header = {**_HEADER, "x5u": "https://ignored"}
    parsed = parse_token(f"{_segment(header)}.{_segment(_CLAIMS)}.AA")
    assert parsed.header.kid == "k"


def test_null_members_inside_vc_survive(
    ed25519_keypair: tuple[SigningKey, VerificationKey],
) -> None:
    signing_key, _ = ed25519_keypair
    header = TokenHeader(alg="EdDSA", typ=AGENT_TYP, kid="key-1")
    claims = ClaimsSet(
        iss="did:web:beltic.dev", jti="id-1", nbf=1, vc={"a": None, "b": [None, {"c": None}]}
    )

    parsed = parse_token(encode_token(header, claims, signing_key).compact)

    assert parsed.claims.vc == {"a": None, "b": [None, {"c": None}]}
    assert "sub" not in json.loads(b64url_decode(parsed.token.claims_segment))
