"""HTTP message signatures (RFC 9421) with the Web Bot Auth profile.

A signed request carries three headers::

    Signature-Agent: "https://agent.example/.well-known/http-message-signatures-directory"
    Signature-Input: sig1=("@method" "@authority" "@path" "signature-agent");alg="ed25519";
        keyid="<jwk thumbprint>";created=<unix>;expires=<unix>;nonce="<random>";tag="web-bot-auth"
    Signature: sig1=:<base64 signature>:

plus ``Content-Digest`` (RFC 9530) when the request has a body. The ``keyid``
is the RFC 7638 thumbprint of the signing key, so a verifier can find the key
in the agent's key directory.
"""

from __future__ import annotations

import secrets
import time
from typing import Mapping, Optional, Union
from urllib.parse import urlsplit

from beltic.crypto.algorithms import Algorithm
from beltic.crypto.keys import SigningKey, VerificationKey
from beltic.crypto.thumbprint import thumbprint
from beltic.errors import (
    ConfigurationError,
    ExpiredError,
    InsecureTransportError,
    InvalidSignatureError,
    MalformedTokenError,
    NotYetValidError,
)
from beltic.http_signatures.components import (
    CONTENT_DIGEST,
    SIGNATURE_AGENT,
    ParamValue,
    RequestTarget,
    content_digest,
    normalize_headers,
    parse_dictionary,
    parse_signature_input_member,
    parse_signature_member,
    resolve_components,
    serialize_signature_params,
    serialize_string,
    signature_base,
)
from beltic.http_signatures.models import (
    DEFAULT_LABEL,
    KEY_DIRECTORY_PATH,
    NONCE_BYTES,
    WEB_BOT_AUTH_TAG,
    HttpSignatureContext,
    SignatureHeaders,
    VerifiedHttpSignature,
)
from beltic.observability import get_logger
from beltic.utils.encoding import b64_encode, b64url_encode

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 60

Body = Union[str, bytes, None]


def _body_bytes(body: Body) -> Optional[bytes]:
    if body is None:
        return None
    return body.encode("utf-8") if isinstance(body, str) else bytes(body)


def validate_ttl(ttl: object) -> int:
    """A ttl must be a positive int; booleans are rejected."""
    if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl <= 0:
        raise ConfigurationError(
            f"Signature ttl must be a positive integer number of seconds, got {ttl!r}",
            details={"ttl": repr(ttl)},
        )
    return ttl


def validate_label(label: str) -> str:
    if not label or not label[0].isalpha() or not label.replace("-", "").isalnum():
        raise ConfigurationError(f"Invalid signature label: {label!r}")
    if label.lower() != label:
        raise ConfigurationError(f"Signature label must be lower-case: {label!r}")
    return label


def check_key_directory_url(url: str) -> str:
    """Require HTTPS; warn when the path is not the well-known directory path.

    Raises:
        InsecureTransportError: If the URL is not ``https``.
    """
    parts = urlsplit(url)
    if parts.scheme.lower() != "https" or not parts.hostname:
        raise InsecureTransportError(url)
    if parts.path != KEY_DIRECTORY_PATH:
        logger.warning(
            "beltic.http.key_directory_path_unexpected",
            url=url,
            expected_path=KEY_DIRECTORY_PATH,
        )
    return url


def new_nonce() -> str:
    return b64url_encode(secrets.token_bytes(NONCE_BYTES))


def sign_context(context: HttpSignatureContext, signing_key: SigningKey) -> tuple[str, str]:
    """Sign a prepared context; returns (Signature-Input, Signature) header values."""
    params = context.params
    base = signature_base(context.components, params, context.target, context.headers)
    signature = signing_key.sign(base)
    signature_input = (
        f"{context.label}={serialize_signature_params(context.components, params)}"
    )
    return signature_input, f"{context.label}=:{b64_encode(signature)}:"


def sign(
    method: str,
    url: str,
    headers: Optional[Mapping[str, str]],
    body: Body,
    signing_key: SigningKey,
    key_directory_url: str,
    components: Optional[list[str]] = None,
    ttl: int = DEFAULT_TTL_SECONDS,
    now: Optional[int] = None,
    label: str = DEFAULT_LABEL,
) -> SignatureHeaders:
    """Sign an outgoing HTTP request for Web Bot Auth.

    Args:
        method: HTTP method (upper-cased in the signature base)
        url: Absolute target URL
        headers: Request headers; names are matched case-insensitively
        body: Optional request body; adds a covered ``Content-Digest``
        signing_key: Agent key; its thumbprint becomes ``keyid``
        key_directory_url: HTTPS URL of the agent's key directory
        components: Covered components (default ``@method @authority @path signature-agent``)
        ttl: Seconds until ``expires``
        now: ``created`` timestamp in Unix seconds
        label: Signature label

    Raises:
        InsecureTransportError: ``key_directory_url`` is not HTTPS.
        ConfigurationError: Bad ttl or label, relative URL, or missing covered header.
    """
    check_key_directory_url(key_directory_url)
    validate_ttl(ttl)
    validate_label(label)

    target = RequestTarget(method, url)
    payload = _body_bytes(body)
    request_headers = normalize_headers(headers)
    request_headers[SIGNATURE_AGENT] = serialize_string(key_directory_url)
    if payload is not None:
        request_headers[CONTENT_DIGEST] = content_digest(payload)
    covered = resolve_components(components, has_body=payload is not None)

    keyid = thumbprint(signing_key.verification_key())
    created = int(time.time()) if now is None else now
    context = HttpSignatureContext(
        target=target,
        components=covered,
        headers=request_headers,
        keyid=keyid,
        alg=signing_key.algorithm.http_label,
        created=created,
        expires=created + ttl,
        nonce=new_nonce(),
        tag=WEB_BOT_AUTH_TAG,
        label=label,
        body=payload,
    )
    signature_input, signature = sign_context(context, signing_key)

    logger.info(
        "beltic.http.signed",
        method=target.method,
        authority=target.authority,
        keyid=keyid,
        components=len(covered),
        expires=created + ttl,
    )
    return SignatureHeaders(
        signature_agent=request_headers[SIGNATURE_AGENT],
        signature_input=signature_input,
        signature=signature,
        content_digest=request_headers.get(CONTENT_DIGEST),
        method=target.method,
        url=url,
        keyid=keyid,
        created=created,
        expires=created + ttl,
        extra_headers={
            name: value
            for name, value in request_headers.items()
            if name not in (SIGNATURE_AGENT, CONTENT_DIGEST)
        },
        body=payload,
    )


def _select_member(
    members: list[tuple[str, str]], label: Optional[str], header: str
) -> tuple[str, str]:
    if not members:
        raise MalformedTokenError(f"{header} header is empty")
    if label is None:
        return members[0]
    for name, value in members:
        if name == label:
            return name, value
    raise MalformedTokenError(f"{header} has no signature labelled '{label}'")


def _int_param(params: dict[str, ParamValue], name: str) -> Optional[int]:
    value = params.get(name)
    if value is None:
        return None
    if not isinstance(value, int):
        raise MalformedTokenError(f"signature parameter '{name}' must be an integer")
    return value


def _str_param(params: dict[str, ParamValue], name: str) -> Optional[str]:
    value = params.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise MalformedTokenError(f"signature parameter '{name}' must be a string")
    return value


def verify(
    method: str,
    url: str,
    headers: Mapping[str, str],
    body: Body,
    verification_key: VerificationKey,
    now: Optional[int] = None,
    label: Optional[str] = None,
    leeway: int = 0,
) -> VerifiedHttpSignature:
    """Verify a signed request against ``verification_key``.

    Raises:
        MalformedTokenError: Missing or unparseable signature headers.
        InvalidSignatureError: Wrong keyid or alg, digest mismatch, missing
            covered component, or bad signature.
        ExpiredError: ``expires`` has passed.
        NotYetValidError: ``created`` lies in the future.
    """
    request_headers = normalize_headers(headers)
    if "signature-input" not in request_headers or "signature" not in request_headers:
        raise MalformedTokenError("request has no Signature-Input/Signature headers")

    chosen, member = _select_member(
        parse_dictionary(request_headers["signature-input"]), label, "Signature-Input"
    )
    covered, param_list = parse_signature_input_member(member)
    _, signature_member = _select_member(
        parse_dictionary(request_headers["signature"]), chosen, "Signature"
    )
    signature = parse_signature_member(signature_member)
    params = dict(param_list)

    alg = _str_param(params, "alg")
    if alg is not None:
        try:
            declared = Algorithm.from_http(alg)
        except ValueError as e:
            raise InvalidSignatureError(f"Unsupported signature alg '{alg}'") from e
        if declared is not verification_key.algorithm:
            raise InvalidSignatureError(
                f"Signature alg '{alg}' does not match the "
                f"{verification_key.algorithm.http_label} verification key",
                details={"alg": alg, "key_alg": verification_key.algorithm.http_label},
            )
    keyid = _str_param(params, "keyid")
    expected_keyid = thumbprint(verification_key)
    if keyid != expected_keyid:
        raise InvalidSignatureError(
            "Signature keyid does not match the verification key",
            details={"keyid": keyid, "expected": expected_keyid},
        )

    payload = _body_bytes(body)
    if payload is not None and request_headers.get(CONTENT_DIGEST) != content_digest(payload):
        raise InvalidSignatureError("Content-Digest does not match the request body")

    try:
        base = signature_base(covered, param_list, RequestTarget(method, url), request_headers)
    except ConfigurationError as e:
        raise InvalidSignatureError(f"Cannot rebuild signature base: {e.message}") from e
    if not verification_key.verify(signature, base):
        logger.warning("beltic.http.signature_invalid", keyid=keyid, label=chosen)
        raise InvalidSignatureError("HTTP message signature verification failed")

    current = int(time.time()) if now is None else now
    created = _int_param(params, "created")
    expires = _int_param(params, "expires")
    if expires is not None and expires <= current - leeway:
        raise ExpiredError(expires, current)
    if created is not None and created > current + leeway:
        raise NotYetValidError(created, current)

    logger.info("beltic.http.verified", keyid=keyid, label=chosen, components=len(covered))
    return VerifiedHttpSignature(
        label=chosen,
        components=covered,
        keyid=expected_keyid,
        alg=verification_key.algorithm.http_label,
        created=created,
        expires=expires,
        nonce=_str_param(params, "nonce"),
        tag=_str_param(params, "tag"),
    )
