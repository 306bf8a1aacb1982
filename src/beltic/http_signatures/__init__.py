"""HTTP message signatures (RFC 9421) for Web Bot Auth.

Public exports:
    sign: Sign an outgoing request; returns SignatureHeaders
    verify: Verify a signed request against a VerificationKey
    SignatureHeaders: Signature-Agent / Signature-Input / Signature (+ Content-Digest)
    content_digest: RFC 9530 Content-Digest value for a body
"""

from beltic.http_signatures.components import DEFAULT_COMPONENTS, content_digest
from beltic.http_signatures.engine import DEFAULT_TTL_SECONDS, sign, verify
from beltic.http_signatures.models import (
    KEY_DIRECTORY_PATH,
    WEB_BOT_AUTH_TAG,
    HttpSignatureContext,
    SignatureHeaders,
    VerifiedHttpSignature,
)

__all__ = [
    "DEFAULT_COMPONENTS",
    "DEFAULT_TTL_SECONDS",
    "KEY_DIRECTORY_PATH",
    "WEB_BOT_AUTH_TAG",
    "HttpSignatureContext",
    "SignatureHeaders",
    "VerifiedHttpSignature",
    "content_digest",
    "sign",
    "verify",
]
