"""Data carried through HTTP message signing and verification."""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from typing import Optional

from beltic.http_signatures.components import ParamValue, RequestTarget

WEB_BOT_AUTH_TAG = "web-bot-auth"
KEY_DIRECTORY_PATH = "/.well-known/http-message-signatures-directory"
DEFAULT_LABEL = "sig1"
NONCE_BYTES = 32


@dataclass
class HttpSignatureContext:
    """Everything needed to build one signature base. Built per request, used once."""

    target: RequestTarget
    components: list[str]
    headers: dict[str, str]
    keyid: str
    alg: str
    created: int
    expires: Optional[int]
    nonce: Optional[str]
    tag: Optional[str]
    label: str = DEFAULT_LABEL
    body: Optional[bytes] = None
    param_order: tuple[str, ...] = ("alg", "keyid", "created", "expires", "nonce", "tag")

    @property
    def params(self) -> list[tuple[str, ParamValue]]:
        values: dict[str, Optional[ParamValue]] = {
            "alg": self.alg,
            "keyid": self.keyid,
            "created": self.created,
            "expires": self.expires,
            "nonce": self.nonce,
            "tag": self.tag,
        }
        return [
            (name, values[name])  # type: ignore[misc]
            for name in self.param_order
            if values[name] is not None
        ]


@dataclass(frozen=True)
class SignatureHeaders:
    """Headers to attach to a signed request, plus enough context to render curl."""

    signature_agent: str
    signature_input: str
    signature: str
    content_digest: Optional[str]
    method: str
    url: str
    keyid: str
    created: int
    expires: int
    extra_headers: dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None

    def as_dict(self) -> dict[str, str]:
        headers = {
            "Signature-Agent": self.signature_agent,
            "Signature-Input": self.signature_input,
            "Signature": self.signature,
        }
        if self.content_digest is not None:
            headers["Content-Digest"] = self.content_digest
        return headers

    def to_lines(self) -> list[str]:
        return [f"{name}: {value}" for name, value in self.as_dict().items()]

    def to_curl(self) -> str:
        """A ``curl`` command line sending the signed request."""
        parts = [f"curl -X {self.method} {shlex.quote(self.url)}"]
        for line in self.to_lines():
            parts.append(f"-H {shlex.quote(line)}")
        for name, value in self.extra_headers.items():
            if name in ("signature-agent", "content-digest"):
                continue
            parts.append(f"-H {shlex.quote(f'{name}: {value}')}")
        if self.body is not None:
            parts.append(f"--data-binary {shlex.quote(self.body.decode('utf-8', 'replace'))}")
        return " \\\n  ".join(parts)


@dataclass(frozen=True)
class VerifiedHttpSignature:
    """Parameters of a signature that verified successfully."""

    label: str
    components: list[str]
    keyid: str
    alg: str
    created: Optional[int]
    expires: Optional[int]
    nonce: Optional[str]
    tag: Optional[str]
