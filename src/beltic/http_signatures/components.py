"""RFC 9421 covered components, signature bases and structured-field parsing.

Only the subset of RFC 8941 structured fields used by ``Signature-Input`` and
``Signature`` is handled: a dictionary whose members are inner lists of
strings with string/integer/token parameters, or byte sequences.
"""

from __future__ import annotations

import hashlib
import re
from typing import Mapping, Optional, Union
from urllib.parse import urlsplit

from beltic.errors import ConfigurationError, MalformedTokenError
from beltic.utils.encoding import b64_decode, b64_encode, b64url_decode

ParamValue = Union[str, int]

DEFAULT_COMPONENTS: tuple[str, ...] = ("@method", "@authority", "@path", "signature-agent")
DERIVED_COMPONENTS = frozenset(
    {"@method", "@authority", "@scheme", "@path", "@query", "@target-uri", "@request-target"}
)
SIGNATURE_AGENT = "signature-agent"
CONTENT_DIGEST = "content-digest"

_DEFAULT_PORTS = {"http": 80, "https": 443}
_KEY_RE = re.compile(r"[a-z*][a-z0-9_\-.*]*")
_TOKEN_RE = re.compile(r"[A-Za-z*][A-Za-z0-9:/!#$%&'*+\-.^_`|~]*")
_INTEGER_RE = re.compile(r"-?[0-9]{1,15}")
_BYTES_RE = re.compile(r":([A-Za-z0-9+/=_\-]*):")


class Token(str):
    """RFC 8941 token (``tag=web-bot-auth``); serialized without quotes."""


def content_digest(body: bytes) -> str:
    """``Content-Digest`` value for ``body`` (RFC 9530, sha-256)."""
    return f"sha-256=:{b64_encode(hashlib.sha256(body).digest())}:"


def normalize_headers(headers: Optional[Mapping[str, str]]) -> dict[str, str]:
    """Lower-case names, trimmed values."""
    return {name.strip().lower(): value.strip() for name, value in (headers or {}).items()}


def resolve_components(requested: Optional[list[str]], has_body: bool) -> list[str]:
    """Covered components with the Web Bot Auth requirements applied.

    ``@authority`` is inserted first and ``signature-agent`` appended when
    missing; ``content-digest`` is appended when a body is present.
    """
    components = [c.strip().lower() for c in (requested or DEFAULT_COMPONENTS) if c.strip()]
    if "@authority" not in components:
        components.insert(0, "@authority")
    if SIGNATURE_AGENT not in components:
        components.append(SIGNATURE_AGENT)
    if has_body and CONTENT_DIGEST not in components:
        components.append(CONTENT_DIGEST)
    if len(set(components)) != len(components):
        raise ConfigurationError(
            "Covered components must not repeat", details={"components": components}
        )
    return components


class RequestTarget:
    """Derived component values of a request (RFC 9421 section 2.2)."""

    def __init__(self, method: str, url: str) -> None:
        parts = urlsplit(url)
        if not parts.scheme or not parts.hostname:
            raise ConfigurationError(f"URL must be absolute: {url}", details={"url": url})
        self.method = method.upper()
        self.url = url
        self.scheme = parts.scheme.lower()
        host = parts.hostname.lower()
        if ":" in host:
            host = f"[{host}]"
        try:
            port = parts.port
        except ValueError as e:
            raise ConfigurationError(f"URL has an invalid port: {url}") from e
        if port is not None and port != _DEFAULT_PORTS.get(self.scheme):
            host = f"{host}:{port}"
        self.authority = host
        self.path = parts.path or "/"
        self.query = f"?{parts.query}" if parts.query else "?"
        self.request_target = self.path + (f"?{parts.query}" if parts.query else "")

    def derived(self, name: str) -> str:
        values = {
            "@method": self.method,
            "@authority": self.authority,
            "@scheme": self.scheme,
            "@path": self.path,
            "@query": self.query,
            "@target-uri": self.url,
            "@request-target": self.request_target,
        }
        return values[name]


def component_value(name: str, target: RequestTarget, headers: Mapping[str, str]) -> str:
    """Value of one covered component; header names are looked up lower-case.

    Raises:
        ConfigurationError: If a covered header is absent.
    """
    if name in DERIVED_COMPONENTS:
        return target.derived(name)
    if name.startswith("@"):
        raise ConfigurationError(f"Unsupported derived component '{name}'")
    if name not in headers:
        raise ConfigurationError(
            f"Component '{name}' not found in headers", details={"component": name}
        )
    return headers[name]


def serialize_string(value: str) -> str:
    if any(ord(ch) < 0x20 or ord(ch) > 0x7E for ch in value):
        raise ConfigurationError("Structured field strings must be printable ASCII")
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def serialize_params(params: list[tuple[str, ParamValue]]) -> str:
    out = []
    for name, value in params:
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise ConfigurationError(f"Unsupported parameter value for '{name}'")
        if isinstance(value, int):
            rendered = str(value)
        elif isinstance(value, Token):
            if _TOKEN_RE.fullmatch(value) is None:
                raise ConfigurationError(f"Invalid token value for '{name}'")
            rendered = str(value)
        else:
            rendered = serialize_string(value)
        out.append(f";{name}={rendered}")
    return "".join(out)


def serialize_signature_params(
    components: list[str], params: list[tuple[str, ParamValue]]
) -> str:
    """``@signature-params`` value: inner list of component names plus parameters."""
    inner = " ".join(serialize_string(c) for c in components)
    return f"({inner}){serialize_params(params)}"


def signature_base(
    components: list[str],
    params: list[tuple[str, ParamValue]],
    target: RequestTarget,
    headers: Mapping[str, str],
) -> bytes:
    """Signature base (RFC 9421 section 2.5); lines joined by LF, no trailing LF."""
    lines = [
        f"{serialize_string(name)}: {component_value(name, target, headers)}"
        for name in components
    ]
    lines.append(f'"@signature-params": {serialize_signature_params(components, params)}')
    return "\n".join(lines).encode("utf-8")


# -- parsing -------------------------------------------------------------------


class _Parser:
    """Minimal RFC 8941 dictionary parser."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def error(self, reason: str) -> MalformedTokenError:
        return MalformedTokenError(f"{reason} at offset {self.pos}")

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def skip_ows(self) -> None:
        while self.peek() in (" ", "\t"):
            self.pos += 1

    def skip_sp(self) -> None:
        while self.peek() == " ":
            self.pos += 1

    def expect(self, char: str) -> None:
        if self.peek() != char:
            raise self.error(f"expected '{char}'")
        self.pos += 1

    def match(self, pattern: re.Pattern[str]) -> str:
        found = pattern.match(self.text, self.pos)
        if found is None:
            raise self.error("unexpected character")
        self.pos = found.end()
        return found.group(0)

    def key(self) -> str:
        return self.match(_KEY_RE)

    def string(self) -> str:
        self.expect('"')
        chars: list[str] = []
        while True:
            ch = self.peek()
            if not ch:
                raise self.error("unterminated string")
            self.pos += 1
            if ch == '"':
                return "".join(chars)
            if ch == "\\":
                escaped = self.peek()
                if escaped not in ('"', "\\"):
                    raise self.error("invalid escape")
                self.pos += 1
                chars.append(escaped)
            else:
                chars.append(ch)

    def bare_item(self) -> Union[str, int, bool, bytes]:
        ch = self.peek()
        if ch == '"':
            return self.string()
        if ch == ":":
            found = self.match(_BYTES_RE)
            return _decode_byte_sequence(found[1:-1])
        if ch == "?":
            self.pos += 1
            flag = self.peek()
            if flag not in ("0", "1"):
                raise self.error("invalid boolean")
            self.pos += 1
            return flag == "1"
        if ch == "-" or ch.isdigit():
            return int(self.match(_INTEGER_RE))
        return Token(self.match(_TOKEN_RE))

    def params(self) -> list[tuple[str, ParamValue]]:
        out: list[tuple[str, ParamValue]] = []
        while self.peek() == ";":
            self.pos += 1
            self.skip_sp()
            name = self.key()
            value: Union[str, int, bool, bytes] = True
            if self.peek() == "=":
                self.pos += 1
                value = self.bare_item()
            if not isinstance(value, (str, int)) or isinstance(value, bool):
                raise self.error(f"unsupported value for parameter '{name}'")
            out.append((name, value))
        return out

    def inner_list(self) -> list[str]:
        self.expect("(")
        items: list[str] = []
        while True:
            self.skip_sp()
            if self.peek() == ")":
                self.pos += 1
                return items
            item = self.bare_item()
            if not isinstance(item, str) or isinstance(item, Token):
                raise self.error("covered components must be strings")
            if self.params():
                raise self.error("component parameters are not supported")
            items.append(item)
            if self.peek() not in (" ", ")"):
                raise self.error("expected space or ')'")

    def dictionary(self) -> list[tuple[str, str]]:
        """Members as (key, raw member text) pairs, in order."""
        members: list[tuple[str, str]] = []
        self.skip_sp()
        while self.pos < len(self.text):
            name = self.key()
            self.expect("=")
            start = self.pos
            depth = 0
            in_string = False
            while self.pos < len(self.text):
                ch = self.text[self.pos]
                if in_string:
                    if ch == "\\":
                        self.pos += 1
                    elif ch == '"':
                        in_string = False
                elif ch == '"':
                    in_string = True
                elif ch == "(":
                    depth += 1
                elif ch == ")":
                    depth -= 1
                elif ch == "," and depth == 0:
                    break
                self.pos += 1
            members.append((name, self.text[start : self.pos].strip()))
            if self.pos < len(self.text):
                self.pos += 1
                self.skip_ows()
        return members


def _decode_byte_sequence(value: str) -> bytes:
    try:
        return b64_decode(value)
    except ValueError:
        pass
    try:
        return b64url_decode(value)
    except ValueError as e:
        raise MalformedTokenError("invalid byte sequence encoding") from e


def parse_dictionary(header_value: str) -> list[tuple[str, str]]:
    return _Parser(header_value).dictionary()


def parse_signature_input_member(text: str) -> tuple[list[str], list[tuple[str, ParamValue]]]:
    """Parse ``("@method" ...);alg="ed25519";...`` into components and parameters."""
    parser = _Parser(text)
    components = parser.inner_list()
    params = parser.params()
    if parser.pos != len(text):
        raise parser.error("trailing characters")
    return components, params


def parse_signature_member(text: str) -> bytes:
    """Parse a ``Signature`` member value (``:<base64>:``)."""
    parser = _Parser(text)
    value = parser.bare_item()
    parser.params()
    if not isinstance(value, bytes) or parser.pos != len(text):
        raise MalformedTokenError("Signature member must be a byte sequence")
    return value
