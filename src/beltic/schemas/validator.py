"""JSON Schema validation for Beltic credentials.

Schemas are bundled with the package (JSON Schema Draft 2020-12) and compiled
lazily into ``jsonschema`` validators. Compiled validators live in an explicit
``SchemaCache`` object that callers create and pass in; the cache is
read-mostly and safe to share between threads (population of an entry is an
insert-if-absent under a lock, so concurrent first use compiles at most once
per id and never exposes a partially built entry).

Example:
    >>> from beltic.schemas import SchemaCache, SchemaId, SchemaValidator
    >>> validator = SchemaValidator(SchemaCache())
    >>> violations = validator.validate({"agentName": "demo"}, SchemaId.AGENT_V1)
    >>> violations[0].pointer
    '/agentId'
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from enum import Enum
from importlib import resources
from pathlib import Path
from typing import Any, Callable, Optional, Union

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError, ValidationError

from beltic.errors import ConfigurationError, SchemaViolationError
from beltic.observability import get_logger

logger = get_logger(__name__)


class SchemaId(str, Enum):
    """Versioned credential schemas bundled with Beltic."""

    AGENT_V1 = "agent-credential-v1"
    AGENT_V2 = "agent-credential-v2"
    DEVELOPER_V1 = "developer-credential-v1"
    DEVELOPER_V2 = "developer-credential-v2"

    def __str__(self) -> str:
        return self.value

    @property
    def relative_path(self) -> str:
        return _SCHEMA_PATHS[self]

    @classmethod
    def parse(cls, value: Union[SchemaId, str]) -> SchemaId:
        """Resolve a schema id; unknown ids are a configuration error."""
        if isinstance(value, SchemaId):
            return value
        try:
            return cls(value)
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown schema id: {value}",
                details={"schema_id": value, "known": [s.value for s in cls]},
            ) from e


_SCHEMA_PATHS: dict[SchemaId, str] = {
    SchemaId.AGENT_V1: "agent/v1/agent-credential-v1.schema.json",
    SchemaId.AGENT_V2: "agent/v2/agent-credential-v2.schema.json",
    SchemaId.DEVELOPER_V1: "developer/v1/developer-credential-v1.schema.json",
    SchemaId.DEVELOPER_V2: "developer/v2/developer-credential-v2.schema.json",
}


@dataclass(frozen=True)
class SchemaViolation:
    """One validation failure: JSON Pointer (RFC 6901) into the document + message."""

    pointer: str
    message: str

    def as_tuple(self) -> tuple[str, str]:
        return (self.pointer, self.message)


def load_schema(schema_id: Union[SchemaId, str]) -> dict[str, Any]:
    """Return the bundled JSON schema document for ``schema_id``."""
    sid = SchemaId.parse(schema_id)
    resource = resources.files("beltic.schemas")
    for part in sid.relative_path.split("/"):
        resource = resource.joinpath(part)
    schema: dict[str, Any] = json.loads(resource.read_text(encoding="utf-8"))
    return schema


def list_schema_entries(output_dir: Path) -> list[tuple[str, Path]]:
    """List schema ids and the paths they are exported to under ``output_dir``."""
    return [(sid.value, output_dir / sid.relative_path) for sid in SchemaId]


def export_all_schemas(output_dir: Path) -> list[Path]:
    """Write every bundled schema below ``output_dir``; returns written paths."""
    written: list[Path] = []
    for sid in SchemaId:
        path = output_dir / sid.relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(load_schema(sid), indent=2), encoding="utf-8")
        written.append(path)
    return written


def _escape_pointer_token(token: Any) -> str:
    return str(token).replace("~", "~0").replace("/", "~1")


def _pointer(path: Any) -> str:
    return "".join("/" + _escape_pointer_token(part) for part in path)


def _violation_from_error(error: ValidationError) -> SchemaViolation:
    pointer = _pointer(error.absolute_path)
    if error.validator == "required" and isinstance(error.validator_value, list):
        # jsonschema reports missing members at the parent; point at the member itself.
        for name in error.validator_value:
            if error.message.startswith(repr(name)):
                return SchemaViolation(
                    pointer=f"{pointer}/{_escape_pointer_token(name)}",
                    message=f"missing required property '{name}'",
                )
    return SchemaViolation(pointer=pointer or "", message=error.message)


class SchemaCache:
    """Compiled validators keyed by SchemaId, populated lazily and thread-safely."""

    def __init__(
        self,
        loader: Optional[Callable[[SchemaId], dict[str, Any]]] = None,
    ) -> None:
        self._loader = loader or load_schema
        self._compiled: dict[SchemaId, Draft202012Validator] = {}
        self._lock = threading.Lock()

    def get(self, schema_id: Union[SchemaId, str]) -> Draft202012Validator:
        sid = SchemaId.parse(schema_id)
        compiled = self._compiled.get(sid)
        if compiled is not None:
            return compiled
        with self._lock:
            compiled = self._compiled.get(sid)
            if compiled is None:
                schema = self._loader(sid)
                try:
                    Draft202012Validator.check_schema(schema)
                except SchemaError as e:
                    raise ConfigurationError(
                        f"Schema {sid.value} is not a valid JSON Schema: {e.message}",
                        details={"schema_id": sid.value},
                    ) from e
                compiled = Draft202012Validator(schema)
                self._compiled[sid] = compiled
                logger.debug("beltic.schema.compiled", schema_id=sid.value)
        return compiled

    def __contains__(self, schema_id: object) -> bool:
        return schema_id in self._compiled

    def __len__(self) -> int:
        return len(self._compiled)

    def clear(self) -> None:
        with self._lock:
            self._compiled.clear()


_default_cache: Optional[SchemaCache] = None
_default_cache_lock = threading.Lock()


def default_schema_cache() -> SchemaCache:
    """Process-wide cache for callers that do not inject their own."""
    global _default_cache
    with _default_cache_lock:
        if _default_cache is None:
            _default_cache = SchemaCache()
        return _default_cache


class SchemaValidator:
    """Validates JSON documents against the bundled credential schemas."""

    def __init__(self, cache: Optional[SchemaCache] = None) -> None:
        self.cache = cache if cache is not None else default_schema_cache()

    def validate(
        self, document: Any, schema_id: Union[SchemaId, str]
    ) -> list[SchemaViolation]:
        """Return violations sorted by pointer (empty list when valid).

        Raises:
            ConfigurationError: If ``schema_id`` is unknown.
        """
        compiled = self.cache.get(schema_id)
        violations = {_violation_from_error(err) for err in compiled.iter_errors(document)}
        return sorted(violations, key=lambda v: (v.pointer, v.message))

    def check(self, document: Any, schema_id: Union[SchemaId, str]) -> None:
        """Raise SchemaViolationError carrying every violation, if any."""
        violations = self.validate(document, schema_id)
        if violations:
            raise SchemaViolationError(
                SchemaId.parse(schema_id).value,
                [v.as_tuple() for v in violations],
            )
