"""Bundled credential JSON Schemas and the validator that applies them.

Public exports:
    SchemaId: Identifiers of the bundled schemas
    SchemaCache: Thread-safe cache of compiled validators
    SchemaValidator: validate()/check() over a credential document
    SchemaViolation: (pointer, message) validation failure
    default_schema_cache: Process-wide SchemaCache
    load_schema: Raw schema document for an id
    export_all_schemas: Write every schema to a directory
"""

from beltic.schemas.validator import (
    SchemaCache,
    SchemaId,
    SchemaValidator,
    SchemaViolation,
    default_schema_cache,
    export_all_schemas,
    list_schema_entries,
    load_schema,
)

__all__ = [
    "SchemaCache",
    "SchemaId",
    "SchemaValidator",
    "SchemaViolation",
    "default_schema_cache",
    "export_all_schemas",
    "list_schema_entries",
    "load_schema",
]
