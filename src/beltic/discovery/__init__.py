"""Beltic Discovery Layer.

Key directories for HTTP message signatures (Web Bot Auth), served at
``/.well-known/http-message-signatures-directory``.

Public exports:
    directory: build/parse key directories and sign directory responses
    wellknown: Well-known path, media type and cache constants
"""

from beltic.discovery import directory
from beltic.discovery import wellknown
from beltic.discovery.directory import (
    KeyDirectory,
    KeyDirectoryEntry,
    SignedDirectoryResponse,
    build,
    parse_directory,
    sign_response,
)

__all__ = [
    "directory",
    "wellknown",
    "KeyDirectory",
    "KeyDirectoryEntry",
    "SignedDirectoryResponse",
    "build",
    "parse_directory",
    "sign_response",
]
