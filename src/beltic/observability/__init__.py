"""Observability module for Beltic.

Structured logging (structlog) shared by the signing, verification and
directory layers.

Example:
    >>> from beltic.observability import get_logger
    >>>
    >>> logger = get_logger(__name__)
    >>> logger.info("beltic.http.signed", keyid="...", components=4)
"""

from beltic.observability.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    sanitize_for_logging,
)

__all__ = [
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "sanitize_for_logging",
]
