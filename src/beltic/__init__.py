"""Beltic: signed credentials and HTTP message signatures for software agents.

Credentials are signed as compact JWS tokens (EdDSA or ES256); outgoing
requests are signed per RFC 9421 with the Web Bot Auth profile; keys are
identified by RFC 7638 JWK thumbprints and published in key directories.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
