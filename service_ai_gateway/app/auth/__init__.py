"""
Service-account credential helpers for the gateway.
"""

from .keys import SigningKey, import_private_key
from .assertion import AssertionSigner, base64url_decode, base64url_encode

__all__ = [
    "AssertionSigner",
    "SigningKey",
    "base64url_decode",
    "base64url_encode",
    "import_private_key",
]
