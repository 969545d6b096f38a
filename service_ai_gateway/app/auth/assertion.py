"""
RFC 7523 JWT bearer assertions signed with a service-account key.
"""

from __future__ import annotations

import base64
import json
import time
from typing import Any, Dict, Optional

from shared.config import ServiceAccountCredential
from shared.errors import SigningError
from shared.logging import get_logger

from .keys import SigningKey, import_private_key

ASSERTION_LIFETIME_SECONDS = 3600
JWT_HEADER: Dict[str, str] = {"alg": "RS256", "typ": "JWT"}


def base64url_encode(data: bytes) -> str:
    """URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def base64url_decode(segment: str) -> bytes:
    padding = "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(segment + padding)


def _encode_json(payload: Dict[str, Any]) -> str:
    return base64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))


class AssertionSigner:
    """Builds and signs OAuth2 JWT bearer assertions for one service account."""

    def __init__(
        self,
        credential: ServiceAccountCredential,
        token_uri: str,
        *,
        signing_key: Optional[SigningKey] = None,
    ) -> None:
        self.credential = credential
        self.token_uri = token_uri
        self.logger = get_logger("gateway.auth.assertion")
        self._signing_key = signing_key

    @property
    def signing_key(self) -> SigningKey:
        """Key handle, imported from the credential on first use."""
        if self._signing_key is None:
            self._signing_key = import_private_key(self.credential.private_key)
        return self._signing_key

    def build_claims(self, scope: str, issued_at: int) -> Dict[str, Any]:
        return {
            "iss": self.credential.client_email,
            "sub": self.credential.client_email,
            "aud": self.token_uri,
            "iat": issued_at,
            "exp": issued_at + ASSERTION_LIFETIME_SECONDS,
            "scope": scope,
        }

    def sign(self, scope: str, issued_at: Optional[int] = None) -> str:
        """Return the compact ``header.claims.signature`` assertion."""
        if issued_at is None:
            issued_at = int(time.time())

        signing_input = f"{_encode_json(JWT_HEADER)}.{_encode_json(self.build_claims(scope, issued_at))}"

        key = self.signing_key
        if not isinstance(key, SigningKey):
            raise SigningError("Signing key handle is invalid", details={"key_type": type(key).__name__})

        try:
            signature = key.sign(signing_input.encode("ascii"))
        except Exception as exc:
            raise SigningError("Failed to sign assertion", details={"error_type": type(exc).__name__}) from exc

        self.logger.debug("Signed token assertion", issuer=self.credential.client_email, issued_at=issued_at)
        return f"{signing_input}.{base64url_encode(signature)}"
