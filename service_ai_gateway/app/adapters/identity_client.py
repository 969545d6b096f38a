"""
Identity platform client used to resolve end-user ID tokens.
"""

from typing import Any, Optional

import httpx

from shared.errors import IdentityServiceError, InvalidToken, Unauthorized
from shared.logging import get_logger

from ..models import IdentityClaim

BEARER_SCHEME = "bearer"

# Rejections caused by our own API key rather than the caller's token
API_KEY_ERROR_MARKERS = ("API_KEY_INVALID", "API key not valid", "API_KEY_SERVICE_BLOCKED")


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Return the token from an ``Authorization: Bearer <token>`` header."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != BEARER_SCHEME:
        raise Unauthorized(details={"reason": "missing or malformed Authorization header"})

    token = token.strip()
    if not token:
        raise Unauthorized(details={"reason": "empty bearer token"})
    return token


def _error_message(response: httpx.Response) -> str:
    try:
        payload: Any = response.json()
    except ValueError:
        return ""
    error = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(error, dict):
        return ""
    message = error.get("message")
    return message if isinstance(message, str) else ""


class IdentityClient:
    """Looks up the account behind an ID token."""

    def __init__(self, lookup_url: str, api_key: str, client: httpx.AsyncClient):
        self.lookup_url = lookup_url
        self.api_key = api_key
        self.client = client
        self.logger = get_logger("gateway.identity_client")

    async def verify(self, id_token: str) -> IdentityClaim:
        """Resolve ``id_token`` to the user's stable uid."""
        try:
            response = await self.client.post(
                self.lookup_url,
                params={"key": self.api_key},
                json={"idToken": id_token},
            )
        except httpx.HTTPError as e:
            self.logger.error("Identity lookup unreachable", error=str(e), error_type=type(e).__name__)
            raise IdentityServiceError(
                "Identity lookup unreachable",
                details={"http_error": type(e).__name__}
            ) from e

        if response.status_code >= 500 or response.status_code in (401, 403):
            self.logger.error("Identity lookup failed", status_code=response.status_code)
            raise IdentityServiceError(
                f"Identity lookup error: {response.status_code}",
                details={"status_code": response.status_code}
            )

        if not response.is_success:
            message = _error_message(response)
            if any(marker in message for marker in API_KEY_ERROR_MARKERS):
                self.logger.error("Identity lookup rejected the API key", status_code=response.status_code)
                raise IdentityServiceError(
                    "Identity lookup rejected the API key",
                    details={"status_code": response.status_code}
                )
            # INVALID_ID_TOKEN, TOKEN_EXPIRED, USER_NOT_FOUND and friends
            self.logger.warning("ID token rejected", status_code=response.status_code, reason=message)
            raise InvalidToken(details={"status_code": response.status_code, "reason": message})

        try:
            payload = response.json()
        except ValueError as e:
            raise IdentityServiceError("Identity lookup returned non-JSON body") from e

        users = payload.get("users") if isinstance(payload, dict) else None
        if not isinstance(users, list) or not users:
            raise InvalidToken(details={"reason": "no matching user"})

        first = users[0]
        uid = first.get("localId") if isinstance(first, dict) else None
        if not isinstance(uid, str) or not uid:
            raise InvalidToken(details={"reason": "user record missing localId"})

        return IdentityClaim(uid=uid)
