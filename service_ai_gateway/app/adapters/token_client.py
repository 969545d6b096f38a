"""
OAuth2 token endpoint client (JWT bearer grant, RFC 7523).
"""

from typing import Optional

import httpx

from shared.errors import TokenExchangeError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..auth.assertion import AssertionSigner
from ..models import AccessToken

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"


class TokenClient:
    """Exchanges signed assertions for short-lived access tokens."""

    def __init__(
        self,
        token_uri: str,
        client: httpx.AsyncClient,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.token_uri = token_uri
        self.client = client
        self.metrics = metrics
        self.logger = get_logger("gateway.token_client")

    async def exchange(self, assertion: str) -> AccessToken:
        """POST the assertion and return the issued bearer token."""
        try:
            response = await self.client.post(
                self.token_uri,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
            )
        except httpx.HTTPError as e:
            self._record("error")
            self.logger.error("Token endpoint unreachable", error=str(e), error_type=type(e).__name__)
            raise TokenExchangeError(
                "Token endpoint unreachable",
                details={"http_error": type(e).__name__}
            ) from e

        if not response.is_success:
            self._record("rejected")
            self.logger.error(
                "Token exchange rejected",
                status_code=response.status_code,
                body=response.text[:200]
            )
            raise TokenExchangeError(
                f"Token endpoint error: {response.status_code}",
                details={"status_code": response.status_code}
            )

        try:
            payload = response.json()
        except ValueError as e:
            self._record("error")
            raise TokenExchangeError("Token endpoint returned non-JSON body") from e

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not isinstance(token, str) or not token:
            self._record("error")
            raise TokenExchangeError("Token response missing access_token")

        expires_in = payload.get("expires_in")
        self._record("ok")
        return AccessToken(
            value=token,
            expires_in=expires_in if isinstance(expires_in, int) else None,
        )

    async def fetch_access_token(self, signer: AssertionSigner, scope: str) -> AccessToken:
        """Sign a fresh assertion for ``scope`` and exchange it."""
        return await self.exchange(signer.sign(scope))

    def _record(self, status: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("token_exchanges_total", status=status)
