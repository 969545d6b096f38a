"""
Upstream AI API client.
"""

from typing import Any, Dict, Optional

import httpx

from shared.errors import BadRequest, InternalError, UpstreamError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..upstream.adapters import UpstreamAdapter


class UpstreamClient:
    """Forwards validated request bodies to the selected AI provider."""

    def __init__(
        self,
        adapter: UpstreamAdapter,
        client: httpx.AsyncClient,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.adapter = adapter
        self.client = client
        self.metrics = metrics
        self.logger = get_logger("gateway.upstream_client")

    async def dispatch(self, body: Dict[str, Any]) -> Any:
        """POST ``body`` upstream and return the (adapted) JSON response."""
        try:
            upstream_request = self.adapter.build_request(body)
        except ValueError as e:
            self._record("invalid_request")
            raise BadRequest(details={"error": str(e)}) from e

        try:
            response = await self._post(upstream_request)
        except httpx.HTTPError as e:
            self._record("unreachable")
            self.logger.error("Upstream unreachable", adapter=self.adapter.name, error_type=type(e).__name__)
            raise InternalError(details={"http_error": type(e).__name__}) from e

        if not response.is_success:
            self._record("error")
            # Full upstream text stays in the logs, the caller only gets the reason phrase
            self.logger.error(
                "Upstream API error",
                adapter=self.adapter.name,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise UpstreamError(
                response.status_code,
                response.reason_phrase or "Upstream Error",
                details={"adapter": self.adapter.name},
            )

        try:
            payload = response.json()
        except ValueError as e:
            self._record("invalid_response")
            raise InternalError(details={"reason": "upstream returned non-JSON body"}) from e

        self._record("ok")
        return self.adapter.parse_response(payload)

    async def _post(self, upstream_request) -> httpx.Response:
        if self.metrics is None:
            return await self._send(upstream_request)
        with self.metrics.time_operation("upstream_request_duration_seconds", adapter=self.adapter.name):
            return await self._send(upstream_request)

    async def _send(self, upstream_request) -> httpx.Response:
        return await self.client.post(
            upstream_request.url,
            params=upstream_request.params,
            json=upstream_request.json,
            headers={"Content-Type": "application/json", **upstream_request.headers},
        )

    def _record(self, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("upstream_requests_total", adapter=self.adapter.name, outcome=outcome)
