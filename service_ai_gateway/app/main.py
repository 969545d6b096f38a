"""
AI proxy gateway service.
"""

from typing import Dict, Optional

import httpx
from fastapi import Request
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import GatewaySettings

from .domain.handler import GatewayRequestHandler

PROXY_PATH = "/api/proxy"


class GatewayService(BaseService):
    """AI proxy gateway service implementation."""

    def __init__(
        self,
        settings: Optional[GatewaySettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__("gateway", 8000, settings=settings)
        self.http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.http_timeout_seconds)
        )
        self.handler = GatewayRequestHandler(self.config, self.http_client, metrics=self.metrics)

        @self.app.on_event("startup")
        async def _startup():
            missing = self.config.missing_secrets()
            if missing:
                # Requests will answer 500 until the settings are fixed
                self.logger.error("Gateway configuration incomplete", missing=missing)
            else:
                self.logger.info(
                    "Gateway ready",
                    upstream_adapter=self.config.upstream_adapter,
                    quota_enabled=self.config.quota_enabled,
                )

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.http_client.aclose()

        self._setup_gateway_routes()

        self.app.state.gateway_service = self

    def _setup_gateway_routes(self):
        """Set up the proxy route."""

        @self.app.api_route(PROXY_PATH, methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
        async def proxy(request: Request):
            """Forward a chat request to the upstream AI API."""
            raw_body = await request.body() if request.method == "POST" else b""
            result = await self.handler.handle(
                request.method,
                request.headers.get("Authorization"),
                raw_body,
            )
            return JSONResponse(status_code=result.status_code, content=result.body, headers=result.headers)

    async def _check_dependencies(self) -> Dict[str, str]:
        return {
            "config": "missing" if self.config.missing_secrets() else "ok",
            "upstream_adapter": self.config.upstream_adapter,
            "quota_gate": "enabled" if self.config.quota_enabled else "disabled",
        }


def create_app(settings: Optional[GatewaySettings] = None):
    """Create FastAPI application."""
    service = GatewayService(settings=settings)
    return service.app


if __name__ == "__main__":
    service = GatewayService()
    service.run()
