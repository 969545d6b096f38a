"""
Provider adapters: where to send a request and how to shape it.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import quote

from shared.config import GatewaySettings
from shared.errors import ConfigurationError

from .translation import completion_to_gemini, gemini_to_messages


@dataclass(frozen=True)
class UpstreamRequest:
    url: str
    json: Dict[str, Any]
    params: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)

    def __repr__(self) -> str:
        # params/headers carry the server API key
        return f"UpstreamRequest(url={self.url!r})"


class UpstreamAdapter:
    """Base adapter. Subclasses implement ``build_request``."""

    name = "base"

    def build_request(self, body: Dict[str, Any]) -> UpstreamRequest:
        raise NotImplementedError

    def parse_response(self, payload: Any) -> Any:
        return payload


class GeminiAdapter(UpstreamAdapter):
    """Pass-through to the Gemini ``generateContent`` endpoint."""

    name = "gemini"

    def __init__(self, base_url: str, model: str, api_key: str):
        self.url = f"{base_url.rstrip('/')}/models/{model}:generateContent"
        self.api_key = api_key

    def build_request(self, body: Dict[str, Any]) -> UpstreamRequest:
        return UpstreamRequest(url=self.url, json=body, params={"key": self.api_key})


class WorkersAIAdapter(UpstreamAdapter):
    """Cloudflare Workers AI text generation behind a Gemini-shaped facade."""

    name = "workers_ai"

    def __init__(self, base_url: str, account_id: str, model: str, api_token: str, max_tokens: int = 1500):
        self.url = f"{base_url.rstrip('/')}/accounts/{quote(account_id, safe='')}/ai/run/{model}"
        self.api_token = api_token
        self.max_tokens = max_tokens

    def build_request(self, body: Dict[str, Any]) -> UpstreamRequest:
        return UpstreamRequest(
            url=self.url,
            json={"messages": gemini_to_messages(body), "max_tokens": self.max_tokens},
            headers={"Authorization": f"Bearer {self.api_token}"},
        )

    def parse_response(self, payload: Any) -> Dict[str, Any]:
        text: Optional[str] = None
        if isinstance(payload, dict):
            result = payload.get("result")
            if isinstance(result, dict):
                text = result.get("response")
            elif isinstance(payload.get("response"), str):
                text = payload["response"]
        return completion_to_gemini(text)


def build_adapter(settings: GatewaySettings) -> UpstreamAdapter:
    """Select the upstream adapter named in settings."""
    if not settings.upstream_api_key:
        raise ConfigurationError("Upstream API key is not configured")

    if settings.upstream_adapter == "gemini":
        return GeminiAdapter(settings.gemini_base_url, settings.gemini_model, settings.upstream_api_key)

    if settings.upstream_adapter == "workers_ai":
        if not settings.workers_ai_account_id:
            raise ConfigurationError("Workers AI account id is not configured")
        return WorkersAIAdapter(
            settings.workers_ai_base_url,
            settings.workers_ai_account_id,
            settings.workers_ai_model,
            settings.upstream_api_key,
            max_tokens=settings.workers_ai_max_tokens,
        )

    raise ConfigurationError(
        "Unknown upstream adapter",
        details={"upstream_adapter": settings.upstream_adapter},
    )
