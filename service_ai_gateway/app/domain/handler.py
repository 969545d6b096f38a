"""
Request orchestration for the AI proxy.

Each call walks: method check, config check, identity token parse, access
token, identity lookup, quota read, daily reset, admission, upstream call,
quota write. Any step can short-circuit to an error response. Quota is only
written after the upstream call succeeded, so failed calls are free.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from shared.config import GatewaySettings
from shared.errors import (
    BadRequest,
    ConfigurationError,
    GatewayError,
    InternalError,
    MethodNotAllowed,
    QuotaExceeded,
)
from shared.logging import get_logger, get_request_id, set_user_context
from shared.metrics import MetricsCollector

from ..adapters.identity_client import IdentityClient, extract_bearer_token
from ..adapters.token_client import TokenClient
from ..adapters.upstream_client import UpstreamClient
from ..auth.assertion import AssertionSigner
from ..quota.policy import DAILY_CALL_LIMIT, admit, apply_daily_reset, utc_now
from ..quota.store import QuotaStore
from ..upstream.adapters import build_adapter

ALLOWED_METHOD = "POST"


@dataclass
class GatewayResponse:
    status_code: int
    body: Any
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class GatewayComponents:
    """Collaborators wired from settings. Quota parts are None when the gate is off."""

    upstream: UpstreamClient
    signer: Optional[AssertionSigner] = None
    token_client: Optional[TokenClient] = None
    identity_client: Optional[IdentityClient] = None
    quota_store: Optional[QuotaStore] = None

    @classmethod
    def from_settings(
        cls,
        settings: GatewaySettings,
        client: httpx.AsyncClient,
        metrics: Optional[MetricsCollector] = None,
    ) -> "GatewayComponents":
        upstream = UpstreamClient(build_adapter(settings), client, metrics=metrics)
        if not settings.quota_enabled:
            return cls(upstream=upstream)

        credential = settings.service_account()
        return cls(
            upstream=upstream,
            signer=AssertionSigner(credential, settings.token_uri),
            token_client=TokenClient(settings.token_uri, client, metrics=metrics),
            identity_client=IdentityClient(settings.identity_lookup_url, settings.identity_api_key, client),
            quota_store=QuotaStore(
                settings.firestore_base_url,
                credential.project_id,
                settings.quota_collection,
                client,
                conditional_writes=settings.quota_conditional_writes,
                max_write_attempts=settings.quota_max_write_attempts,
            ),
        )


class GatewayRequestHandler:
    """Turns one inbound proxy call into a GatewayResponse."""

    def __init__(
        self,
        settings: GatewaySettings,
        client: httpx.AsyncClient,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.settings = settings
        self.client = client
        self.metrics = metrics
        self.logger = get_logger("gateway.handler")
        self._components: Optional[GatewayComponents] = None

    async def handle(self, method: str, authorization: Optional[str], raw_body: bytes) -> GatewayResponse:
        try:
            payload = await self._process(method, authorization, raw_body)
        except GatewayError as exc:
            return self._error(exc)
        except Exception as exc:
            self.logger.error("Unhandled proxy failure", error=str(exc), error_type=type(exc).__name__, exc_info=True)
            return self._error(InternalError(details={"error_type": type(exc).__name__}))
        return GatewayResponse(status_code=200, body=payload)

    async def _process(self, method: str, authorization: Optional[str], raw_body: bytes) -> Any:
        if method.upper() != ALLOWED_METHOD:
            raise MethodNotAllowed(method)

        missing = self.settings.missing_secrets()
        if missing:
            raise ConfigurationError("Gateway is missing required settings", details={"missing": missing})

        if not self.settings.quota_enabled:
            body = parse_body(raw_body)
            return await self.components.upstream.dispatch(body)

        id_token = extract_bearer_token(authorization)
        body = parse_body(raw_body)
        components = self.components

        access_token = await components.token_client.fetch_access_token(components.signer, self.settings.token_scope)
        identity = await components.identity_client.verify(id_token)
        uid = identity.uid
        set_user_context(uid)

        record = await components.quota_store.read_quota(uid, access_token)
        record = apply_daily_reset(record, utc_now())

        if not admit(record, DAILY_CALL_LIMIT):
            self._record_decision("rejected")
            raise QuotaExceeded(details={"uid": uid, "call_count": record.call_count})
        self._record_decision("admitted")

        result = await components.upstream.dispatch(body)

        written = await components.quota_store.record_success(uid, record, access_token, now=utc_now())
        self.logger.info("Quota recorded", uid=uid, call_count=written.call_count, limit=DAILY_CALL_LIMIT)
        return result

    @property
    def components(self) -> GatewayComponents:
        """Components built on first use, after the config check has passed."""
        if self._components is None:
            self._components = GatewayComponents.from_settings(self.settings, self.client, self.metrics)
        return self._components

    def _error(self, exc: GatewayError) -> GatewayResponse:
        log = self.logger.warning if exc.status_code < 500 else self.logger.error
        log("Proxy request failed", code=exc.code, status_code=exc.status_code, message=exc.message, details=exc.details)
        if self.metrics is not None:
            self.metrics.record_error(exc.code)
        return GatewayResponse(
            status_code=exc.status_code,
            body=exc.to_response(get_request_id()).model_dump(exclude_none=True),
            headers={"Allow": ALLOWED_METHOD} if isinstance(exc, MethodNotAllowed) else {},
        )

    def _record_decision(self, decision: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("quota_decisions_total", decision=decision)


def parse_body(raw_body: bytes) -> Dict[str, Any]:
    """Decode the inbound JSON body. Only objects are forwarded."""
    try:
        body = json.loads(raw_body or b"null")
    except (UnicodeDecodeError, ValueError) as exc:
        raise BadRequest("Request body must be valid JSON") from exc
    if not isinstance(body, dict):
        raise BadRequest("Request body must be a JSON object")
    return body
