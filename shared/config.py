"""
Shared configuration management for the AI quota gateway.
"""

import json
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.errors import ConfigurationError


GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
WORKERS_AI_BASE_URL = "https://api.cloudflare.com/client/v4"
OAUTH_TOKEN_URI = "https://oauth2.googleapis.com/token"
IDENTITY_LOOKUP_URL = "https://identitytoolkit.googleapis.com/v1/accounts:lookup"
FIRESTORE_BASE_URL = "https://firestore.googleapis.com/v1"
DATASTORE_SCOPE = "https://www.googleapis.com/auth/datastore"

UPSTREAM_ADAPTERS = ("gemini", "workers_ai")


class ServiceAccountCredential(BaseModel):
    """Service-account key as downloaded from the cloud console.

    Only the fields the gateway needs are kept; the rest of the JSON key is
    ignored.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    client_email: str
    private_key: str
    project_id: str = ""


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="GATEWAY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Outbound HTTP
    http_timeout_seconds: float = Field(default=10.0, gt=0)

    # Comma separated list of allowed origins
    cors_allow_origins: str = Field(default="*")

    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]


class GatewaySettings(BaseConfig):
    """Settings for the AI proxy and its quota gate."""

    # Upstream AI provider
    upstream_adapter: str = Field(default="gemini")
    upstream_api_key: Optional[str] = Field(default=None)
    gemini_base_url: str = Field(default=GEMINI_BASE_URL)
    gemini_model: str = Field(default="gemini-2.5-flash-preview-05-20")
    workers_ai_base_url: str = Field(default=WORKERS_AI_BASE_URL)
    workers_ai_account_id: Optional[str] = Field(default=None)
    workers_ai_model: str = Field(default="@cf/meta/llama-3-8b-instruct")
    workers_ai_max_tokens: int = Field(default=1500, gt=0)

    # Quota gate
    quota_enabled: bool = Field(default=True)
    service_account_json: Optional[str] = Field(default=None)
    identity_api_key: Optional[str] = Field(default=None)
    identity_lookup_url: str = Field(default=IDENTITY_LOOKUP_URL)
    token_uri: str = Field(default=OAUTH_TOKEN_URI)
    token_scope: str = Field(default=DATASTORE_SCOPE)
    firestore_base_url: str = Field(default=FIRESTORE_BASE_URL)
    quota_collection: str = Field(default="usage")
    quota_conditional_writes: bool = Field(default=False)
    quota_max_write_attempts: int = Field(default=3, ge=1)

    def service_account(self) -> ServiceAccountCredential:
        """Parse the configured service-account JSON key."""
        if not self.service_account_json:
            raise ConfigurationError("Service account JSON is not configured")
        try:
            payload = json.loads(self.service_account_json)
            return ServiceAccountCredential.model_validate(payload)
        except (ValueError, ValidationError) as exc:
            # Validation messages can echo key material, keep only the type.
            raise ConfigurationError(
                "Service account JSON is invalid",
                details={"error_type": type(exc).__name__},
            ) from None

    def missing_secrets(self) -> List[str]:
        """Names of required settings that are absent for the active mode."""
        missing: List[str] = []
        if self.upstream_adapter not in UPSTREAM_ADAPTERS:
            missing.append("upstream_adapter")
        if not self.upstream_api_key:
            missing.append("upstream_api_key")
        if self.upstream_adapter == "workers_ai" and not self.workers_ai_account_id:
            missing.append("workers_ai_account_id")

        if self.quota_enabled:
            if not self.identity_api_key:
                missing.append("identity_api_key")
            if not self.service_account_json:
                missing.append("service_account_json")
            else:
                try:
                    credential = self.service_account()
                except ConfigurationError:
                    missing.append("service_account_json")
                else:
                    if not credential.project_id:
                        missing.append("project_id")
        return missing


def get_settings(**overrides) -> GatewaySettings:
    """Build gateway settings from the environment, with explicit overrides."""
    return GatewaySettings(**overrides)
