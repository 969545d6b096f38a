"""
Shared error handling for the AI quota gateway.

Every failure that reaches a client is a ``GatewayError``. The ``message``
is what the client sees; ``details`` only ever go to the logs.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


INTERNAL_ERROR_MESSAGE = "An internal error occurred on the proxy server."
QUOTA_EXCEEDED_MESSAGE = "Daily AI call limit exceeded. Please try again tomorrow."


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str
    code: str
    request_id: Optional[str] = None


class GatewayError(Exception):
    """Base exception for gateway failures."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = INTERNAL_ERROR_MESSAGE, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def client_message(self) -> str:
        """Message safe to return to the caller."""
        return self.message

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            error=self.client_message,
            code=self.code,
            request_id=request_id,
        )


class InternalError(GatewayError):
    """Catch-all for unexpected failures."""


class ServerSideError(GatewayError):
    """Failure whose detail is kept server-side.

    The message is logged, the client only ever sees the generic text.
    """

    @property
    def client_message(self) -> str:
        return INTERNAL_ERROR_MESSAGE


class BadRequest(GatewayError):
    """Inbound body is not something the gateway can forward."""

    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str = "Invalid request body", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class MethodNotAllowed(GatewayError):
    status_code = 405
    code = "METHOD_NOT_ALLOWED"

    def __init__(self, method: str = ""):
        super().__init__("Method Not Allowed", details={"method": method})


class ConfigurationError(ServerSideError):
    """A required secret or setting is missing or invalid."""

    code = "CONFIGURATION_ERROR"

    @property
    def client_message(self) -> str:
        return "Server is not configured."


class Unauthorized(GatewayError):
    """Missing or malformed identity token."""

    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class InvalidToken(Unauthorized):
    """Identity token was presented but could not be resolved to a user."""

    code = "INVALID_TOKEN"

    def __init__(self, message: str = "Invalid token", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class QuotaExceeded(GatewayError):
    status_code = 429
    code = "QUOTA_EXCEEDED"

    def __init__(self, message: str = QUOTA_EXCEEDED_MESSAGE, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class KeyImportError(ServerSideError):
    code = "KEY_IMPORT_ERROR"


class SigningError(ServerSideError):
    code = "SIGNING_ERROR"


class TokenExchangeError(ServerSideError):
    code = "TOKEN_EXCHANGE_ERROR"


class IdentityServiceError(ServerSideError):
    """Identity lookup endpoint could not be reached or answered garbage."""

    code = "IDENTITY_SERVICE_ERROR"


class QuotaStoreError(ServerSideError):
    code = "QUOTA_STORE_ERROR"


class QuotaConflictError(QuotaStoreError):
    """Conditional quota write kept losing against concurrent writers."""

    code = "QUOTA_CONFLICT"


class UpstreamError(GatewayError):
    """Upstream AI API answered with a non-success status."""

    code = "UPSTREAM_ERROR"

    def __init__(self, status: int, status_text: str, details: Optional[Dict[str, Any]] = None):
        self.status = status
        self.status_text = status_text
        super().__init__(f"API Error: {status_text}", details)

    @property
    def status_code(self) -> int:  # type: ignore[override]
        # Relay real HTTP error statuses, anything else is our failure.
        if 400 <= self.status <= 599:
            return self.status
        return 500
