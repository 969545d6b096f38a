"""
Adapters package for the gateway service.

HTTP client wrappers for the external endpoints the gateway talks to:

- OAuth2 token endpoint (service-account assertion exchange)
- Identity platform account lookup
- Upstream AI provider

Each adapter maps transport and protocol failures onto shared errors and
takes a caller-owned ``httpx.AsyncClient`` so timeouts are set in one place.
"""

from .identity_client import IdentityClient, extract_bearer_token
from .token_client import TokenClient
from .upstream_client import UpstreamClient

__all__ = [
    "IdentityClient",
    "TokenClient",
    "UpstreamClient",
    "extract_bearer_token",
]
