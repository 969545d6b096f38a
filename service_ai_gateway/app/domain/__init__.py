"""
Domain logic for the gateway: per-request orchestration.
"""

from .handler import GatewayComponents, GatewayRequestHandler, GatewayResponse

__all__ = [
    "GatewayComponents",
    "GatewayRequestHandler",
    "GatewayResponse",
]
