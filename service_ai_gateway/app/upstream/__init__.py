"""
Upstream AI provider adapters.

The gateway speaks one inbound chat shape (Gemini ``generateContent``).
Each adapter knows how to reach one provider and, where the provider speaks
a different schema, how to translate to and from it.
"""

from .adapters import GeminiAdapter, UpstreamAdapter, WorkersAIAdapter, build_adapter

__all__ = [
    "GeminiAdapter",
    "UpstreamAdapter",
    "WorkersAIAdapter",
    "build_adapter",
]
