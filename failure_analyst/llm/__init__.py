"""LLM provider integrations with protocol-based adapter pattern."""

from .errors import LLMError, RateLimitedError
from .protocols import LLMProvider
from .adapters import AnthropicAdapter, OpenRouterAdapter

__all__ = [
    # Protocols
    "LLMProvider",
    # Errors
    "LLMError",
    "RateLimitedError",
    # Adapters
    "OpenRouterAdapter",
    "AnthropicAdapter",
]
