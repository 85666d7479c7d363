"""External service integrations."""

from .anthropic import AnthropicClient
from .imagen import ImagenClient, ImageResult

__all__ = [
    "AnthropicClient",
    "ImagenClient",
    "ImageResult",
]
