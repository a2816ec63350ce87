"""
Upstream LLM integration for the streaming relay.

This package provides:
- Request dataclasses for multimodal streaming chat completions
- An httpx-based client that yields text deltas
- Shared SSE framing, decoding and JSON side-channel scanning
- The error taxonomy used by both relay and client
"""

from __future__ import annotations

from .client import LLMClient
from .exceptions import (
    AuthenticationError,
    InvalidRequestError,
    LLMError,
    ProviderError,
    StreamingError,
)
from .models import (
    ImageInput,
    LLMMessage,
    MessageRole,
    ProviderType,
    StreamRequest,
)

__all__ = [
    # Exceptions
    "AuthenticationError",
    # Models
    "ImageInput",
    "InvalidRequestError",
    # Client
    "LLMClient",
    "LLMError",
    "LLMMessage",
    "MessageRole",
    "ProviderError",
    "ProviderType",
    "StreamRequest",
    "StreamingError",
]
