"""
Error types for the streaming relay.

This module groups the failures the relay and the streaming client report:
- Provider errors for non-success upstream responses
- Streaming errors for broken or in-band failed streams
- Request validation errors, reported in-band as error frames
- Authentication errors raised before any network call
"""

from __future__ import annotations


class LLMError(Exception):
    """Base LLM error with rich context."""

    def __init__(
        self,
        message: str,
        provider: str,
        model: str,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.status_code = status_code
        self.response_data = response_data or {}


class ProviderError(LLMError):
    """Upstream model API refused or mangled a streaming request."""
    pass


class StreamingError(LLMError):
    """Streaming-specific errors."""

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        model: str = "unknown",
        **kwargs,
    ):
        super().__init__(message, provider, model, **kwargs)


class InvalidRequestError(ValueError):
    """Relay request failed validation; the message is sent to the caller as-is."""
    pass


class AuthenticationError(Exception):
    """No active session is available to authorize a streaming request."""
    pass
