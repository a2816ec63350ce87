"""
Streaming AI response relay.

A FastAPI server that relays multimodal prompts to a streaming model API as
server-sent events, and an httpx client that consumes such streams with
per-stream cancellation.
"""

from __future__ import annotations

from .client import StaticSession, StreamHandle, StreamingClient
from .relay import VisionRelay

__all__ = [
    "StaticSession",
    "StreamHandle",
    "StreamingClient",
    "VisionRelay",
]
