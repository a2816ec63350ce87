"""Shared fixtures: fake upstream model API and relay configuration."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from stream_relay.config import Configuration
from stream_relay.llm.client import LLMClient

SSE_HEADERS = {"content-type": "text/event-stream"}


def openai_sse_body(deltas: list[str], *, done: bool = True) -> bytes:
    """Render text deltas as an OpenAI chat-completions SSE body."""
    lines = [
        "data: " + json.dumps({"choices": [{"index": 0, "delta": {"content": d}}]})
        for d in deltas
    ]
    if done:
        lines.append("data: [DONE]")
    return ("\n\n".join(lines) + "\n\n").encode("utf-8")


def parse_frames(body: str) -> list[str]:
    """Split a relay SSE body into its `data: ...` frames."""
    return [chunk for chunk in body.split("\n\n") if chunk.strip()]


class FakeUpstream:
    """Records upstream requests and answers them with a canned response."""

    def __init__(self, responder: Callable[[httpx.Request], httpx.Response]):
        self.responder = responder
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    @property
    def payloads(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]

    @classmethod
    def streaming(cls, deltas: list[str], *, done: bool = True) -> FakeUpstream:
        body = openai_sse_body(deltas, done=done)
        return cls(lambda _request: httpx.Response(200, headers=SSE_HEADERS, content=body))


@pytest.fixture
def relay_config(monkeypatch: pytest.MonkeyPatch) -> Configuration:
    monkeypatch.delenv("PORT", raising=False)
    monkeypatch.setenv("ALLOWED_ORIGINS", "https://wakti.qa,https://app.example.com")
    return Configuration()


@pytest.fixture
def make_llm_client(relay_config: Configuration):
    """Factory for an LLMClient whose HTTP traffic goes to a FakeUpstream."""

    def factory(upstream: FakeUpstream) -> LLMClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
        return LLMClient(relay_config.get_llm_config(), "test-key", http_client=http_client)

    return factory
