"""HTTP surface of the relay: the vision stream endpoint and a liveness probe."""

from __future__ import annotations

import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from stream_relay.config import Configuration
from stream_relay.llm.client import LLMClient
from stream_relay.relay import VisionRelay

logger = structlog.get_logger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # Stops reverse proxies from buffering frames
    "X-Accel-Buffering": "no",
}


def build_origin_regex(prefixes: list[str]) -> str | None:
    """Regex matching any origin that starts with one of the prefixes."""
    if not prefixes:
        return None
    alternatives = "|".join(re.escape(prefix) for prefix in prefixes)
    return f"^(?:{alternatives}).*$"


def create_llm_client(config: Configuration) -> LLMClient:
    llm_config = {
        **config.get_llm_config(),
        "http_client": config.get_http_client_config(),
    }
    return LLMClient(llm_config, config.llm_api_key)


def create_app(
    config: Configuration | None = None,
    *,
    llm_client: LLMClient | None = None,
) -> FastAPI:
    """
    Build the relay application.

    Args:
        config: Loaded configuration; read from the packaged YAML if omitted.
        llm_client: Upstream client to use instead of one built from config.
            The caller keeps ownership of an injected client.

    Returns:
        Configured FastAPI application.
    """
    config = config or Configuration()
    owns_client = llm_client is None
    client = llm_client or create_llm_client(config)
    relay = VisionRelay(client, config.get_vision_config())

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        logger.info("Relay started", model=client.model, provider=client.provider_type.value)
        try:
            yield
        finally:
            if owns_client:
                await client.close()
            logger.info("Relay stopped")

    app = FastAPI(title="stream-relay", lifespan=lifespan)
    app.state.relay = relay

    cors = config.get_cors_config()
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=build_origin_regex(cors["allowed_origins"]),
        allow_credentials=False,
        allow_methods=cors["allow_methods"],
        allow_headers=cors["allow_headers"],
        max_age=cors["max_age"],
    )

    @app.get("/healthz")
    async def healthz() -> dict[str, bool]:
        return {"ok": True}

    @app.post("/api/vision-stream")
    async def vision_stream(request: Request) -> StreamingResponse:
        raw_body = await request.body()
        return StreamingResponse(
            relay.stream(raw_body, request.is_disconnected),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    return app
