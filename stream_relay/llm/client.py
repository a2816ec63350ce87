"""
HTTP client for streaming chat completions from an OpenAI-compatible API.
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator
from typing import Any

import httpx
import structlog

from .exceptions import ProviderError, StreamingError
from .models import ImageInput, ProviderType, StreamRequest
from .streaming.parser import SSELineDecoder

logger = structlog.get_logger(__name__)

HTTP_OK = 200
UPSTREAM_DATA_PREFIX = "data:"
UPSTREAM_DONE = "[DONE]"


class LLMClient:
    """Streams text deltas from the model provider for relay requests."""

    def __init__(
        self,
        config: dict[str, Any],
        api_key: str,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        # Validate required configuration parameters
        required_keys = ["base_url", "model", "temperature", "max_tokens"]
        for key in required_keys:
            if key not in config:
                raise ValueError(
                    f"Required LLM configuration parameter '{key}' not found. "
                    "All LLM parameters must be explicitly configured."
                )

        self.config: dict[str, Any] = config
        self.api_key: str = api_key
        self.provider_type = self._detect_provider_type(config["base_url"])
        self._owns_client = http_client is None
        self.client: httpx.AsyncClient = http_client or httpx.AsyncClient(
            timeout=self._build_timeout(config.get("http_client", {})),
        )

    @staticmethod
    def _detect_provider_type(base_url: str) -> ProviderType:
        """Detect provider type from base URL."""
        base_url_lower = base_url.lower()

        if "openrouter.ai" in base_url_lower:
            return ProviderType.OPENROUTER
        if "groq.com" in base_url_lower:
            return ProviderType.GROQ

        return ProviderType.OPENAI

    @staticmethod
    def _build_timeout(http_config: dict[str, Any]) -> httpx.Timeout:
        return httpx.Timeout(
            connect=http_config.get("connect_timeout", 10.0),
            read=http_config.get("read_timeout"),
            write=http_config.get("write_timeout", 10.0),
            pool=http_config.get("pool_timeout", 10.0),
        )

    @property
    def model(self) -> str:
        return self.config["model"]

    @property
    def completions_url(self) -> str:
        return self.config["base_url"].rstrip("/") + "/chat/completions"

    def build_request(
        self,
        system_instruction: str,
        prompt_text: str,
        images: list[ImageInput],
    ) -> StreamRequest:
        """Build a streaming request with the configured sampling parameters."""
        return StreamRequest.multimodal(
            model=self.config["model"],
            system_instruction=system_instruction,
            prompt_text=prompt_text,
            images=images,
            temperature=self.config["temperature"],
            max_tokens=self.config["max_tokens"],
        )

    async def stream_text(self, request: StreamRequest) -> AsyncGenerator[str]:
        """
        Yield text deltas in arrival order until the provider signals completion.

        Raises:
            ProviderError: Non-200 response, wrong content type, or an
                in-stream provider error object.
            StreamingError: Transport failure while streaming.
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "text/event-stream",
        }
        provider = self.provider_type.value

        try:
            async with self.client.stream(
                "POST", self.completions_url, json=request.to_payload(), headers=headers
            ) as response:
                if response.status_code != HTTP_OK:
                    error_text = (await response.aread()).decode("utf-8", "replace")
                    raise ProviderError(
                        f"Streaming API error {response.status_code}: {error_text[:300]}",
                        provider=provider,
                        model=request.model,
                        status_code=response.status_code,
                    )

                content_type = response.headers.get("content-type", "")
                if "text/event-stream" not in content_type:
                    raise ProviderError(
                        f"Expected streaming response, got content-type: {content_type}",
                        provider=provider,
                        model=request.model,
                        status_code=response.status_code,
                    )

                decoder = SSELineDecoder()
                chunk_count = 0
                async for chunk in response.aiter_bytes():
                    for line in decoder.feed(chunk):
                        data = self._extract_data(line)
                        if data is None:
                            continue
                        if data == UPSTREAM_DONE:
                            logger.debug(
                                "Upstream stream completed", chunks=chunk_count
                            )
                            return
                        chunk_count += 1
                        content = self._parse_delta(data, provider, request.model)
                        if content:
                            yield content

                logger.warning(
                    "Upstream body ended without completion marker",
                    provider=provider,
                    chunks=chunk_count,
                )

        except httpx.HTTPError as e:
            raise StreamingError(
                f"HTTP error: {e!s}", provider=provider, model=request.model
            ) from e

    @staticmethod
    def _extract_data(line: str) -> str | None:
        line = line.strip()
        if not line.startswith(UPSTREAM_DATA_PREFIX):
            return None
        data = line[len(UPSTREAM_DATA_PREFIX):].strip()
        return data or None

    @staticmethod
    def _parse_delta(data: str, provider: str, model: str) -> str | None:
        try:
            chunk = json.loads(data)
        except json.JSONDecodeError as e:
            logger.warning(
                "Skipping invalid JSON in upstream chunk",
                provider=provider,
                error_message=str(e),
            )
            return None

        if not isinstance(chunk, dict):
            return None

        if error := chunk.get("error"):
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ProviderError(
                f"Provider error: {message}",
                provider=provider,
                model=model,
                response_data=chunk,
            )

        choices = chunk.get("choices") or []
        if not choices:
            return None
        delta = choices[0].get("delta") or {}
        content = delta.get("content")
        return content if isinstance(content, str) else None

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> LLMClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
