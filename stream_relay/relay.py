"""
Vision relay: one multimodal request in, one normalized SSE stream out.

Per stream the frame order is: at most one `{"json": ...}` side-channel frame
(interleaved with the first tokens), the `{"token": ...}` frames in upstream
order, then exactly one terminal frame, `[DONE]` or `{"error": ...}`.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import aclosing
from typing import Any

from stream_relay.llm.client import LLMClient
from stream_relay.llm.exceptions import InvalidRequestError
from stream_relay.llm.models import StreamRequest
from stream_relay.llm.streaming import (
    IncrementalJSONScanner,
    done_frame,
    encode_frame,
    error_frame,
    json_frame,
    token_frame,
)
from stream_relay.logging_utils import (
    ContextualLogger,
    RelayErrorHandler,
    operation_context,
)
from stream_relay.prompts import (
    build_prompt_text,
    build_system_instruction,
    format_current_date,
    prepare_images,
)
from stream_relay.schemas import VisionStreamRequest

DisconnectProbe = Callable[[], Awaitable[bool]]


class VisionRelay:
    """Builds upstream requests and relays their token streams as SSE."""

    def __init__(self, llm_client: LLMClient, vision_config: dict[str, Any]) -> None:
        self.llm_client = llm_client
        self.max_images: int = vision_config["max_images"]
        self.max_image_bytes: int = vision_config["max_image_bytes"]
        self.default_prompt: str = vision_config["default_prompt"]
        self.timezone: str = vision_config["timezone"]
        self.assistant_name: str = vision_config["assistant_name"]
        self.image_fetch_timeout: float = vision_config.get("image_fetch_timeout", 15.0)

    @staticmethod
    def parse_body(raw_body: bytes) -> dict[str, Any]:
        if not raw_body.strip():
            return {}
        try:
            body = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidRequestError("Invalid JSON") from e
        if not isinstance(body, dict):
            raise InvalidRequestError("Invalid JSON")
        return body

    async def prepare(self, body: dict[str, Any]) -> StreamRequest:
        """
        Validate a request body and build the upstream request.

        Raises:
            InvalidRequestError: Missing, empty, oversized or unusable images.
            httpx.HTTPError: A URL image could not be downloaded.
            pydantic.ValidationError: Malformed image or personalization fields.
        """
        images = body.get("images")
        if not isinstance(images, list) or not images:
            raise InvalidRequestError("No images")

        request = VisionStreamRequest.model_validate(body)
        normalized = await prepare_images(
            request.images,
            max_images=self.max_images,
            max_image_bytes=self.max_image_bytes,
            http_client=self.llm_client.client,
            fetch_timeout=self.image_fetch_timeout,
        )
        system_instruction = build_system_instruction(
            request.language,
            request.personal_touch,
            assistant_name=self.assistant_name,
            current_date=format_current_date(self.timezone),
        )
        prompt_text = build_prompt_text(
            request.language, request.prompt, self.default_prompt
        )
        return self.llm_client.build_request(system_instruction, prompt_text, normalized)

    async def stream(
        self,
        raw_body: bytes,
        disconnected: DisconnectProbe | None = None,
    ) -> AsyncGenerator[str]:
        """Yield encoded SSE frames for one request. Never raises for request errors."""
        request_id = uuid.uuid4().hex[:12]
        log = ContextualLogger({"request_id": request_id})
        scanner = IncrementalJSONScanner()
        tokens_sent = 0

        try:
            request = await self.prepare(self.parse_body(raw_body))
            context = {
                "request_id": request_id,
                "model": request.model,
                "images": len(request.messages[-1].content) - 1,
            }
            async with operation_context("vision_stream", context=context):
                async with aclosing(self.llm_client.stream_text(request)) as deltas:
                    async for delta in deltas:
                        if disconnected is not None and await disconnected():
                            log.info(
                                "Client disconnected, closing upstream stream",
                                tokens_sent=tokens_sent,
                            )
                            return

                        found = scanner.feed(delta)
                        if found is not None:
                            log.debug("Side-channel JSON captured", keys=list(found))
                            yield encode_frame(json_frame(found))

                        yield encode_frame(token_frame(delta))
                        tokens_sent += 1

        except (asyncio.CancelledError, GeneratorExit):
            log.info("Relay stream aborted, upstream request closed", tokens_sent=tokens_sent)
            raise
        except Exception as e:
            message = RelayErrorHandler.build_error_payload(
                e,
                "vision_stream",
                {"request_id": request_id, "tokens_sent": tokens_sent},
            )
            yield encode_frame(error_frame(message))
            return

        yield encode_frame(done_frame())
