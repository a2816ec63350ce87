#!/usr/bin/env python3
"""
Tests for prompt assembly and image normalization.
"""

from datetime import datetime

import httpx
import pytest

from stream_relay.llm.exceptions import InvalidRequestError
from stream_relay.llm.models import ImageInput
from stream_relay.prompts import (
    ARABIC_DIRECTIVE,
    ARABIC_REMINDER,
    ENGLISH_DIRECTIVE,
    ENGLISH_REMINDER,
    VISION_CAPABILITIES,
    build_prompt_text,
    build_system_instruction,
    clean_image_url,
    fetch_image,
    format_current_date,
    normalize_image,
    normalize_mime_type,
    prepare_images,
)
from stream_relay.schemas import ImagePayload, PersonalTouch, VisionStreamRequest


class TestSystemInstruction:
    def test_english_defaults(self):
        text = build_system_instruction(
            "en", None, assistant_name="Wakti Vision", current_date="Sunday, October 18, 2026"
        )
        assert text.startswith(ENGLISH_DIRECTIVE)
        assert "Nickname=none, Tone=neutral, Style=short" in text
        assert "You are Wakti Vision. Date: Sunday, October 18, 2026" in text
        assert text.endswith(VISION_CAPABILITIES)

    def test_arabic_with_personal_touch(self):
        touch = PersonalTouch(nickname="  Abu Ali ", tone="warm", style="")
        text = build_system_instruction(
            "ar", touch, assistant_name="Wakti Vision", current_date="today"
        )
        assert text.startswith(ARABIC_DIRECTIVE)
        assert ENGLISH_DIRECTIVE not in text
        assert "Nickname=Abu Ali, Tone=warm, Style=short" in text

    def test_unknown_language_falls_back_to_english(self):
        text = build_system_instruction(None, None, assistant_name="A", current_date="d")
        assert text.startswith(ENGLISH_DIRECTIVE)


class TestPromptText:
    def test_default_prompt_used_when_blank(self):
        assert build_prompt_text("en", "   ", "Describe it.") == f"{ENGLISH_REMINDER} Describe it."

    def test_arabic_reminder_prefixes_prompt(self):
        assert build_prompt_text("ar", "ما هذا؟", "x") == f"{ARABIC_REMINDER} ما هذا؟"


def test_format_current_date_drops_leading_zero():
    now = datetime(2026, 10, 8, 12, 0)
    assert format_current_date("Asia/Qatar", now) == "Thursday, October 8, 2026"


class TestImageNormalization:
    def test_mime_type_normalization(self):
        assert normalize_mime_type("image/jpg") == "image/jpeg"
        assert normalize_mime_type(" IMAGE/PNG ") == "image/png"
        assert normalize_mime_type(None) == "image/jpeg"

    def test_data_url_prefix_is_stripped(self):
        image = normalize_image(ImagePayload(base64="data:image/png;base64,QUJD"))
        assert image.mime_type == "image/png"
        assert image.base64 == "QUJD"

    def test_raw_base64_uses_declared_type(self):
        image = normalize_image(ImagePayload.model_validate({"data": "QUJD", "type": "image/webp"}))
        assert image.data_url == "data:image/webp;base64,QUJD"

    def test_empty_data_is_dropped(self):
        assert normalize_image(ImagePayload(base64="  ")) is None

    def test_request_aliases(self):
        request = VisionStreamRequest.model_validate({
            "images": [{"base64": "QUJD", "mimeType": "image/png"}],
            "personalTouch": {"nickname": "Sam"},
        })
        assert request.images[0].mime_type == "image/png"
        assert request.personal_touch.nickname == "Sam"
        assert request.language == "en"


def image_server(status=200, body=b"\x89PNG", content_type="image/png"):
    """Client whose every GET answers with a fixed image response."""
    requests = []

    def respond(request):
        requests.append(request)
        return httpx.Response(status, headers={"content-type": content_type}, content=body)

    return httpx.AsyncClient(transport=httpx.MockTransport(respond)), requests


class TestPrepareImages:
    def payloads(self, count, data="QUJD"):
        return [ImagePayload(base64=data, mime_type="image/png") for _ in range(count)]

    async def prepare(self, payloads, max_image_bytes=1024, http_client=None):
        http_client = http_client or image_server()[0]
        return await prepare_images(
            payloads, max_images=4, max_image_bytes=max_image_bytes, http_client=http_client
        )

    @pytest.mark.asyncio
    async def test_valid_images(self):
        images = await self.prepare(self.payloads(4))
        assert len(images) == 4

    @pytest.mark.asyncio
    async def test_too_many_images(self):
        with pytest.raises(InvalidRequestError, match="Max 4 images"):
            await self.prepare(self.payloads(5))

    @pytest.mark.asyncio
    async def test_no_valid_images(self):
        with pytest.raises(InvalidRequestError, match="No valid images"):
            await self.prepare(self.payloads(2, data=""))

    @pytest.mark.asyncio
    async def test_image_too_large(self):
        big = "A" * (4 * 1024 * 1024 // 3 * 4)
        with pytest.raises(InvalidRequestError, match=r"Image too large \(max 1MB\)"):
            await self.prepare(self.payloads(1, data=big), max_image_bytes=1024 * 1024)


class TestUrlImages:
    """Images sent by URL are downloaded and inlined."""

    def test_clean_image_url(self):
        assert clean_image_url("  %20%20https://cdn.example.com/a\u200b.png ") == (
            "https://cdn.example.com/a.png"
        )

    @pytest.mark.asyncio
    async def test_url_image_is_fetched_and_inlined(self):
        client, requests = image_server(body=b"ABC", content_type="image/jpg; charset=binary")
        payload = ImagePayload.model_validate({"url": " https://cdn.example.com/cat.jpg"})

        images = await prepare_images(
            [payload], max_images=4, max_image_bytes=1024, http_client=client
        )

        assert str(requests[0].url) == "https://cdn.example.com/cat.jpg"
        assert images == [ImageInput(mime_type="image/jpeg", base64="QUJD")]

    @pytest.mark.asyncio
    async def test_url_image_over_limit(self):
        client, _ = image_server(body=b"x" * 2048)
        with pytest.raises(InvalidRequestError, match="Image too large"):
            await fetch_image(
                client, "https://cdn.example.com/big.png", max_image_bytes=1024, timeout=5.0
            )

    @pytest.mark.asyncio
    async def test_url_fetch_failure(self):
        client, _ = image_server(status=404)
        with pytest.raises(InvalidRequestError, match=r"Fetch failed \(404\)"):
            await fetch_image(
                client, "https://cdn.example.com/missing.png", max_image_bytes=1024, timeout=5.0
            )

    @pytest.mark.asyncio
    async def test_non_http_url_rejected(self):
        client, requests = image_server()
        with pytest.raises(InvalidRequestError, match="Invalid URL: ftp://"):
            await fetch_image(client, "ftp://host/x.png", max_image_bytes=1024, timeout=5.0)
        assert requests == []
