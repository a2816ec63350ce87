"""
Prompt assembly for vision requests.

Builds the system instruction from language and personalization fields and
normalizes the browser's image payloads into `ImageInput`s. Images given by
URL are downloaded and inlined under the same size limit.
"""

from __future__ import annotations

import base64
import re
from datetime import datetime
from zoneinfo import ZoneInfo

import httpx

from stream_relay.llm.exceptions import InvalidRequestError
from stream_relay.llm.models import ImageInput
from stream_relay.schemas import ImagePayload, PersonalTouch

ARABIC_DIRECTIVE = "CRITICAL: Respond ONLY in Arabic."
ENGLISH_DIRECTIVE = "CRITICAL: Respond ONLY in English."
ARABIC_REMINDER = "يرجى الرد بالعربية فقط."
ENGLISH_REMINDER = "Respond in English only."
VISION_CAPABILITIES = (
    "VISION CAPABILITIES: Analyze images, perform OCR, extract data from "
    "documents, answer Q&A about visual content."
)

DEFAULT_MIME_TYPE = "image/jpeg"
_DATA_URL_RE = re.compile(r"^data:(.*?);base64,(.*)$", re.DOTALL)
_HTTP_URL_RE = re.compile(r"^https?://", re.IGNORECASE)
_URL_JUNK_RE = re.compile(r"[\u0000-\u001f\u007f\u00a0\u200b\u200c\u200d]+")


def is_arabic(language: str | None) -> bool:
    return language == "ar"


def format_current_date(timezone: str, now: datetime | None = None) -> str:
    """Long-form date in the given timezone, e.g. 'Thursday, October 8, 2026'."""
    now = now or datetime.now(ZoneInfo(timezone))
    return now.strftime("%A, %B %d, %Y").replace(" 0", " ")


def build_system_instruction(
    language: str | None,
    personal_touch: PersonalTouch | None,
    *,
    assistant_name: str,
    current_date: str,
) -> str:
    """Concatenate language rule, personal touch, identity and capabilities."""
    touch = personal_touch or PersonalTouch()
    nickname = (touch.nickname or "").strip() or "none"
    tone = (touch.tone or "").strip() or "neutral"
    style = (touch.style or "").strip() or "short"

    language_rule = ARABIC_DIRECTIVE if is_arabic(language) else ENGLISH_DIRECTIVE
    personal_line = (
        f"PERSONAL TOUCH: Nickname={nickname}, Tone={tone}, Style={style}. "
        "Use consistently."
    )
    return (
        f"{language_rule}\n\n{personal_line}\n\n"
        f"You are {assistant_name}. Date: {current_date}\n{VISION_CAPABILITIES}"
    )


def build_prompt_text(language: str | None, prompt: str | None, default_prompt: str) -> str:
    reminder = ARABIC_REMINDER if is_arabic(language) else ENGLISH_REMINDER
    text = (prompt or "").strip() or default_prompt
    return f"{reminder} {text}".strip()


def normalize_mime_type(mime_type: str | None) -> str:
    mime = (mime_type or "").strip().lower().replace("image/jpg", "image/jpeg")
    return mime or DEFAULT_MIME_TYPE


def normalize_image(payload: ImagePayload) -> ImageInput | None:
    """Normalize one payload; data-URL prefixes are stripped. Empty data yields None."""
    data = payload.base64.strip()
    if not data:
        return None

    match = _DATA_URL_RE.match(data)
    if match:
        return ImageInput(
            mime_type=normalize_mime_type(match.group(1)),
            base64=match.group(2),
        )
    return ImageInput(mime_type=normalize_mime_type(payload.mime_type), base64=data)


def clean_image_url(url: str) -> str:
    """Strip whitespace, leading `%20`s and control or zero-width characters."""
    url = re.sub(r"^(?:%20)+", "", url.strip())
    return _URL_JUNK_RE.sub("", url)


def _too_large(max_image_bytes: int) -> InvalidRequestError:
    limit_mb = max_image_bytes // (1024 * 1024)
    return InvalidRequestError(f"Image too large (max {limit_mb}MB)")


async def fetch_image(
    http_client: httpx.AsyncClient,
    url: str,
    *,
    max_image_bytes: int,
    timeout: float,
) -> ImageInput:
    """
    Download an image and inline it as base64.

    The MIME type comes from the response's Content-Type. The download stops
    as soon as the body exceeds `max_image_bytes`.

    Raises:
        InvalidRequestError: Non-HTTP URL, non-2xx response, or body too large.
        httpx.HTTPError: Transport failure.
    """
    if not _HTTP_URL_RE.match(url):
        raise InvalidRequestError(f"Invalid URL: {url[:48]}...")

    async with http_client.stream(
        "GET", url, timeout=timeout, follow_redirects=True
    ) as response:
        if not response.is_success:
            raise InvalidRequestError(f"Fetch failed ({response.status_code})")
        content_type = response.headers.get("content-type", "").split(";")[0]
        body = bytearray()
        async for chunk in response.aiter_bytes():
            body.extend(chunk)
            if len(body) > max_image_bytes:
                raise _too_large(max_image_bytes)

    return ImageInput(
        mime_type=normalize_mime_type(content_type),
        base64=base64.b64encode(bytes(body)).decode("ascii"),
    )


async def prepare_images(
    payloads: list[ImagePayload],
    *,
    max_images: int,
    max_image_bytes: int,
    http_client: httpx.AsyncClient,
    fetch_timeout: float = 15.0,
) -> list[ImageInput]:
    """
    Validate and normalize a request's images, downloading URL images.

    Raises:
        InvalidRequestError: Too many images, none usable, one too large, or
            a URL image that could not be fetched.
    """
    if len(payloads) > max_images:
        raise InvalidRequestError(f"Max {max_images} images")

    images = []
    for payload in payloads:
        url = clean_image_url(payload.url)
        if url:
            images.append(await fetch_image(
                http_client, url, max_image_bytes=max_image_bytes, timeout=fetch_timeout
            ))
            continue
        image = normalize_image(payload)
        if image is not None:
            images.append(image)

    if not images:
        raise InvalidRequestError("No valid images")

    for image in images:
        if image.approx_bytes > max_image_bytes:
            raise _too_large(max_image_bytes)

    return images
