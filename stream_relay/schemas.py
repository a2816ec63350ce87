"""Request bodies accepted by the relay endpoints."""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ImagePayload(BaseModel):
    """One image as sent by the browser: inline base64 or a URL to fetch."""
    model_config = ConfigDict(extra="ignore")

    base64: str = Field(default="", validation_alias=AliasChoices("base64", "data"))
    mime_type: str = Field(
        default="", validation_alias=AliasChoices("mimeType", "mime_type", "type")
    )
    url: str = ""


class PersonalTouch(BaseModel):
    """Optional personalization folded into the system instruction."""
    model_config = ConfigDict(extra="ignore")

    nickname: str | None = None
    tone: str | None = None
    style: str | None = None


class VisionStreamRequest(BaseModel):
    """Body of POST /api/vision-stream."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    images: list[ImagePayload]
    prompt: str | None = None
    language: str | None = "en"
    personal_touch: PersonalTouch | None = Field(
        default=None, alias="personalTouch"
    )
