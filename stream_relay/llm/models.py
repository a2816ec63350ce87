"""
Core request dataclasses for the upstream model API.

This module provides the request-scoped structures sent to the provider:
- Image inputs and multimodal content parts
- The streaming chat-completion request
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ProviderType(Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    OPENROUTER = "openrouter"
    GROQ = "groq"


class MessageRole(Enum):
    """OpenAI-compatible message roles."""
    SYSTEM = "system"
    USER = "user"


@dataclass(frozen=True)
class ImageInput:
    """A normalized base64 image ready to be attached to a prompt."""
    mime_type: str
    base64: str

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64}"

    @property
    def approx_bytes(self) -> int:
        """Decoded size estimate without decoding the payload."""
        return (len(self.base64) * 3) // 4


@dataclass(frozen=True)
class LLMMessage:
    """OpenAI-compatible message structure."""
    role: MessageRole
    content: str | list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role.value, "content": self.content}


def text_part(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}


def image_part(image: ImageInput) -> dict[str, Any]:
    return {"type": "image_url", "image_url": {"url": image.data_url}}


@dataclass
class StreamRequest:
    """Outbound streaming chat-completion request, built once per relay call."""
    model: str
    messages: list[LLMMessage]
    temperature: float = 0.2
    max_tokens: int = 2000
    stream: bool = True

    @classmethod
    def multimodal(
        cls,
        *,
        model: str,
        system_instruction: str,
        prompt_text: str,
        images: list[ImageInput],
        temperature: float,
        max_tokens: int,
    ) -> StreamRequest:
        """Build a system + user request with one text part and one part per image."""
        content = [text_part(prompt_text)]
        content.extend(image_part(image) for image in images)
        return cls(
            model=model,
            messages=[
                LLMMessage(MessageRole.SYSTEM, system_instruction),
                LLMMessage(MessageRole.USER, content),
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )

    @property
    def system_instruction(self) -> str | None:
        for message in self.messages:
            if message.role is MessageRole.SYSTEM and isinstance(message.content, str):
                return message.content
        return None

    def to_payload(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [message.to_dict() for message in self.messages],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": self.stream,
        }

