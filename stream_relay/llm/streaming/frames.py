"""
SSE frame encoding and `data:` line parsing.

Payloads are serialized the way browsers serialize JSON: compact separators
and raw (non-escaped) unicode, so `{"error": "No images"}` goes out as
`data: {"error":"No images"}`.
"""

from __future__ import annotations

import json
from typing import Any

from .models import FrameType, SSEFrame

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def dumps_compact(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def json_frame(value: Any) -> SSEFrame:
    return SSEFrame(FrameType.JSON, value)


def token_frame(text: str) -> SSEFrame:
    return SSEFrame(FrameType.TOKEN, text)


def error_frame(message: str) -> SSEFrame:
    return SSEFrame(FrameType.ERROR, message)


def done_frame() -> SSEFrame:
    return SSEFrame(FrameType.DONE)


def encode_frame(frame: SSEFrame) -> str:
    """Serialize a frame, blank-line terminated."""
    if frame.frame_type is FrameType.DONE:
        body = DONE_SENTINEL
    else:
        body = dumps_compact({frame.frame_type.value: frame.payload})
    return f"{DATA_PREFIX}{body}\n\n"


def parse_data_line(line: str) -> SSEFrame | None:
    """
    Parse one decoded line of a relay stream.

    Returns None for lines that carry no relay frame (comments, blank lines,
    `event:` fields, JSON objects with none of the known keys).

    Raises:
        json.JSONDecodeError: If the data payload is not valid JSON.
        ValueError: If the payload is valid JSON but not an object.
    """
    line = line.rstrip("\r")
    if not line.startswith(DATA_PREFIX):
        return None

    data = line[len(DATA_PREFIX):]
    if data.strip() == DONE_SENTINEL:
        return done_frame()

    parsed = json.loads(data)
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected JSON object in frame, got {type(parsed).__name__}")

    if "error" in parsed:
        return error_frame(str(parsed["error"]))
    if "json" in parsed:
        return json_frame(parsed["json"])
    if isinstance(parsed.get("token"), str):
        return token_frame(parsed["token"])
    return None
