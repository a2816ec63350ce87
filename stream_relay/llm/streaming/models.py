"""
Streaming-specific dataclasses shared by the relay and the client.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class FrameType(Enum):
    """Kinds of SSE frames in the relay grammar."""
    JSON = "json"
    TOKEN = "token"
    ERROR = "error"
    DONE = "done"


class ScannerState(Enum):
    """States of the incremental JSON scanner."""
    SCANNING = "scanning"
    IN_STRING = "in_string"
    ESCAPED = "escaped"
    BALANCED = "balanced"


@dataclass(frozen=True)
class SSEFrame:
    """One `data: <payload>` unit of a relay stream."""
    frame_type: FrameType
    payload: Any = None


@dataclass
class StreamingResponse:
    """Client-side accumulator for one stream."""
    stream_id: str
    content: str = ""
    is_complete: bool = False

    def append(self, token: str) -> str:
        self.content += token
        return self.content

    def finalize(self) -> str:
        self.is_complete = True
        return self.content


@dataclass
class DecoderStats:
    """Counters kept by the SSE line decoder for diagnostics."""
    total_lines: int = 0
    data_frames: int = 0
    malformed_frames: int = 0
    ignored_lines: int = 0
    malformed_samples: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, int]:
        return {
            "total_lines": self.total_lines,
            "data_frames": self.data_frames,
            "malformed_frames": self.malformed_frames,
            "ignored_lines": self.ignored_lines,
        }
