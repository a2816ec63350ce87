"""
Streaming functionality shared by the relay server and the streaming client.

This package contains:
- SSE frame encoding and parsing
- Incremental UTF-8 line decoding with malformed-frame tolerance
- The incremental JSON side-channel scanner
"""

from __future__ import annotations

from .frames import (
    DONE_SENTINEL,
    done_frame,
    encode_frame,
    error_frame,
    json_frame,
    parse_data_line,
    token_frame,
)
from .json_scanner import IncrementalJSONScanner
from .models import FrameType, ScannerState, SSEFrame, StreamingResponse
from .parser import SSELineDecoder

__all__ = [
    "DONE_SENTINEL",
    "FrameType",
    "IncrementalJSONScanner",
    "SSEFrame",
    "SSELineDecoder",
    "ScannerState",
    "StreamingResponse",
    "done_frame",
    "encode_frame",
    "error_frame",
    "json_frame",
    "parse_data_line",
    "token_frame",
]
