"""
Incremental SSE decoding: bytes to lines to relay frames.

Used on the client side to read relay/brain streams and on the server side to
split the upstream provider's SSE body into lines.
"""

from __future__ import annotations

import codecs
import json
from collections.abc import AsyncGenerator, Callable

import httpx
import structlog

from .frames import parse_data_line
from .models import DecoderStats, SSEFrame

logger = structlog.get_logger(__name__)

# Constants
MAX_MALFORMED_SAMPLES = 20

MalformedFrameCallback = Callable[[str, Exception], None]


class SSELineDecoder:
    """
    Streaming UTF-8 decoder and line splitter with malformed-frame tolerance.

    Multi-byte characters split across chunk boundaries are held by an
    incremental decoder until complete; a partial trailing line is held until
    its newline arrives.
    """

    def __init__(self, on_malformed: MalformedFrameCallback | None = None):
        self.on_malformed = on_malformed
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""
        self.stats = DecoderStats()

    def feed(self, chunk: bytes) -> list[str]:
        """Decode a chunk and return every line it completed."""
        text = self._pending + self._decoder.decode(chunk)
        lines = text.split("\n")
        self._pending = lines.pop()
        self.stats.total_lines += len(lines)
        return lines

    def flush(self) -> list[str]:
        """Return whatever is left once the byte stream has ended."""
        text = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        if not text:
            return []
        self.stats.total_lines += 1
        return [text]

    def parse_line(self, line: str) -> SSEFrame | None:
        """Parse one line into a frame; malformed data is reported and skipped."""
        try:
            frame = parse_data_line(line)
        except (json.JSONDecodeError, ValueError) as e:
            self._record_malformed(line, e)
            return None

        if frame is None:
            self.stats.ignored_lines += 1
        else:
            self.stats.data_frames += 1
        return frame

    def decode(self, chunk: bytes) -> list[SSEFrame]:
        """Feed a chunk and return the frames it completed, in order."""
        frames = []
        for line in self.feed(chunk):
            frame = self.parse_line(line)
            if frame is not None:
                frames.append(frame)
        return frames

    def finish(self) -> list[SSEFrame]:
        frames = []
        for line in self.flush():
            frame = self.parse_line(line)
            if frame is not None:
                frames.append(frame)
        return frames

    async def iter_frames(
        self, response: httpx.Response
    ) -> AsyncGenerator[SSEFrame]:
        """Yield relay frames from a streaming httpx response body."""
        async for chunk in response.aiter_bytes():
            for frame in self.decode(chunk):
                yield frame
        for frame in self.finish():
            yield frame

    def _record_malformed(self, line: str, error: Exception) -> None:
        self.stats.malformed_frames += 1
        if len(self.stats.malformed_samples) < MAX_MALFORMED_SAMPLES:
            self.stats.malformed_samples.append(line)

        logger.debug(
            "Skipping malformed SSE frame",
            error_type=type(error).__name__,
            error_message=str(error),
            line_length=len(line),
        )
        if self.on_malformed is not None:
            self.on_malformed(line, error)

    def get_stats(self) -> dict[str, int]:
        """Get decoding statistics for monitoring."""
        return self.stats.as_dict()

    def reset_stats(self) -> None:
        """Reset statistics counters."""
        self.stats = DecoderStats()
