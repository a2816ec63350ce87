"""
Incremental extraction of the first embedded JSON object in a token stream.
"""

from __future__ import annotations

import json
from typing import Any

import structlog

from .models import ScannerState

logger = structlog.get_logger(__name__)

# Longest candidate kept while waiting for its closing brace
MAX_CANDIDATE_CHARS = 64 * 1024


class IncrementalJSONScanner:
    """
    Character-at-a-time scanner that finds the first balanced `{...}` object.

    Text before the first top-level `{` is skipped. Inside a candidate object
    the scanner tracks brace depth and string/escape state so that braces in
    string literals are not counted. When depth returns to zero the buffered
    candidate is parsed; a failed parse discards it and scanning resumes.
    After the first successful parse the scanner is BALANCED and ignores all
    further input. A candidate longer than `max_candidate_chars` is dropped
    and scanning resumes from the character that overflowed it.
    """

    __slots__ = (
        "state", "_depth", "_buffer", "result", "candidates", "max_candidate_chars"
    )

    def __init__(self, max_candidate_chars: int = MAX_CANDIDATE_CHARS) -> None:
        self.max_candidate_chars = max_candidate_chars
        self.state = ScannerState.SCANNING
        self._depth = 0
        self._buffer: list[str] = []
        self.result: Any = None
        self.candidates = 0

    @property
    def emitted(self) -> bool:
        return self.state is ScannerState.BALANCED

    @property
    def depth(self) -> int:
        return self._depth

    def feed(self, text: str) -> dict[str, Any] | None:
        """Consume a delta; return the object the first time one balances."""
        if self.state is ScannerState.BALANCED:
            return None
        for char in text:
            found = self.step(char)
            if found is not None:
                return found
        return None

    def step(self, char: str) -> dict[str, Any] | None:
        """Single transition of the state machine."""
        state = self.state

        if state is ScannerState.BALANCED:
            return None

        if self._depth and len(self._buffer) >= self.max_candidate_chars:
            self._drop_candidate()
            state = self.state

        if state is ScannerState.ESCAPED:
            self._buffer.append(char)
            self.state = ScannerState.IN_STRING
            return None

        if state is ScannerState.IN_STRING:
            self._buffer.append(char)
            if char == "\\":
                self.state = ScannerState.ESCAPED
            elif char == '"':
                self.state = ScannerState.SCANNING
            return None

        # SCANNING
        if self._depth == 0:
            if char == "{":
                self._depth = 1
                self._buffer = ["{"]
                self.candidates += 1
            return None

        self._buffer.append(char)
        if char == '"':
            self.state = ScannerState.IN_STRING
        elif char == "{":
            self._depth += 1
        elif char == "}":
            self._depth -= 1
            if self._depth == 0:
                return self._close_candidate()
        return None

    def _drop_candidate(self) -> None:
        logger.debug(
            "Dropping oversized JSON candidate", candidate_length=len(self._buffer)
        )
        self._buffer = []
        self._depth = 0
        self.state = ScannerState.SCANNING

    def _close_candidate(self) -> dict[str, Any] | None:
        candidate = "".join(self._buffer)
        self._buffer = []
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError as e:
            logger.debug(
                "Discarding unparseable JSON candidate",
                candidate_length=len(candidate),
                error_message=str(e),
            )
            return None

        self.state = ScannerState.BALANCED
        self.result = parsed
        return parsed
