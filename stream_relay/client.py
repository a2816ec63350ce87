"""
Streaming client for the brain SSE endpoint.

Each `stream_response` call registers a `StreamHandle` in the client's own
registry before the request is sent and removes it when the call ends, so no
entry outlives its HTTP request. Cancelling a handle from another task cancels
the task driving that request; cancelling from inside a callback only flags the
handle, and the frame loop stops at the next frame. Either way the call returns
an empty string and `on_complete` is never invoked.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from stream_relay.config import Configuration
from stream_relay.llm.exceptions import AuthenticationError, StreamingError
from stream_relay.llm.streaming.models import FrameType, StreamingResponse
from stream_relay.llm.streaming.parser import MalformedFrameCallback, SSELineDecoder
from stream_relay.logging_utils import ContextualLogger, log_operation

TokenCallback = Callable[[str], None]
CompleteCallback = Callable[[str], None]
ErrorCallback = Callable[[str], None]
JSONCallback = Callable[[Any], None]


class SessionProvider(Protocol):
    """Source of the bearer token for the active user session."""

    async def get_access_token(self) -> str | None: ...


class StaticSession:
    """Session backed by a fixed access token; None means signed out."""

    def __init__(self, access_token: str | None = None) -> None:
        self.access_token = access_token

    async def get_access_token(self) -> str | None:
        return self.access_token


@dataclass
class StreamHandle:
    """Abort handle for one in-flight stream."""
    stream_id: str
    task: asyncio.Task | None = field(default=None, repr=False)
    aborted: bool = False

    def abort(self) -> None:
        """Mark the stream aborted; a task other than the caller is also cancelled."""
        if self.aborted:
            return
        self.aborted = True
        if self.task is None or self.task.done():
            return
        # Aborting from inside a callback: the consume loop sees the flag
        if self.task is _running_task():
            return
        self.task.cancel()


def _running_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class StreamingClient:
    """Drives streaming requests to the brain endpoint and tracks them for cancellation."""

    def __init__(
        self,
        endpoint: str,
        session: SessionProvider,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: httpx.Timeout | None = None,
        on_malformed_frame: MalformedFrameCallback | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.session = session
        self.on_malformed_frame = on_malformed_frame
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(
            timeout=timeout or httpx.Timeout(10.0, read=None)
        )
        self._active_streams: dict[str, StreamHandle] = {}
        self._log = ContextualLogger({"component": "streaming_client"})

    @classmethod
    def from_config(
        cls,
        config: Configuration,
        session: SessionProvider,
        **kwargs: Any,
    ) -> StreamingClient:
        client_config = config.get_client_config()
        timeout = httpx.Timeout(
            client_config.get("connect_timeout", 10.0),
            read=client_config.get("read_timeout"),
        )
        return cls(client_config["brain_stream_url"], session, timeout=timeout, **kwargs)

    @property
    def active_stream_ids(self) -> list[str]:
        return list(self._active_streams)

    @log_operation("stream_response")
    async def stream_response(
        self,
        message: str,
        language: str,
        conversation_id: str | None,
        active_trigger: str | None,
        attached_files: list[dict[str, Any]] | None,
        on_token: TokenCallback,
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
        *,
        stream_id: str | None = None,
        on_json: JSONCallback | None = None,
    ) -> str:
        """
        Stream one response and return its full text.

        `on_token` receives the cumulative text after every token frame,
        `on_complete` the full text once on `[DONE]`, `on_error` a message at
        most once on failure (the exception is then re-raised). Returns ""
        without invoking callbacks when the stream is cancelled.

        Raises:
            AuthenticationError: No active session; nothing is sent.
            StreamingError: Non-2xx status, in-band error frame, or a body that
                ended before `[DONE]`.
        """
        access_token = await self.session.get_access_token()
        if not access_token:
            raise AuthenticationError("No active session")

        stream_id = stream_id or f"stream_{uuid.uuid4().hex}"
        if stream_id in self._active_streams:
            raise ValueError(f"Stream '{stream_id}' is already active")

        handle = StreamHandle(stream_id, asyncio.current_task())
        self._active_streams[stream_id] = handle
        state = StreamingResponse(stream_id)
        log = self._log.bind(stream_id=stream_id, conversation_id=conversation_id)

        payload = {
            "message": message,
            "language": language,
            "conversationId": conversation_id,
            "activeTrigger": active_trigger,
            "attachedFiles": attached_files or [],
            "stream": True,
        }

        try:
            full_text = await self._consume(
                payload, access_token, handle, state, on_token, on_json
            )
        except asyncio.CancelledError:
            if not handle.aborted:
                raise
            current = asyncio.current_task()
            if current is not None:
                current.uncancel()
            log.info("Stream cancelled", received_chars=len(state.content))
            return ""
        except Exception as e:
            if handle.aborted:
                log.info(
                    "Stream cancelled",
                    received_chars=len(state.content),
                    error_type=type(e).__name__,
                )
                return ""
            error_message = str(e) or type(e).__name__
            log.error(
                "Stream failed",
                error_type=type(e).__name__,
                error_message=error_message,
                received_chars=len(state.content),
            )
            on_error(error_message)
            raise
        finally:
            if self._active_streams.get(stream_id) is handle:
                del self._active_streams[stream_id]

        if full_text is None:
            log.info("Stream cancelled", received_chars=len(state.content))
            return ""
        on_complete(full_text)
        return full_text

    async def _consume(
        self,
        payload: dict[str, Any],
        access_token: str,
        handle: StreamHandle,
        state: StreamingResponse,
        on_token: TokenCallback,
        on_json: JSONCallback | None,
    ) -> str | None:
        """Read frames until `[DONE]`; None means the handle was aborted."""
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "text/event-stream",
        }
        decoder = SSELineDecoder(on_malformed=self.on_malformed_frame)

        async with self.client.stream(
            "POST", self.endpoint, json=payload, headers=headers
        ) as response:
            if not response.is_success:
                body = (await response.aread()).decode("utf-8", "replace")
                raise StreamingError(
                    f"Streaming request failed with HTTP {response.status_code}: "
                    f"{body[:200]}",
                    status_code=response.status_code,
                )

            async with aclosing(decoder.iter_frames(response)) as frames:
                async for frame in frames:
                    if handle.aborted:
                        return None
                    if frame.frame_type is FrameType.TOKEN:
                        on_token(state.append(frame.payload))
                    elif frame.frame_type is FrameType.JSON:
                        if on_json is not None and frame.payload is not None:
                            on_json(frame.payload)
                    elif frame.frame_type is FrameType.ERROR:
                        raise StreamingError(frame.payload)
                    elif frame.frame_type is FrameType.DONE:
                        state.finalize()
                        break

        if handle.aborted:
            return None
        if not state.is_complete:
            raise StreamingError("Stream ended before completion")
        return state.content

    def cancel_stream(self, stream_id: str) -> bool:
        """Abort one stream; unknown or finished ids are ignored."""
        handle = self._active_streams.pop(stream_id, None)
        if handle is None:
            return False
        handle.abort()
        self._log.info("Stream cancel requested", stream_id=stream_id)
        return True

    def cancel_all_streams(self) -> int:
        """Abort every registered stream and clear the registry."""
        handles = list(self._active_streams.values())
        self._active_streams.clear()
        for handle in handles:
            handle.abort()
        if handles:
            self._log.info("Cancelled all streams", count=len(handles))
        return len(handles)

    async def close(self) -> None:
        """Cancel outstanding streams and close the HTTP client."""
        self.cancel_all_streams()
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> StreamingClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
