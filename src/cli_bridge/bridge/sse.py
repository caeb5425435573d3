"""Server-Sent Events encoding and the per-session client writer."""

import asyncio
import json

import structlog
from aiohttp import web

from cli_bridge.bridge.models import StreamEvent

logger = structlog.get_logger()

DONE_MARKER = b"data: [DONE]\n\n"

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def encode_event(event: StreamEvent) -> bytes:
    """Serialize one event as an SSE ``data:`` frame."""
    if event.event_type == "done":
        return DONE_MARKER
    if event.event_type == "error":
        payload = {"error": event.error}
    else:
        payload = {"text": event.text}
    data = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return f"data: {data}\n\n".encode("utf-8")


class SSEWriter:
    """Single writer for one client stream.

    Writes are serialized. Once the client has gone away every further
    write is a no-op, and the terminal marker is written at most once.
    """

    def __init__(self, response: web.StreamResponse) -> None:
        self._response = response
        self._lock = asyncio.Lock()
        self.closed = False
        self.done_sent = False

    async def send(self, event: StreamEvent) -> bool:
        """Write ``event``; returns False if the client can no longer receive."""
        async with self._lock:
            if self.closed or self.done_sent:
                return False
            if event.event_type == "done":
                self.done_sent = True
            try:
                await self._response.write(encode_event(event))
            except ConnectionError:
                self.closed = True
                logger.debug("sse_write_after_disconnect", event_type=event.event_type)
                return False
            return True

    async def finish(self) -> None:
        """Write the terminal marker if it has not been written, then close."""
        await self.send(StreamEvent.done())
        async with self._lock:
            if self.closed:
                return
            self.closed = True
            try:
                await self._response.write_eof()
            except ConnectionError:
                logger.debug("sse_eof_after_disconnect")
