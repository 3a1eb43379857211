"""SSE framing for AG-UI events and the write-ordered sinks a run writes to."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

from .events import Event

logger = logging.getLogger(__name__)

SSE_CONTENT_TYPE = "text/event-stream"


class SinkClosedError(RuntimeError):
    """Raised when writing to a sink whose consumer has gone away."""


class EventEncoder:
    """Serialize events as Server-Sent-Events frames (``data: <json>\\n\\n``)."""

    def get_content_type(self) -> str:
        return SSE_CONTENT_TYPE

    def to_payload(self, event: Event) -> dict[str, Any]:
        return event.model_dump(mode="json", by_alias=True, exclude_none=True)

    def encode(self, event: Event) -> str:
        body = json.dumps(self.to_payload(event), ensure_ascii=False, separators=(",", ":"))
        return f"data: {body}\n\n"


class EventSink(Protocol):
    """Write-ordered output channel of one run.

    ``write`` returns only once the event is fully handed over, and raises
    SinkClosedError once the consumer is gone.
    """

    @property
    def closed(self) -> bool: ...

    async def write(self, event: Event) -> None: ...


_END = object()


class QueueEventSink:
    """Sink backed by an asyncio queue, drained by the HTTP response body."""

    def __init__(self, encoder: EventEncoder | None = None) -> None:
        self._encoder = encoder or EventEncoder()
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write(self, event: Event) -> None:
        if self._closed:
            raise SinkClosedError(f"sink closed before {type(event).__name__} could be written")
        await self._queue.put(self._encoder.encode(event))

    def close(self) -> None:
        """Mark the end of the stream. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_END)

    async def stream(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            yield item  # type: ignore[misc]
