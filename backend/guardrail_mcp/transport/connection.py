"""Connection handles: one live outbound stream each."""

import asyncio
import uuid
from collections.abc import AsyncIterator
from enum import Enum

from guardrail_mcp.models.session import Event


class ConnectionKind(str, Enum):
    """What opened the stream."""

    STANDALONE = "standalone"  # GET /mcp or GET /sse
    REQUEST = "request"  # the response stream of a POST /mcp


class Connection:
    """A live network stream delivering events for one session.

    Events are queued in memory; the HTTP response consumes them through
    ``events()``. Closing the connection ends that iterator.
    """

    def __init__(self, kind: ConnectionKind = ConnectionKind.STANDALONE):
        self.connection_id = uuid.uuid4().hex[:12]
        self.kind = kind
        self._queue: asyncio.Queue[Event | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: Event) -> bool:
        """Queue an event for delivery.

        Returns:
            False if the connection is already closed.
        """
        if self._closed:
            return False
        self._queue.put_nowait(event)
        return True

    def close(self) -> None:
        """Stop delivery; already queued events are still drained."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    async def events(self) -> AsyncIterator[Event]:
        """Yield queued events until the connection is closed."""
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event

    def __repr__(self) -> str:
        return f"Connection({self.kind.value}, {self.connection_id})"
