"""Streaming response that always gives back the session's writer slot."""

from collections.abc import AsyncIterable, Callable, Mapping

from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from guardrail_mcp.transport.sse import SSE_HEADERS


class SessionEventStream(StreamingResponse):
    """SSE response bound to one session connection.

    ``on_close`` runs once the response is over, however it ended: body
    exhausted, client gone before the first byte, or the task cancelled.
    The body iterator alone cannot promise that, since it may never start.
    """

    def __init__(
        self,
        content: AsyncIterable[str],
        on_close: Callable[[], None],
        headers: Mapping[str, str] | None = None,
    ):
        super().__init__(
            content,
            media_type="text/event-stream",
            headers={**SSE_HEADERS, **(headers or {})},
        )
        self._on_close = on_close

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            self._on_close()
