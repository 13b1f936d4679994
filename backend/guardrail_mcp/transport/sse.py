"""Server-sent event framing."""

import json

from guardrail_mcp.models.session import Event

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(event: Event) -> str:
    """Encode an event as one SSE frame.

    Logged events carry their sequence as the SSE ``id`` so clients can send
    it back in ``Last-Event-ID``.
    """
    lines = []
    if event.sequence is not None:
        lines.append(f"id: {event.sequence}")
    lines.append(f"event: {event.event}")
    data = event.data if isinstance(event.data, str) else json.dumps(event.data)
    for line in data.splitlines() or [""]:
        lines.append(f"data: {line}")
    return "\n".join(lines) + "\n\n"
