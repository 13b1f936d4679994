"""Legacy SSE transport endpoints (query-string correlated, not resumable)."""

import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse

from guardrail_mcp.api.deps import get_authorization, get_request_router
from guardrail_mcp.api.streaming import SessionEventStream
from guardrail_mcp.errors import BadRequest
from guardrail_mcp.models.jsonrpc import parse_messages
from guardrail_mcp.models.session import AuthorizationContext, TransportKind
from guardrail_mcp.transport.connection import Connection, ConnectionKind
from guardrail_mcp.transport.manager import SessionManager, get_session_manager
from guardrail_mcp.transport.router import RequestRouter
from guardrail_mcp.transport.sse import format_sse

logger = logging.getLogger(__name__)

router = APIRouter()

MESSAGE_PATH = "/message"


@router.get("/sse")
async def open_sse(
    request: Request,
    auth: AuthorizationContext = Depends(get_authorization),
    session_id: str | None = Query(default=None, alias="sessionId"),
    routing: RequestRouter = Depends(get_request_router),
    manager: SessionManager = Depends(get_session_manager),
) -> SessionEventStream:
    """Open a legacy SSE session.

    The first frame is an ``endpoint`` event naming the URL (with the new
    session id) that the client must POST its messages to.
    """
    if session_id:
        raise BadRequest(
            "Bad Request: SSE sessions cannot be resumed; open a new stream without sessionId",
            session_id=session_id,
        )

    binding = routing.open_legacy_session(auth)
    connection = Connection(ConnectionKind.STANDALONE)
    root_path = request.scope.get("root_path", "")
    binding.open(connection, f"{root_path}{MESSAGE_PATH}?sessionId={binding.session_id}")
    logger.info(f"Client connected: {binding.session_id}")

    def on_close() -> None:
        logger.info(f"Client disconnected: {binding.session_id}")
        manager.release(binding, connection)

    async def event_generator() -> AsyncGenerator[str, None]:
        async for event in connection.events():
            yield format_sse(event)
            binding.mark_delivered(event)

    return SessionEventStream(event_generator(), on_close=on_close)


@router.post(MESSAGE_PATH)
async def post_message(
    request: Request,
    auth: AuthorizationContext = Depends(get_authorization),
    session_id: str | None = Query(default=None, alias="sessionId"),
    routing: RequestRouter = Depends(get_request_router),
) -> PlainTextResponse:
    """Accept a client message; the response arrives on the SSE stream."""
    if not session_id:
        raise BadRequest("Bad Request: missing sessionId query parameter")
    binding = routing.resolve(session_id, TransportKind.LEGACY_SSE, auth)

    messages, _ = parse_messages(await request.body())
    for message in messages:
        binding.submit(message)

    logger.debug(f"Accepted {len(messages)} message(s) for session {session_id}")
    return PlainTextResponse("Accepted", status_code=202)
