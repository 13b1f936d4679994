"""Streamable HTTP transport endpoints (header-correlated, resumable)."""

import logging
from collections.abc import AsyncGenerator
from typing import Any

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse, Response

from guardrail_mcp.api.deps import SESSION_HEADER, get_authorization, get_request_router
from guardrail_mcp.api.streaming import SessionEventStream
from guardrail_mcp.errors import BadRequest, InvalidSession
from guardrail_mcp.models.jsonrpc import JSONRPCMessage, parse_messages
from guardrail_mcp.models.session import AuthorizationContext, Event, TransportKind
from guardrail_mcp.transport.binding import TransportBinding
from guardrail_mcp.transport.connection import Connection, ConnectionKind
from guardrail_mcp.transport.manager import SessionManager, get_session_manager
from guardrail_mcp.transport.router import RequestRouter
from guardrail_mcp.transport.sse import format_sse

logger = logging.getLogger(__name__)

router = APIRouter()


def _answers(event: Event, pending: set[Any]) -> bool:
    """Whether the event is the response to one of the pending request ids."""
    data = event.data
    if not isinstance(data, dict) or "method" in data:
        return False
    if ("result" in data or "error" in data) and data.get("id") in pending:
        pending.discard(data["id"])
        return True
    return False


def _parse_last_event_id(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    try:
        cursor = int(value.strip())
    except ValueError:
        raise BadRequest(f"Bad Request: invalid Last-Event-ID {value!r}")
    if cursor < 0:
        raise BadRequest(f"Bad Request: invalid Last-Event-ID {value!r}")
    return cursor


async def _stream_responses(
    manager: SessionManager,
    binding: TransportBinding,
    connection: Connection,
    requests: list[JSONRPCMessage],
    is_batch: bool,
    wants_sse: bool,
) -> Response:
    """Deliver a POST's responses over its own connection, then release it.

    Any notification produced while the connection is the writer is streamed
    too (SSE mode); the connection closes once every request is answered.
    """
    pending = {m.id for m in requests}
    headers = {SESSION_HEADER: binding.session_id}

    if wants_sse:

        async def event_generator() -> AsyncGenerator[str, None]:
            async for event in connection.events():
                yield format_sse(event)
                binding.mark_delivered(event)
                if _answers(event, pending) and not pending:
                    break

        return SessionEventStream(
            event_generator(),
            on_close=lambda: manager.release(binding, connection),
            headers=headers,
        )

    responses: list[dict[str, Any]] = []
    try:
        async for event in connection.events():
            if _answers(event, pending):
                responses.append(event.data)
                binding.mark_delivered(event)
                if not pending:
                    break
    finally:
        manager.release(binding, connection)

    if not responses:
        raise InvalidSession(
            f"Session {binding.session_id} was terminated before responding",
            request_id=requests[0].id,
            session_id=binding.session_id,
        )
    body: Any = responses if is_batch else responses[0]
    return JSONResponse(body, headers=headers)


@router.post("/mcp")
async def post_message(
    request: Request,
    auth: AuthorizationContext = Depends(get_authorization),
    mcp_session_id: str | None = Header(default=None),
    routing: RequestRouter = Depends(get_request_router),
    manager: SessionManager = Depends(get_session_manager),
) -> Response:
    """Receive one JSON-RPC message or a batch.

    Without a session id only ``initialize`` is accepted; it creates the
    session and returns its id in the ``Mcp-Session-Id`` header.
    """
    messages, is_batch = parse_messages(await request.body())
    binding, is_handshake = routing.route_post(mcp_session_id, auth, messages)
    wants_sse = "text/event-stream" in request.headers.get("accept", "")

    if is_handshake:
        init = messages[0]
        connection = Connection(ConnectionKind.REQUEST)
        try:
            response = await binding.handshake(connection, init)
        except Exception:
            manager.terminate(binding.session_id, reason="handshake failed")
            raise
        if "error" in response:
            manager.terminate(binding.session_id, reason="handshake failed")
            return JSONResponse(response, status_code=400)
        logger.info(f"Session initialized, ID: {binding.session_id}")
        return await _stream_responses(manager, binding, connection, [init], False, wants_sse)

    requests = [m for m in messages if m.is_request]
    writer = binding.writer

    if not requests or (writer is not None and writer.kind == ConnectionKind.STANDALONE):
        # Nothing to answer here, or answers go to the open standalone stream
        for message in messages:
            binding.submit(message)
        return Response(status_code=202, headers={SESSION_HEADER: binding.session_id})

    connection = Connection(ConnectionKind.REQUEST)
    binding.attach(connection)
    for message in messages:
        binding.submit(message)
    return await _stream_responses(manager, binding, connection, requests, is_batch, wants_sse)


@router.get("/mcp")
async def open_stream(
    auth: AuthorizationContext = Depends(get_authorization),
    mcp_session_id: str | None = Header(default=None),
    last_event_id: str | None = Header(default=None),
    routing: RequestRouter = Depends(get_request_router),
    manager: SessionManager = Depends(get_session_manager),
) -> SessionEventStream:
    """Open (or resume) the session's standalone event stream.

    With ``Last-Event-ID`` every event after that id is replayed before live
    delivery; without it only new events are sent.
    """
    if not mcp_session_id:
        raise BadRequest("Bad Request: No valid session ID provided")
    binding = routing.resolve(mcp_session_id, TransportKind.STREAMABLE_HTTP, auth)
    cursor = _parse_last_event_id(last_event_id)

    if cursor is not None:
        logger.info(f"Client reconnecting to session {mcp_session_id}, Last-Event-ID: {cursor}")
    else:
        logger.info(f"Opening SSE stream for session {mcp_session_id}")

    connection = Connection(ConnectionKind.STANDALONE)
    binding.attach(connection, after_sequence=cursor)

    async def event_generator() -> AsyncGenerator[str, None]:
        async for event in connection.events():
            yield format_sse(event)
            binding.mark_delivered(event)

    return SessionEventStream(
        event_generator(),
        on_close=lambda: manager.release(binding, connection),
        headers={SESSION_HEADER: binding.session_id},
    )


@router.delete("/mcp")
async def terminate_session(
    auth: AuthorizationContext = Depends(get_authorization),
    mcp_session_id: str | None = Header(default=None),
    routing: RequestRouter = Depends(get_request_router),
    manager: SessionManager = Depends(get_session_manager),
) -> JSONResponse:
    """Explicitly terminate a session.

    Terminating an unknown or already terminated session returns the same
    404 invalid-session error every time.
    """
    if not mcp_session_id:
        raise BadRequest("Bad Request: No valid session ID provided")
    binding = routing.resolve(mcp_session_id, TransportKind.STREAMABLE_HTTP, auth)

    logger.info(f"Received termination request for session {mcp_session_id}")
    manager.terminate(binding.session_id)
    return JSONResponse({"status": "terminated", "session_id": binding.session_id})

