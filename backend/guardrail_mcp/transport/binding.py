"""Transport bindings: the lifecycle state machine of one session.

A binding owns the session's connection slot (at most one attached writer),
forwards client messages to the session's protocol server and delivers what
comes back. Two variants share this base:

- StreamableHTTPBinding: header-correlated and resumable through the event
  log. A dropped connection leaves the session detached, not destroyed.
- LegacySSEBinding: correlated by the query-string id issued on first
  contact. Not resumable; losing the stream terminates the session.

State transitions (anything else is a bookkeeping error):

    uninitialized -> active | terminated
    active        -> detached | terminated
    detached      -> active | terminated
    terminated    -> (none)
"""

import asyncio
import hmac
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, ClassVar

from guardrail_mcp.errors import BadRequest, Conflict, GuardrailError, InternalError, InvalidSession
from guardrail_mcp.models.jsonrpc import JSONRPCMessage
from guardrail_mcp.models.session import (
    AuthorizationContext,
    Event,
    Session,
    SessionInfo,
    SessionState,
    TransportKind,
)
from guardrail_mcp.protocol.server import GuardrailServer
from guardrail_mcp.transport.connection import Connection
from guardrail_mcp.transport.event_log import EventLog

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.UNINITIALIZED: frozenset({SessionState.ACTIVE, SessionState.TERMINATED}),
    SessionState.ACTIVE: frozenset({SessionState.DETACHED, SessionState.TERMINATED}),
    SessionState.DETACHED: frozenset({SessionState.ACTIVE, SessionState.TERMINATED}),
    SessionState.TERMINATED: frozenset(),
}


class TransportBinding(ABC):
    """Base state machine shared by both HTTP transport variants."""

    transport: ClassVar[TransportKind]
    resumable: ClassVar[bool] = False

    def __init__(self, session: Session, server: GuardrailServer, auth_fingerprint: str):
        self.session = session
        self.server = server
        self._auth_fingerprint = auth_fingerprint
        self._writer: Connection | None = None
        self._tasks: set[asyncio.Task] = set()
        self.termination_reason: str | None = None
        server.set_notifier(self.send)

    @property
    def session_id(self) -> str:
        return self.session.id

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def writer(self) -> Connection | None:
        """The connection currently owning delivery, if any."""
        return self._writer

    @property
    def is_terminated(self) -> bool:
        return self.session.state == SessionState.TERMINATED

    def accepts(self, auth: AuthorizationContext) -> bool:
        """Whether the credentials match the ones the session was created with."""
        return hmac.compare_digest(self._auth_fingerprint, auth.fingerprint)

    def touch(self) -> None:
        self.session.last_activity = datetime.now()

    def activate(self, connection: Connection) -> None:
        """Complete the handshake and make ``connection`` the single writer."""
        if self.session.state != SessionState.UNINITIALIZED:
            raise Conflict(
                f"Session {self.session_id} is already initialized",
                session_id=self.session_id,
            )
        self._transition(SessionState.ACTIVE)
        self._writer = connection
        self.touch()
        logger.info(f"Session {self.session_id} active on {connection}")

    def attach(self, connection: Connection, after_sequence: int | None = None) -> None:
        """Attach a new connection to a detached session."""
        raise BadRequest(
            f"{self.transport.value} sessions cannot be resumed",
            session_id=self.session_id,
        )

    def release(self, connection: Connection) -> None:
        """Handle a closed connection.

        A connection that is no longer the writer (already replaced or the
        session was terminated) is ignored.
        """
        connection.close()
        if connection is not self._writer:
            return
        self._writer = None
        if self.session.state == SessionState.ACTIVE:
            self._on_writer_lost(connection)

    def terminate(self, reason: str) -> bool:
        """Permanently close the session.

        Returns:
            False if it was already terminated.
        """
        if self.is_terminated:
            return False
        self._transition(SessionState.TERMINATED)
        self.termination_reason = reason

        writer, self._writer = self._writer, None
        if writer is not None:
            writer.close()

        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self.server.set_notifier(None)

        logger.info(f"Session {self.session_id} terminated ({reason})")
        return True

    @abstractmethod
    def send(self, message: dict[str, Any]) -> Event | None:
        """Deliver one server-to-client message."""

    def submit(self, message: JSONRPCMessage) -> asyncio.Task | None:
        """Forward a client message to the protocol server.

        Requests are handled in a background task whose response is delivered
        with ``send``. Notifications and responses are handled the same way so
        ordering relative to requests is preserved.
        """
        if self.is_terminated:
            raise InvalidSession(
                f"Session {self.session_id} has been terminated",
                request_id=message.id,
                session_id=self.session_id,
            )
        self.touch()
        task = asyncio.create_task(self._dispatch(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _dispatch(self, message: JSONRPCMessage) -> None:
        try:
            response = await self.server.handle(message)
        except GuardrailError as e:
            response = e.to_jsonrpc(message.id) if message.is_request else None
        except Exception as e:
            logger.exception(
                f"Unhandled error processing {message.method} for session {self.session_id}: {e}"
            )
            response = (
                InternalError("Internal server error").to_jsonrpc(message.id)
                if message.is_request
                else None
            )

        if response is not None and not self.is_terminated:
            self.send(response)

    def mark_delivered(self, event: Event) -> None:
        """Record that an event reached the client."""
        if event.sequence is not None:
            self.session.last_event_id = event.sequence
        self.touch()

    def info(self) -> SessionInfo:
        return SessionInfo(
            session_id=self.session_id,
            transport=self.transport,
            state=self.session.state,
            last_event_id=self.session.last_event_id,
            created_at=self.session.created_at,
            last_activity=self.session.last_activity,
            connected=self._writer is not None,
        )

    @abstractmethod
    def _on_writer_lost(self, connection: Connection) -> None:
        """Transition after the active writer went away."""

    def _transition(self, new_state: SessionState) -> None:
        current = self.session.state
        if new_state not in _TRANSITIONS[current]:
            raise InternalError(
                f"Illegal transition {current.value} -> {new_state.value} "
                f"for session {self.session_id}",
                session_id=self.session_id,
            )
        self.session.state = new_state
        logger.debug(f"Session {self.session_id}: {current.value} -> {new_state.value}")


class StreamableHTTPBinding(TransportBinding):
    """Header-correlated, resumable binding backed by the event log."""

    transport = TransportKind.STREAMABLE_HTTP
    resumable = True

    def __init__(
        self,
        session: Session,
        server: GuardrailServer,
        auth_fingerprint: str,
        event_log: EventLog,
    ):
        super().__init__(session, server, auth_fingerprint)
        self._event_log = event_log
        event_log.open(session.id)

    async def handshake(self, connection: Connection, message: JSONRPCMessage) -> dict[str, Any]:
        """Run ``initialize`` and, if it succeeds, activate on ``connection``.

        Returns:
            The initialize response. On success it is also logged as the
            session's first event and queued on the connection.
        """
        response = await self.server.handle(message)
        if response is None:
            raise InternalError(
                f"No response to initialize for session {self.session_id}",
                request_id=message.id,
                session_id=self.session_id,
            )
        if "error" in response:
            return response
        self.activate(connection)
        self.send(response)
        return response

    def attach(self, connection: Connection, after_sequence: int | None = None) -> None:
        """Attach ``connection`` as the writer of a detached session.

        With a cursor, every logged event after it is queued on the
        connection before live delivery starts. Without one, only events
        produced from now on are delivered. No suspension point separates the
        replay from the switch to live delivery.
        """
        state = self.session.state
        if state == SessionState.TERMINATED:
            raise InvalidSession(
                f"Session {self.session_id} has been terminated",
                session_id=self.session_id,
            )
        if state == SessionState.ACTIVE:
            raise Conflict(
                f"Session {self.session_id} already has an attached stream",
                session_id=self.session_id,
            )
        if state == SessionState.UNINITIALIZED:
            raise BadRequest(
                f"Session {self.session_id} has not completed its handshake",
                session_id=self.session_id,
            )

        backlog: list[Event] = []
        if after_sequence is not None:
            last = self._event_log.last_sequence(self.session_id)
            if after_sequence > last:
                raise BadRequest(
                    f"Unknown event id {after_sequence} for session {self.session_id}",
                    session_id=self.session_id,
                )
            backlog = list(self._event_log.replay_from(self.session_id, after_sequence))

        self._transition(SessionState.ACTIVE)
        self._writer = connection
        for event in backlog:
            connection.push(event)
        self.touch()

        if backlog:
            logger.info(
                f"Session {self.session_id} resumed on {connection}, "
                f"replaying {len(backlog)} event(s) after {after_sequence}"
            )
        else:
            logger.info(f"Session {self.session_id} attached on {connection}")

    def send(self, message: dict[str, Any]) -> Event | None:
        if self.is_terminated:
            logger.debug(f"Dropping message for terminated session {self.session_id}")
            return None
        event = self._event_log.append(self.session_id, message)
        if self._writer is not None:
            self._writer.push(event)
        return event

    def terminate(self, reason: str) -> bool:
        if not super().terminate(reason):
            return False
        self._event_log.discard(self.session_id)
        return True

    def _on_writer_lost(self, connection: Connection) -> None:
        self._transition(SessionState.DETACHED)
        logger.info(f"Session {self.session_id} detached from {connection}")


class LegacySSEBinding(TransportBinding):
    """Query-string-correlated binding of the older SSE transport.

    Messages go straight to the open stream; nothing is logged, so there is
    nothing to replay and a lost stream ends the session.
    """

    transport = TransportKind.LEGACY_SSE
    resumable = False

    def open(self, connection: Connection, endpoint: str) -> None:
        """Activate on the first GET and announce the message endpoint."""
        self.activate(connection)
        connection.push(Event(session_id=self.session_id, event="endpoint", data=endpoint))

    def send(self, message: dict[str, Any]) -> Event | None:
        if self._writer is None:
            logger.warning(f"No open stream for legacy session {self.session_id}; dropping message")
            return None
        event = Event(session_id=self.session_id, data=message)
        self._writer.push(event)
        return event

    def _on_writer_lost(self, connection: Connection) -> None:
        self.terminate("stream closed")
