"""SessionManager handles session lifecycle and storage."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from guardrail_mcp import config
from guardrail_mcp.models.session import AuthorizationContext, Session, SessionState, TransportKind
from guardrail_mcp.protocol.server import GuardrailServer
from guardrail_mcp.transport.binding import (
    LegacySSEBinding,
    StreamableHTTPBinding,
    TransportBinding,
)
from guardrail_mcp.transport.connection import Connection
from guardrail_mcp.transport.event_log import EventLog
from guardrail_mcp.transport.registry import SessionRegistry

logger = logging.getLogger(__name__)

ServerFactory = Callable[[AuthorizationContext], GuardrailServer]

# Singleton manager instance
_manager: "SessionManager | None" = None


class SessionManager:
    """Manages session lifecycle.

    Responsibilities:
    - Create bindings for both transport variants
    - Release connections and drop sessions that terminated
    - Reclaim idle detached sessions and abandoned handshakes
    - Drain every session on shutdown
    """

    def __init__(
        self,
        server_factory: ServerFactory | None = None,
        idle_timeout_seconds: float | None = None,
        handshake_timeout_seconds: float | None = None,
        sweep_interval_seconds: float | None = None,
        event_log: EventLog | None = None,
        registry: SessionRegistry | None = None,
    ):
        """Initialize the session manager.

        Args:
            server_factory: Builds the protocol server for a new session.
            idle_timeout_seconds: How long a detached session lives.
            handshake_timeout_seconds: How long a session may stay uninitialized.
            sweep_interval_seconds: Period of the background cleanup.
            event_log: Shared event log (a fresh one by default).
            registry: Session registry (a fresh one by default).
        """
        self._server_factory = server_factory or GuardrailServer
        self._idle_timeout = timedelta(
            seconds=idle_timeout_seconds
            if idle_timeout_seconds is not None
            else config.SESSION_IDLE_TIMEOUT_SECONDS
        )
        self._handshake_timeout = timedelta(
            seconds=handshake_timeout_seconds
            if handshake_timeout_seconds is not None
            else config.HANDSHAKE_TIMEOUT_SECONDS
        )
        self._sweep_interval = (
            sweep_interval_seconds
            if sweep_interval_seconds is not None
            else config.SESSION_SWEEP_INTERVAL_SECONDS
        )
        self._event_log = event_log if event_log is not None else EventLog()
        self._registry = registry if registry is not None else SessionRegistry()
        self._cleanup_task: asyncio.Task | None = None

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    @property
    def active_session_count(self) -> int:
        """Number of registered sessions."""
        return len(self._registry)

    def create_binding(
        self,
        transport: TransportKind,
        auth: AuthorizationContext,
    ) -> TransportBinding:
        """Register a new session and build its binding.

        Args:
            transport: Which transport variant the session belongs to.
            auth: Credentials used to build the session's protocol server.

        Returns:
            The binding, in state uninitialized.
        """
        server = self._server_factory(auth)
        fingerprint = auth.fingerprint

        def build(session: Session) -> TransportBinding:
            if transport == TransportKind.STREAMABLE_HTTP:
                return StreamableHTTPBinding(session, server, fingerprint, self._event_log)
            return LegacySSEBinding(session, server, fingerprint)

        return self._registry.create(transport, build)

    def get(self, session_id: str) -> TransportBinding | None:
        return self._registry.get(session_id)

    def release(self, binding: TransportBinding, connection: Connection) -> None:
        """Release a connection that stopped streaming.

        Removes the session from the registry if losing the connection
        terminated it.
        """
        try:
            binding.release(connection)
        finally:
            if binding.is_terminated:
                self._registry.remove(binding.session_id)

    def terminate(self, session_id: str, reason: str = "terminated by client") -> bool:
        """Terminate and remove a session.

        Returns:
            True if the session was found and terminated, False otherwise.
        """
        binding = self._registry.get(session_id)
        if binding is None:
            return False
        try:
            binding.terminate(reason)
        finally:
            self._registry.remove(session_id)
        return True

    def reap_expired(self, now: datetime | None = None) -> int:
        """Terminate idle detached sessions and abandoned handshakes.

        Returns:
            Number of sessions reclaimed.
        """
        now = now or datetime.now()
        expired: list[tuple[str, str]] = []
        for binding in self._registry.bindings():
            session = binding.session
            if (
                session.state == SessionState.DETACHED
                and now - session.last_activity > self._idle_timeout
            ):
                expired.append((session.id, "idle timeout"))
            elif (
                session.state == SessionState.UNINITIALIZED
                and now - session.created_at > self._handshake_timeout
            ):
                expired.append((session.id, "handshake timeout"))

        for session_id, reason in expired:
            logger.info(f"Reclaiming session {session_id} ({reason})")
            self.terminate(session_id, reason=reason)

        if expired:
            logger.info(f"Reclaimed {len(expired)} expired session(s)")

        return len(expired)

    async def start_cleanup_task(self) -> None:
        """Start the background cleanup task."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.info("Started session cleanup background task")

    async def stop_cleanup_task(self) -> None:
        """Stop the background cleanup task."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
            logger.info("Stopped session cleanup background task")

    async def _cleanup_loop(self) -> None:
        """Background loop that reclaims expired sessions."""
        while True:
            try:
                await asyncio.sleep(self._sweep_interval)
                self.reap_expired()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"Error in session cleanup task: {e}")

    def close_connections(self) -> int:
        """Close every attached connection so streaming responses finish.

        Returns:
            Number of connections closed.
        """
        closed = 0
        for binding in self._registry.bindings():
            writer = binding.writer
            if writer is not None and not writer.closed:
                writer.close()
                closed += 1
        if closed:
            logger.info(f"Closed {closed} open connection(s)")
        return closed

    async def shutdown(self) -> None:
        """Shutdown the manager and terminate all sessions."""
        await self.stop_cleanup_task()

        # Snapshot first; terminate() mutates the registry
        session_ids = self._registry.snapshot()
        for session_id in session_ids:
            try:
                logger.info(f"Closing session {session_id}")
                self.terminate(session_id, reason="server shutdown")
            except Exception as e:
                logger.error(f"Error closing session {session_id}: {e}")

        logger.info("Session manager shutdown complete")

    def get_stats(self) -> dict[str, Any]:
        """Get manager statistics.

        Returns:
            Dictionary of stats.
        """
        by_state: dict[str, int] = {}
        by_transport: dict[str, int] = {}
        for binding in self._registry.bindings():
            by_state[binding.state.value] = by_state.get(binding.state.value, 0) + 1
            kind = binding.transport.value
            by_transport[kind] = by_transport.get(kind, 0) + 1
        return {
            "active_sessions": len(self._registry),
            "sessions_by_state": by_state,
            "sessions_by_transport": by_transport,
            "cleanup_task_running": self._cleanup_task is not None,
            "sessions": [b.info().model_dump(mode="json") for b in self._registry.bindings()],
        }


def get_session_manager() -> SessionManager:
    """Get the singleton session manager instance.

    Returns:
        The global SessionManager.
    """
    global _manager
    if _manager is None:
        _manager = SessionManager()
    return _manager


async def init_session_manager() -> SessionManager:
    """Initialize the session manager and start background tasks.

    Returns:
        The initialized SessionManager.
    """
    manager = get_session_manager()
    await manager.start_cleanup_task()
    return manager


async def shutdown_session_manager() -> None:
    """Shutdown the session manager."""
    global _manager
    if _manager:
        await _manager.shutdown()
        _manager = None
