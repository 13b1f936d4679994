"""Request routing: decide whether a call creates or resumes a session.

The router holds no state of its own. It reads the registry through the
session manager and asks the manager to create bindings; every state change
after that goes through the binding's transition rules.
"""

import logging

from guardrail_mcp.errors import BadRequest, InvalidSession, Unauthorized
from guardrail_mcp.models.jsonrpc import JSONRPCMessage
from guardrail_mcp.models.session import AuthorizationContext, TransportKind
from guardrail_mcp.transport.binding import LegacySSEBinding, StreamableHTTPBinding, TransportBinding
from guardrail_mcp.transport.manager import SessionManager

logger = logging.getLogger(__name__)


def authorize(credential: str | None, policy_key: str | None) -> AuthorizationContext:
    """Build the authorization context from request headers.

    Raises:
        Unauthorized: If either header is missing or blank.
    """
    if not credential or not credential.strip() or not policy_key or not policy_key.strip():
        raise Unauthorized("Missing authorization header or strategy key")
    return AuthorizationContext(credential=credential.strip(), policy_key=policy_key.strip())


class RequestRouter:
    """Routes inbound calls to new or existing transport bindings."""

    def __init__(self, manager: SessionManager):
        self._manager = manager

    def resolve(
        self,
        session_id: str,
        transport: TransportKind,
        auth: AuthorizationContext,
    ) -> TransportBinding:
        """Look up the binding a call names.

        Raises:
            InvalidSession: If the id is unknown, terminated, or belongs to
                the other transport variant.
            Unauthorized: If the credentials differ from the session creator's.
        """
        binding = self._manager.get(session_id)
        if binding is None or binding.is_terminated:
            if self._manager.registry.was_terminated(session_id):
                message = f"Session {session_id} has been terminated"
            else:
                message = "Invalid session ID"
            raise InvalidSession(message, session_id=session_id)

        if binding.transport != transport:
            logger.warning(
                f"Session {session_id} belongs to {binding.transport.value}, "
                f"not {transport.value}"
            )
            raise InvalidSession("Invalid session ID", session_id=session_id)

        if not binding.accepts(auth):
            raise Unauthorized(
                "Credentials do not match the session", session_id=session_id
            )

        return binding

    def route_post(
        self,
        session_id: str | None,
        auth: AuthorizationContext,
        messages: list[JSONRPCMessage],
    ) -> tuple[StreamableHTTPBinding, bool]:
        """Route a streamable HTTP POST.

        Returns:
            (binding, is_handshake) tuple. For a handshake the binding is
            freshly created and still uninitialized.

        Raises:
            BadRequest: No session id on a non-handshake call, or a handshake
                on an existing session.
            InvalidSession: Session id present but unresolved.
        """
        has_initialize = any(m.is_initialize for m in messages)

        if session_id is None:
            if not has_initialize:
                raise BadRequest(
                    "Bad Request: No valid session ID provided",
                    request_id=messages[0].id,
                )
            if len(messages) != 1:
                raise BadRequest(
                    "Bad Request: initialize must not be batched",
                    request_id=messages[0].id,
                )
            binding = self._manager.create_binding(TransportKind.STREAMABLE_HTTP, auth)
            return binding, True

        binding = self.resolve(session_id, TransportKind.STREAMABLE_HTTP, auth)
        if has_initialize:
            raise BadRequest(
                f"Bad Request: session {session_id} is already initialized",
                request_id=messages[0].id,
                session_id=session_id,
            )
        return binding, False

    def open_legacy_session(self, auth: AuthorizationContext) -> LegacySSEBinding:
        """Create a legacy SSE session on first contact."""
        return self._manager.create_binding(TransportKind.LEGACY_SSE, auth)
