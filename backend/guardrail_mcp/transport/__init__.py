"""Session and transport lifecycle.

- EventLog: per-session replayable buffer of outbound events
- SessionRegistry: session id -> transport binding
- TransportBinding: lifecycle state machine and connection ownership
- RequestRouter: create-or-resume decisions for inbound calls
- SessionManager: creation, reclamation and shutdown of sessions
"""

from guardrail_mcp.transport.binding import (
    LegacySSEBinding,
    StreamableHTTPBinding,
    TransportBinding,
)
from guardrail_mcp.transport.connection import Connection, ConnectionKind
from guardrail_mcp.transport.event_log import EventLog
from guardrail_mcp.transport.manager import SessionManager, get_session_manager
from guardrail_mcp.transport.registry import SessionRegistry
from guardrail_mcp.transport.router import RequestRouter, authorize

__all__ = [
    "Connection",
    "ConnectionKind",
    "EventLog",
    "LegacySSEBinding",
    "RequestRouter",
    "SessionManager",
    "SessionRegistry",
    "StreamableHTTPBinding",
    "TransportBinding",
    "authorize",
    "get_session_manager",
]
