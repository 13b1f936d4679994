"""Pydantic models for the guardrail MCP server."""

from guardrail_mcp.models.jsonrpc import JSONRPCMessage, parse_messages
from guardrail_mcp.models.moderation import Direction, ModerationVerdict, Verdict
from guardrail_mcp.models.session import (
    AuthorizationContext,
    Event,
    Session,
    SessionInfo,
    SessionState,
    TransportKind,
)

__all__ = [
    # JSON-RPC
    "JSONRPCMessage",
    "parse_messages",
    # Moderation
    "Direction",
    "ModerationVerdict",
    "Verdict",
    # Sessions
    "AuthorizationContext",
    "Event",
    "Session",
    "SessionInfo",
    "SessionState",
    "TransportKind",
]
