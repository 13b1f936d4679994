"""Shared FastAPI dependencies."""

from fastapi import Depends, Header

from guardrail_mcp.models.session import AuthorizationContext
from guardrail_mcp.transport.manager import SessionManager, get_session_manager
from guardrail_mcp.transport.router import RequestRouter, authorize

SESSION_HEADER = "Mcp-Session-Id"


def get_authorization(
    authorization: str | None = Header(default=None),
    strategykey: str | None = Header(default=None),
) -> AuthorizationContext:
    """Require the bearer credential and policy selector on every call."""
    return authorize(authorization, strategykey)


def get_request_router(
    manager: SessionManager = Depends(get_session_manager),
) -> RequestRouter:
    return RequestRouter(manager)
