"""FastAPI application entry point."""

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from guardrail_mcp import config
from guardrail_mcp.api.deps import SESSION_HEADER
from guardrail_mcp.errors import GuardrailError, InternalError
from guardrail_mcp.transport.manager import (
    SessionManager,
    get_session_manager,
    init_session_manager,
    shutdown_session_manager,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
)

logger = logging.getLogger(__name__)

TRANSPORTS = ("streamable-http", "sse", "all")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown."""
    # Startup
    await init_session_manager()
    logger.info(f"Guardrail MCP server ready (transport: {app.state.transport})")

    yield

    # Shutdown
    logger.info("Shutting down server...")
    await shutdown_session_manager()
    logger.info("Server shutdown complete")


async def guardrail_error_handler(request: Request, exc: GuardrailError) -> JSONResponse:
    """Render lifecycle and protocol errors as JSON-RPC error envelopes."""
    session_id = exc.session_id or _session_id_from(request)
    if exc.status_code >= 500:
        logger.error(f"{exc.kind} for session {session_id}: {exc.message}")
    else:
        logger.info(f"Rejected {request.method} {request.url.path} ({exc.kind}): {exc.message}")
    return JSONResponse(exc.to_jsonrpc(), status_code=exc.status_code)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Report unexpected failures generically, keeping the session id in the log."""
    logger.exception(
        f"Error handling {request.method} {request.url.path} "
        f"for session {_session_id_from(request)}: {exc}"
    )
    return JSONResponse(
        InternalError("Internal server error").to_jsonrpc(),
        status_code=500,
    )


def _session_id_from(request: Request) -> str | None:
    return request.headers.get(SESSION_HEADER) or request.query_params.get("sessionId")


def create_app(transport: str | None = None) -> FastAPI:
    """Build the application for one transport variant (or both).

    Args:
        transport: "streamable-http", "sse" or "all". Defaults to MCP_TRANSPORT.
    """
    transport = transport or config.MCP_TRANSPORT
    if transport not in TRANSPORTS:
        raise ValueError(f"Unknown transport {transport!r}; expected one of {TRANSPORTS}")

    app = FastAPI(
        title="Safety Guardrail MCP Server",
        description="MCP server exposing input and output moderation guardrails",
        version=config.SERVER_VERSION,
        lifespan=lifespan,
    )
    app.state.transport = transport

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=r"^http://localhost(:\d+)?$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[SESSION_HEADER],
    )

    app.add_exception_handler(GuardrailError, guardrail_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.get("/sessions/stats")
    async def session_stats(
        manager: SessionManager = Depends(get_session_manager),
    ) -> dict[str, Any]:
        """Session statistics (admin endpoint)."""
        return manager.get_stats()

    # Import routers here to keep module import order free of cycles
    from guardrail_mcp.api import mcp, sse

    if transport in ("streamable-http", "all"):
        app.include_router(mcp.router, tags=["streamable-http"])
    if transport in ("sse", "all"):
        app.include_router(sse.router, tags=["sse"])

    return app


app = create_app()
