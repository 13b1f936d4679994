"""JSON-RPC dispatch for the guardrail MCP server.

A GuardrailServer is created per session from the caller's authorization
context. It knows nothing about transports: it turns one incoming message into
at most one response, and pushes server notifications through a notifier the
transport installs.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from guardrail_mcp import config
from guardrail_mcp.errors import GuardrailError, InvalidParams, MethodNotFound, UpstreamFailure
from guardrail_mcp.models.jsonrpc import JSONRPCMessage
from guardrail_mcp.models.session import AuthorizationContext
from guardrail_mcp.protocol.tools import TOOLS
from guardrail_mcp.services.moderation import ModerationClient

logger = logging.getLogger(__name__)

# Newest first; the first entry is offered when the client asks for an unknown version
SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")

Notifier = Callable[[dict[str, Any]], Any]

EMPTY_CONTENT_TEXT = "Please provide the content to check"


class GuardrailServer:
    """Protocol server exposing the inputGuardrail and outputGuardrail tools."""

    def __init__(
        self,
        auth: AuthorizationContext,
        moderation: ModerationClient | None = None,
    ):
        """Initialize the server.

        Args:
            auth: Credentials of the session's creator.
            moderation: Moderation client; built from ``auth`` if omitted.
        """
        self.policy_key = auth.policy_key
        self._moderation = moderation or ModerationClient(api_key=auth.credential)
        self._notifier: Notifier | None = None
        self.initialized = False
        self.protocol_version: str | None = None
        self.client_info: dict[str, Any] | None = None
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[Any]]] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
        }

    def set_notifier(self, notifier: Notifier | None) -> None:
        """Install the callback used to emit server notifications."""
        self._notifier = notifier

    async def handle(self, message: JSONRPCMessage) -> dict[str, Any] | None:
        """Process one incoming message.

        Returns:
            The JSON-RPC response for requests, None for notifications and
            client responses.
        """
        if message.is_response:
            logger.debug(f"Ignoring client response for id {message.id}")
            return None

        if message.is_notification:
            self._handle_notification(message)
            return None

        handler = self._handlers.get(message.method or "")
        try:
            if handler is None:
                raise MethodNotFound(f"Method not found: {message.method}")
            result = await handler(message.params or {})
        except GuardrailError as e:
            return e.to_jsonrpc(message.id)

        return {"jsonrpc": "2.0", "id": message.id, "result": result}

    def _handle_notification(self, message: JSONRPCMessage) -> None:
        if message.method == "notifications/initialized":
            self.initialized = True
            logger.debug("Client confirmed initialization")
        elif message.method == "notifications/cancelled":
            logger.info(f"Client cancelled request {(message.params or {}).get('requestId')}")
        else:
            logger.debug(f"Unhandled notification {message.method}")

    async def _initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        requested = params.get("protocolVersion")
        if not isinstance(requested, str):
            raise InvalidParams("initialize requires a protocolVersion string")

        if requested in SUPPORTED_PROTOCOL_VERSIONS:
            self.protocol_version = requested
        else:
            self.protocol_version = SUPPORTED_PROTOCOL_VERSIONS[0]
        self.client_info = params.get("clientInfo")

        return {
            "protocolVersion": self.protocol_version,
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {
                "name": config.SERVER_NAME,
                "version": config.SERVER_VERSION,
            },
        }

    async def _ping(self, params: dict[str, Any]) -> dict[str, Any]:
        return {}

    async def _list_tools(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"tools": [tool.definition() for tool in TOOLS.values()]}

    async def _call_tool(self, params: dict[str, Any]) -> dict[str, Any]:
        name = params.get("name")
        tool = TOOLS.get(name) if isinstance(name, str) else None
        if tool is None:
            raise InvalidParams(f"Unknown tool: {name}")

        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            raise InvalidParams("Tool arguments must be an object")
        content = arguments.get("content")
        if content is not None and not isinstance(content, str):
            raise InvalidParams("content must be a string")

        if not content:
            return {
                "content": [{"type": "text", "text": EMPTY_CONTENT_TEXT}],
                "isError": True,
            }

        progress_token = (params.get("_meta") or {}).get("progressToken")
        self._progress(progress_token, 0)

        try:
            verdict = await self._moderation.classify(content, self.policy_key, tool.direction)
        except UpstreamFailure as e:
            logger.warning(f"{tool.name} failed: {e.message}")
            raise

        self._progress(progress_token, 1)
        logger.info(f"{tool.name} verdict={verdict.verdict.value} score={verdict.score:g}")

        return {"content": [{"type": "text", "text": verdict.to_text()}]}

    def _progress(self, token: str | int | None, progress: int) -> None:
        if token is None or self._notifier is None:
            return
        self._notifier(
            {
                "jsonrpc": "2.0",
                "method": "notifications/progress",
                "params": {"progressToken": token, "progress": progress, "total": 1},
            }
        )
