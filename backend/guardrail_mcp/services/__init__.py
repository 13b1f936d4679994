"""Services consumed by the guardrail MCP server."""

from guardrail_mcp.services.moderation import ModerationClient

__all__ = [
    "ModerationClient",
]
