"""Safety guardrail MCP server."""
