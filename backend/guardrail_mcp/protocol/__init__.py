"""MCP protocol layer: JSON-RPC dispatch and tool definitions."""

from guardrail_mcp.protocol.server import SUPPORTED_PROTOCOL_VERSIONS, GuardrailServer
from guardrail_mcp.protocol.tools import INPUT_GUARDRAIL, OUTPUT_GUARDRAIL, TOOLS, GuardrailTool

__all__ = [
    "GuardrailServer",
    "GuardrailTool",
    "INPUT_GUARDRAIL",
    "OUTPUT_GUARDRAIL",
    "SUPPORTED_PROTOCOL_VERSIONS",
    "TOOLS",
]
