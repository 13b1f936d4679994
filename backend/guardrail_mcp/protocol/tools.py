"""Guardrail tool definitions exposed through tools/list."""

from typing import Any

from pydantic import BaseModel

from guardrail_mcp.models.moderation import Direction

INPUT_GUARDRAIL_DESCRIPTION = """Check whether the user's input is safe. Call this for the user's input on every turn of the conversation.
If the result is suggestion: pass, the question is safe and you can answer it. If the result is block, the question may be unsafe: take extra care, avoid directly answering in a way that could cause harm, steer the answer in a more positive direction, or suggest a reliable alternative.
:param content: the user's input
:return suggestion: safety verdict score: score label: matched category, empty if none labelName: category display name, empty if none"""

OUTPUT_GUARDRAIL_DESCRIPTION = """Check whether the model's output is safe. Call this on the model's final reply at the end of every turn.
If the result is suggestion: pass, the reply is safe. If the result is block, the reply may be unsafe: take extra care, avoid content that could cause harm, steer the answer in a more positive direction, or suggest a reliable alternative.
:param content: the model's reply
:return suggestion: safety verdict score: score label: matched category, empty if none labelName: category display name, empty if none"""


class GuardrailTool(BaseModel):
    """A moderation tool bound to one direction."""

    name: str
    description: str
    direction: Direction

    def definition(self) -> dict[str, Any]:
        """Tool entry for a tools/list result."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": {
                "type": "object",
                "properties": {"content": {"type": "string"}},
                "required": ["content"],
            },
        }


INPUT_GUARDRAIL = GuardrailTool(
    name="inputGuardrail",
    description=INPUT_GUARDRAIL_DESCRIPTION,
    direction=Direction.INPUT,
)

OUTPUT_GUARDRAIL = GuardrailTool(
    name="outputGuardrail",
    description=OUTPUT_GUARDRAIL_DESCRIPTION,
    direction=Direction.OUTPUT,
)

TOOLS: dict[str, GuardrailTool] = {
    tool.name: tool for tool in (INPUT_GUARDRAIL, OUTPUT_GUARDRAIL)
}
