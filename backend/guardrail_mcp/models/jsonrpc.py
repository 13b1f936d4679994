"""Pydantic models for JSON-RPC 2.0 messages."""

import json
from typing import Any

from pydantic import BaseModel, ValidationError

from guardrail_mcp.errors import ParseError


class JSONRPCMessage(BaseModel):
    """A single JSON-RPC message (request, notification or response).

    The envelope is validated loosely; method-specific params are checked by
    the protocol server.
    """

    jsonrpc: str = "2.0"
    id: str | int | None = None
    method: str | None = None
    params: dict[str, Any] | None = None
    result: Any = None
    error: dict[str, Any] | None = None

    class Config:
        extra = "allow"

    @property
    def is_request(self) -> bool:
        return self.method is not None and self.id is not None

    @property
    def is_notification(self) -> bool:
        return self.method is not None and self.id is None

    @property
    def is_response(self) -> bool:
        return self.method is None and self.id is not None

    @property
    def is_initialize(self) -> bool:
        return self.is_request and self.method == "initialize"


def parse_messages(body: bytes | str) -> tuple[list[JSONRPCMessage], bool]:
    """Parse a request body into JSON-RPC messages.

    Returns:
        (messages, is_batch) tuple.

    Raises:
        ParseError: If the body is not JSON or not a JSON-RPC message/batch.
    """
    try:
        raw = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ParseError(f"Parse error: {e}")

    is_batch = isinstance(raw, list)
    items = raw if is_batch else [raw]
    if not items:
        raise ParseError("Parse error: empty batch")

    messages: list[JSONRPCMessage] = []
    for item in items:
        if not isinstance(item, dict) or item.get("jsonrpc") != "2.0":
            raise ParseError("Parse error: not a JSON-RPC 2.0 message")
        try:
            message = JSONRPCMessage.model_validate(item)
        except ValidationError as e:
            raise ParseError(f"Parse error: {e.errors()[0]['msg']}")
        if message.method is None and message.id is None:
            raise ParseError("Parse error: message has neither method nor id")
        messages.append(message)

    return messages, is_batch
