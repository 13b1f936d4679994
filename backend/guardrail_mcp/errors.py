"""Error taxonomy shared by the transports and the protocol server.

Every error carries a stable ``kind`` string, a JSON-RPC error ``code`` and the
HTTP status used when it ends an HTTP request, so callers can branch on the
kind rather than parse messages.
"""

from typing import Any, ClassVar

# Standard JSON-RPC codes
PARSE_ERROR = -32700
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Server-defined codes
BAD_REQUEST = -32000
UNAUTHORIZED = -32001
INVALID_SESSION = -32002
CONFLICT = -32003
UPSTREAM_FAILURE = -32004


class GuardrailError(Exception):
    """Base exception for errors surfaced to clients."""

    kind: ClassVar[str] = "internal_error"
    code: ClassVar[int] = INTERNAL_ERROR
    status_code: ClassVar[int] = 500

    def __init__(
        self,
        message: str,
        request_id: str | int | None = None,
        session_id: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.request_id = request_id
        self.session_id = session_id

    def to_jsonrpc(self, request_id: str | int | None = None) -> dict[str, Any]:
        """Render as a JSON-RPC error response."""
        return {
            "jsonrpc": "2.0",
            "error": {
                "code": self.code,
                "message": self.message,
                "data": {"kind": self.kind},
            },
            "id": request_id if request_id is not None else self.request_id,
        }


class BadRequest(GuardrailError):
    """Malformed request or a call not allowed in the current context."""

    kind = "bad_request"
    code = BAD_REQUEST
    status_code = 400


class ParseError(BadRequest):
    """Body is not valid JSON or not a JSON-RPC message."""

    kind = "parse_error"
    code = PARSE_ERROR


class InvalidParams(GuardrailError):
    """Method params are missing or of the wrong type."""

    kind = "invalid_params"
    code = INVALID_PARAMS
    status_code = 400


class MethodNotFound(GuardrailError):
    """No handler for the requested JSON-RPC method."""

    kind = "method_not_found"
    code = METHOD_NOT_FOUND
    status_code = 400


class Unauthorized(GuardrailError):
    """Missing or mismatched credential or policy key."""

    kind = "unauthorized"
    code = UNAUTHORIZED
    status_code = 401


class InvalidSession(GuardrailError):
    """Unknown, expired or terminated session id."""

    kind = "invalid_session"
    code = INVALID_SESSION
    status_code = 404


class Conflict(GuardrailError):
    """Another connection already owns delivery for the session."""

    kind = "conflict"
    code = CONFLICT
    status_code = 409


class UpstreamFailure(GuardrailError):
    """The moderation service call failed (network, timeout, non-success)."""

    kind = "upstream_failure"
    code = UPSTREAM_FAILURE
    status_code = 502


class InternalError(GuardrailError):
    """Unexpected failure in lifecycle bookkeeping."""

    pass
