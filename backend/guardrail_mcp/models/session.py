"""Pydantic models for sessions, events and authorization context."""

import hashlib
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class SessionState(str, Enum):
    """Lifecycle state of a session's transport binding."""

    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    DETACHED = "detached"
    TERMINATED = "terminated"


class TransportKind(str, Enum):
    """Transport variant a session was created on."""

    STREAMABLE_HTTP = "streamable_http"
    LEGACY_SSE = "legacy_sse"


class Session(BaseModel):
    """One logical client/server conversation.

    Owned by the session registry; the binding mutates it through its
    transition rules only.
    """

    id: str
    transport: TransportKind
    state: SessionState = SessionState.UNINITIALIZED
    last_event_id: int | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    last_activity: datetime = Field(default_factory=datetime.now)


class Event(BaseModel):
    """One unit of server-to-client output.

    ``sequence`` is None for legacy SSE frames, which are never logged.
    """

    session_id: str
    sequence: int | None = None
    event: str = "message"
    data: Any

    class Config:
        frozen = True


class AuthorizationContext(BaseModel):
    """Credentials extracted from request headers."""

    credential: str
    policy_key: str

    @property
    def fingerprint(self) -> str:
        """Digest of the credential pair, safe to keep on a session."""
        digest = hashlib.sha256()
        digest.update(self.credential.encode("utf-8"))
        digest.update(b"\x00")
        digest.update(self.policy_key.encode("utf-8"))
        return digest.hexdigest()


class SessionInfo(BaseModel):
    """Read-only snapshot of a session, for stats and logging."""

    session_id: str
    transport: TransportKind
    state: SessionState
    last_event_id: int | None
    created_at: datetime
    last_activity: datetime
    connected: bool
