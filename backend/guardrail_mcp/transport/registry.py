"""Session registry: the single source of truth for which sessions exist."""

import logging
import uuid
from collections import OrderedDict
from collections.abc import Callable

from guardrail_mcp import config
from guardrail_mcp.models.session import Session, TransportKind
from guardrail_mcp.transport.binding import TransportBinding

logger = logging.getLogger(__name__)

BindingFactory = Callable[[Session], TransportBinding]


class SessionRegistry:
    """Maps session ids to their transport bindings.

    Every method runs to completion without suspending, so on the event loop
    two requests racing on the same id observe the registry one after the
    other; there is never a moment where both believe they created it.
    """

    def __init__(self, tombstone_limit: int | None = None):
        """Initialize the registry.

        Args:
            tombstone_limit: How many removed ids to remember, so a terminated
                id can be reported as such and never reissued.
        """
        self._bindings: dict[str, TransportBinding] = {}
        self._tombstones: OrderedDict[str, None] = OrderedDict()
        self._tombstone_limit = (
            tombstone_limit if tombstone_limit is not None else config.TERMINATED_SESSION_MEMORY
        )

    def create(self, transport: TransportKind, build: BindingFactory) -> TransportBinding:
        """Allocate a fresh session and store its binding.

        The entry exists before any connection is bound to it, so requests
        naming the id can never arrive ahead of the registration.
        """
        session_id = self._new_id()
        session = Session(id=session_id, transport=transport)
        binding = build(session)
        self._bindings[session_id] = binding
        logger.info(
            f"Registered {transport.value} session {session_id} "
            f"(total sessions: {len(self._bindings)})"
        )
        return binding

    def get(self, session_id: str) -> TransportBinding | None:
        return self._bindings.get(session_id)

    def remove(self, session_id: str) -> bool:
        """Delete a session entry. Idempotent.

        Returns:
            True if an entry was removed.
        """
        binding = self._bindings.pop(session_id, None)
        if binding is None:
            return False
        self._tombstones[session_id] = None
        while len(self._tombstones) > self._tombstone_limit:
            self._tombstones.popitem(last=False)
        logger.debug(f"Removed session {session_id} (total sessions: {len(self._bindings)})")
        return True

    def was_terminated(self, session_id: str) -> bool:
        """Whether the id belonged to a session that has since been removed."""
        return session_id in self._tombstones

    def snapshot(self) -> list[str]:
        """Ids of all registered sessions at this instant."""
        return list(self._bindings.keys())

    def bindings(self) -> list[TransportBinding]:
        return list(self._bindings.values())

    def __len__(self) -> int:
        return len(self._bindings)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._bindings

    def _new_id(self) -> str:
        while True:
            session_id = str(uuid.uuid4())
            if session_id not in self._bindings and session_id not in self._tombstones:
                return session_id
