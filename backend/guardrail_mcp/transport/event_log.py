"""Per-session append-only log of outbound events.

Each session gets its own stream with gap-free sequence numbers starting at 0.
The log is what makes a streamable HTTP session resumable: a client that
reconnects with a ``Last-Event-ID`` gets the gap replayed before live
delivery continues.
"""

import logging
from collections.abc import Iterator
from typing import Any

from guardrail_mcp import config
from guardrail_mcp.errors import InvalidSession
from guardrail_mcp.models.session import Event

logger = logging.getLogger(__name__)


class _SessionStream:
    """Retained events for one session."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.events: list[Event] = []
        self.first_sequence = 0  # sequence of events[0]
        self.next_sequence = 0

    def get(self, sequence: int) -> Event | None:
        index = sequence - self.first_sequence
        if 0 <= index < len(self.events):
            return self.events[index]
        return None


class EventLog:
    """Append-only event buffers keyed by session id.

    Mutating methods contain no suspension points, so on a single event loop
    an append is atomic with respect to a concurrent replay.
    """

    def __init__(self, max_events_per_session: int | None = None):
        """Initialize the log.

        Args:
            max_events_per_session: Retention bound per session; oldest events
                are dropped beyond it.
        """
        self._streams: dict[str, _SessionStream] = {}
        self._max_events = (
            max_events_per_session
            if max_events_per_session is not None
            else config.EVENT_LOG_MAX_EVENTS
        )

    def open(self, session_id: str) -> None:
        """Create an empty stream for a new session."""
        if session_id not in self._streams:
            self._streams[session_id] = _SessionStream(session_id)

    def discard(self, session_id: str) -> None:
        """Drop all events for a session."""
        self._streams.pop(session_id, None)

    def has_session(self, session_id: str) -> bool:
        return session_id in self._streams

    def append(self, session_id: str, data: Any, event: str = "message") -> Event:
        """Store an event and assign it the next sequence number.

        Returns:
            The stored event.
        """
        stream = self._require(session_id)
        stored = Event(
            session_id=session_id,
            sequence=stream.next_sequence,
            event=event,
            data=data,
        )
        stream.events.append(stored)
        stream.next_sequence += 1

        overflow = len(stream.events) - self._max_events
        if overflow > 0:
            del stream.events[:overflow]
            stream.first_sequence += overflow

        return stored

    def last_sequence(self, session_id: str) -> int:
        """Sequence of the newest event, or -1 if nothing was appended yet."""
        return self._require(session_id).next_sequence - 1

    def replay_from(self, session_id: str, after_sequence: int) -> Iterator[Event]:
        """Lazily yield events with ``sequence > after_sequence`` in order.

        The upper bound is fixed when this is called; later appends are not
        included. Calling again with the same cursor yields the same events.
        """
        stream = self._require(session_id)
        stop = stream.next_sequence
        start = after_sequence + 1
        if start < stream.first_sequence:
            logger.warning(
                f"Replay for session {session_id} requested from sequence {start} "
                f"but oldest retained is {stream.first_sequence}"
            )
            start = stream.first_sequence
        return self._iter_range(stream, start, stop)

    def __len__(self) -> int:
        return len(self._streams)

    @staticmethod
    def _iter_range(stream: _SessionStream, start: int, stop: int) -> Iterator[Event]:
        for sequence in range(start, stop):
            event = stream.get(sequence)
            if event is None:
                # Trimmed by retention while the replay was suspended
                continue
            yield event

    def _require(self, session_id: str) -> _SessionStream:
        stream = self._streams.get(session_id)
        if stream is None:
            raise InvalidSession(
                f"No event log for session {session_id}", session_id=session_id
            )
        return stream
