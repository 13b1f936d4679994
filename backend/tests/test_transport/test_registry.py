"""Tests for the session registry."""

from types import SimpleNamespace

from guardrail_mcp.models.session import SessionState, TransportKind
from guardrail_mcp.transport.registry import SessionRegistry


def _build(session):
    return SimpleNamespace(session=session, session_id=session.id)


class TestSessionRegistry:
    """Tests for SessionRegistry."""

    def test_create_registers_uninitialized_session(self):
        registry = SessionRegistry()

        binding = registry.create(TransportKind.STREAMABLE_HTTP, _build)

        assert binding.session_id in registry
        assert registry.get(binding.session_id) is binding
        assert binding.session.state == SessionState.UNINITIALIZED
        assert binding.session.transport == TransportKind.STREAMABLE_HTTP

    def test_ids_are_distinct(self):
        registry = SessionRegistry()

        ids = {registry.create(TransportKind.LEGACY_SSE, _build).session_id for _ in range(200)}

        assert len(ids) == 200
        assert len(registry) == 200

    def test_remove_is_idempotent(self):
        registry = SessionRegistry()
        binding = registry.create(TransportKind.STREAMABLE_HTTP, _build)

        assert registry.remove(binding.session_id) is True
        assert registry.remove(binding.session_id) is False
        assert registry.get(binding.session_id) is None

    def test_removed_ids_are_remembered(self):
        registry = SessionRegistry()
        binding = registry.create(TransportKind.STREAMABLE_HTTP, _build)

        registry.remove(binding.session_id)

        assert registry.was_terminated(binding.session_id)
        assert not registry.was_terminated("never-issued")

    def test_tombstones_are_bounded(self):
        registry = SessionRegistry(tombstone_limit=2)
        ids = [registry.create(TransportKind.STREAMABLE_HTTP, _build).session_id for _ in range(3)]

        for session_id in ids:
            registry.remove(session_id)

        assert not registry.was_terminated(ids[0])
        assert registry.was_terminated(ids[1])
        assert registry.was_terminated(ids[2])

    def test_zero_tombstone_limit_remembers_nothing(self):
        registry = SessionRegistry(tombstone_limit=0)
        binding = registry.create(TransportKind.STREAMABLE_HTTP, _build)

        registry.remove(binding.session_id)

        assert not registry.was_terminated(binding.session_id)

    def test_snapshot_is_a_copy(self):
        registry = SessionRegistry()
        first = registry.create(TransportKind.STREAMABLE_HTTP, _build)
        registry.create(TransportKind.STREAMABLE_HTTP, _build)

        snapshot = registry.snapshot()
        registry.remove(first.session_id)

        assert len(snapshot) == 2
        assert len(registry.snapshot()) == 1
