# tests/unit/network/test_connection_registry.py
"""Tests for ConnectionRegistry.

Level 0 dependency - standalone component.
"""

import pytest

from components.network.connection_registry import ConnectionRecord, ConnectionRegistry


@pytest.fixture
async def registry():
    registry = ConnectionRegistry()
    yield registry
    await registry.reset()


async def _track(registry, identity, local_port, **kwargs):
    return await registry.track(
        local_ip=kwargs.get("local_ip", "10.0.0.5"),
        local_port=local_port,
        remote_ip=kwargs.get("remote_ip", "1.2.3.4"),
        remote_port=kwargs.get("remote_port", 6697),
        identity=identity,
        network=kwargs.get("network", "libera"),
    )


class TestConnectionRegistry:
    """Test tracking and snapshots."""

    async def test_track_returns_session_id(self, registry):
        session = await _track(registry, "alice", 40000)

        assert registry.is_tracked(session)
        assert registry.get_connection(session).record.identity == "alice"

    async def test_snapshot_preserves_tracking_order(self, registry):
        """WHY: Fallback tie-breaking depends on registry order."""
        for i, name in enumerate(["carol", "alice", "bob"]):
            await _track(registry, name, 40000 + i)

        assert [r.identity for r in registry.snapshot()] == ["carol", "alice", "bob"]

    async def test_snapshot_is_detached_from_registry(self, registry):
        """WHY: A query resolves against the state at request time."""
        session = await _track(registry, "alice", 40000)
        snapshot = registry.snapshot()

        await registry.untrack(session)
        await _track(registry, "bob", 40001)

        assert snapshot == (
            ConnectionRecord("10.0.0.5", 40000, "1.2.3.4", 6697, "alice"),
        )
        assert isinstance(snapshot, tuple)

    async def test_untrack_unknown_returns_false(self, registry):
        assert await registry.untrack("nope") is False

    async def test_untrack_records_history(self, registry):
        session = await _track(registry, "alice", 40000)

        assert await registry.untrack(session) is True

        history = await registry.get_connection_history()
        assert history[-1]["session_id"] == session
        assert history[-1]["local"] == "10.0.0.5:40000"
        assert registry.snapshot() == ()

    async def test_history_is_bounded(self):
        registry = ConnectionRegistry(max_history=3)
        for i in range(5):
            await registry.untrack(await _track(registry, f"user{i}", 40000 + i))

        history = await registry.get_connection_history(limit=10)
        assert [h["identity"] for h in history] == ["user2", "user3", "user4"]

    async def test_get_active_connections_filters(self, registry):
        await _track(registry, "alice", 40000, network="libera")
        await _track(registry, "bob", 40001, network="oftc")

        oftc = await registry.get_active_connections(network="oftc")

        assert [c["identity"] for c in oftc] == ["bob"]
        assert oftc[0]["user"] == "bob"
