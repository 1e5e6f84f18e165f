# components/network/connection_registry.py
"""
Connection registry for tracking active outbound IRC sessions.

Tracks which user/network owns which outbound TCP connection, so that
ident queries arriving from IRC servers can be answered. The ident
listener never holds on to the registry's internals: it asks for a
snapshot per query through the ConnectionSnapshotSource protocol.

Event-driven. Connections are tracked when the host opens them and
untracked when they close.
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

from components.security.logging_system import EventSeverity, get_logger

__all__ = [
    "ConnectionRecord",
    "ConnectionSnapshotSource",
    "TrackedConnection",
    "ConnectionRegistry",
]


@dataclass(frozen=True)
class ConnectionRecord:
    """Point-in-time view of one outbound connection."""

    local_ip: str
    local_port: int
    remote_ip: str
    remote_port: int
    identity: str


class ConnectionSnapshotSource(Protocol):
    """Anything that can enumerate the host's active outbound connections."""

    def snapshot(self) -> Sequence[ConnectionRecord]: ...


@dataclass
class TrackedConnection:
    """An active outbound connection owned by the host."""

    session_id: str
    record: ConnectionRecord
    user: str
    network: str
    connected_at: float  # Unix timestamp
    metadata: dict[str, Any] = field(default_factory=dict)


class ConnectionRegistry:
    """
    Registry of active outbound connections.

    Populated by the host as it connects to and disconnects from IRC
    servers. Read by the ident listener through snapshot().

    Example:
        >>> registry = ConnectionRegistry()
        >>> session = await registry.track(
        ...     local_ip="10.0.0.5",
        ...     local_port=40123,
        ...     remote_ip="1.2.3.4",
        ...     remote_port=6697,
        ...     identity="alice",
        ...     network="libera",
        ... )
        >>> records = registry.snapshot()
        >>> await registry.untrack(session)
    """

    def __init__(self, max_history: int = 1000) -> None:
        self._connections: dict[str, TrackedConnection] = {}
        self._history: list[dict[str, Any]] = []  # Closed connections
        self._max_history = max_history
        self.logger = get_logger(__name__, device="connection_registry")

    async def track(
        self,
        local_ip: str,
        local_port: int,
        remote_ip: str,
        remote_port: int,
        identity: str,
        user: str = "",
        network: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """
        Register a new outbound connection.

        Returns session_id for the connection.
        """
        session_id = str(uuid.uuid4())[:12]

        conn = TrackedConnection(
            session_id=session_id,
            record=ConnectionRecord(
                local_ip=local_ip,
                local_port=local_port,
                remote_ip=remote_ip,
                remote_port=remote_port,
                identity=identity,
            ),
            user=user or identity,
            network=network,
            connected_at=time.time(),
            metadata=metadata or {},
        )

        self._connections[session_id] = conn

        await self.logger.log_security(
            message=(
                f"Outbound connection tracked: {local_ip}:{local_port} -> "
                f"{remote_ip}:{remote_port} ident={identity} [session={session_id}]"
            ),
            severity=EventSeverity.INFO,
            data={
                "session_id": session_id,
                "local_ip": local_ip,
                "local_port": local_port,
                "remote_ip": remote_ip,
                "remote_port": remote_port,
                "identity": identity,
                "network": network,
            },
        )

        return session_id

    async def untrack(self, session_id: str) -> bool:
        """
        Forget a closed connection.

        Returns True if the connection was found.
        """
        conn = self._connections.pop(session_id, None)
        if conn is None:
            return False

        now = time.time()
        duration = now - conn.connected_at

        self._history.append({
            "session_id": conn.session_id,
            "local": f"{conn.record.local_ip}:{conn.record.local_port}",
            "remote": f"{conn.record.remote_ip}:{conn.record.remote_port}",
            "identity": conn.record.identity,
            "user": conn.user,
            "network": conn.network,
            "connected_at": conn.connected_at,
            "disconnected_at": now,
            "duration": duration,
        })

        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]

        await self.logger.log_security(
            message=(
                f"Outbound connection closed: {conn.record.remote_ip}:"
                f"{conn.record.remote_port} [session={session_id}, "
                f"duration={duration:.1f}s]"
            ),
            severity=EventSeverity.INFO,
            data={
                "session_id": session_id,
                "duration": duration,
            },
        )

        return True

    def snapshot(self) -> tuple[ConnectionRecord, ...]:
        """
        Immutable copy of all active connection records.

        Records are returned in tracking (insertion) order. Ident fallback
        matching picks the first candidate in this order, so callers must
        not rely on any other ordering.
        """
        return tuple(conn.record for conn in self._connections.values())

    async def get_active_connections(
        self,
        user: str | None = None,
        network: str | None = None,
    ) -> list[dict[str, Any]]:
        """Get active connections, optionally filtered."""
        now = time.time()
        results = []

        for conn in self._connections.values():
            if user and conn.user != user:
                continue
            if network and conn.network != network:
                continue

            results.append({
                "session_id": conn.session_id,
                "local_ip": conn.record.local_ip,
                "local_port": conn.record.local_port,
                "remote_ip": conn.record.remote_ip,
                "remote_port": conn.record.remote_port,
                "identity": conn.record.identity,
                "user": conn.user,
                "network": conn.network,
                "duration": now - conn.connected_at,
            })

        return results

    async def get_connection_history(self, limit: int = 50) -> list[dict[str, Any]]:
        """Get closed connection history."""
        return self._history[-limit:]

    def get_connection(self, session_id: str) -> TrackedConnection | None:
        return self._connections.get(session_id)

    def is_tracked(self, session_id: str) -> bool:
        return session_id in self._connections

    async def reset(self) -> None:
        """Drop all connections (for testing)."""
        self._connections.clear()
        self._history.clear()
