# components/network/servers/ident_server.py
"""
Ident (RFC 1413) listener with demand-driven lifetime.

The listening socket is open only while at least one consumer (an
outbound IRC connection that is registering with its server) needs it.
The first register() binds the port, the last deregister() releases it.

Each accepted connection carries exactly one exchange:
read one line, resolve it against a fresh registry snapshot, write the
reply, close. Anything that goes wrong on an accepted connection just
means no reply.

Example:
    >>> listener = IdentListener(registry, port=11300)
    >>> result = await listener.register("alice/libera")
    >>> result.ok, listener.is_listening
    (True, True)
    >>> await listener.deregister("alice/libera")
    True
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Hashable, Iterable

from components.network.connection_registry import ConnectionSnapshotSource
from components.network.servers.base_server import BaseProtocolServer
from components.protocols.ident.ident_protocol import IdentError, Reply, parse_query
from components.protocols.ident.ident_resolver import IdentResolver
from components.security.logging_system import (
    AlarmPriority,
    AlarmState,
    EventCategory,
    EventSeverity,
)
from config.config_loader import (
    DEFAULT_IDENT_PORT,
    DEFAULT_MAX_LINE_LENGTH,
    DEFAULT_READ_TIMEOUT,
)

__all__ = ["RegistrationResult", "IdentListener"]


def _setting(section: dict[str, Any], key: str, default: Any) -> Any:
    value = section.get(key)
    return default if value is None else value


@dataclass(frozen=True)
class RegistrationResult:
    """Outcome of IdentListener.register()."""

    ok: bool  # False only if the listener had to be opened and the bind failed
    already_registered: bool = False

    @property
    def newly_registered(self) -> bool:
        return self.ok and not self.already_registered


class IdentListener(BaseProtocolServer):
    """
    Reference-counted ident listener.

    Consumers are opaque hashable tokens. Membership changes and the
    decision to bind or release the socket happen under one asyncio.Lock;
    I/O on accepted connections never does.
    """

    def __init__(
        self,
        source: ConnectionSnapshotSource,
        *,
        host: str | None = None,
        port: int = DEFAULT_IDENT_PORT,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        max_line_length: int = DEFAULT_MAX_LINE_LENGTH,
        resolver: IdentResolver | None = None,
        device_name: str | None = None,
    ):
        """Initialise ident listener.

        Args:
            source: Registry the connection snapshot is taken from per query
            host: Address to bind (None = all interfaces)
            port: Port to bind (0 = pick a free port)
            read_timeout: Seconds to wait for the request line
            max_line_length: Longest request line accepted, in bytes
            resolver: Resolver to use (default: a new IdentResolver)
            device_name: Name used for logging context

        Raises:
            ValueError: If parameters are invalid
        """
        if not isinstance(port, int) or isinstance(port, bool) or not (0 <= port < 65536):
            raise ValueError(f"port must be 0-65535, got {port!r}")
        if not isinstance(read_timeout, (int, float)) or read_timeout <= 0:
            raise ValueError(f"read_timeout must be > 0, got {read_timeout!r}")
        if not isinstance(max_line_length, int) or max_line_length <= 0:
            raise ValueError(f"max_line_length must be > 0, got {max_line_length!r}")

        super().__init__(
            host=host,
            port=port,
            device_name=device_name or f"identd_{port}",
        )

        self.source = source
        self.read_timeout = read_timeout
        self.max_line_length = max_line_length
        self.resolver = resolver or IdentResolver(logger=self.logger)

        self.server: asyncio.AbstractServer | None = None
        # dict keeps registration order for status listings
        self._consumers: dict[Hashable, None] = {}
        self._lock = asyncio.Lock()
        self._connection_tasks: set[asyncio.Task[None]] = set()
        self._last_bind_failed = False

        self.last_request = ""
        self.last_reply = ""
        self.total_opens = 0
        self.total_closes = 0
        self.total_queries = 0

    @classmethod
    def from_config(
        cls, config: dict[str, Any], source: ConnectionSnapshotSource
    ) -> "IdentListener":
        """Build a listener from ConfigLoader.load_all() output."""
        ident_cfg = config.get("ident", {})
        return cls(
            source,
            host=ident_cfg.get("host"),
            port=_setting(ident_cfg, "port", DEFAULT_IDENT_PORT),
            read_timeout=_setting(ident_cfg, "read_timeout", DEFAULT_READ_TIMEOUT),
            max_line_length=_setting(ident_cfg, "max_line_length", DEFAULT_MAX_LINE_LENGTH),
        )

    # ----------------------------------------------------------------
    # Status
    # ----------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self.server is not None and self.server.is_serving()

    @property
    def is_listening(self) -> bool:
        return self.running

    @property
    def last_bind_failed(self) -> bool:
        return self._last_bind_failed

    @property
    def active_consumer_count(self) -> int:
        return len(self._consumers)

    @property
    def active_consumers(self) -> tuple[Hashable, ...]:
        return tuple(self._consumers)

    @property
    def bound_address(self) -> tuple[str, int] | None:
        """(ip, port) of the first listening socket, or None when closed."""
        if self.server is None or not self.server.sockets:
            return None
        sockname = self.server.sockets[0].getsockname()
        return sockname[0], sockname[1]

    def get_status(self) -> dict[str, Any]:
        status = super().get_status()
        status.update({
            "listening": self.is_listening,
            "bound_address": self.bound_address,
            "last_bind_failed": self._last_bind_failed,
            "active_consumers": [str(c) for c in self._consumers],
            "active_consumer_count": self.active_consumer_count,
            "last_request": self.last_request,
            "last_reply": self.last_reply,
            "total_opens": self.total_opens,
            "total_closes": self.total_closes,
            "total_queries": self.total_queries,
        })
        return status

    # ----------------------------------------------------------------
    # Consumer lifecycle
    # ----------------------------------------------------------------

    async def register(self, consumer_id: Hashable) -> RegistrationResult:
        """Declare that consumer_id needs the listener.

        Opens the listener on the first registration. If that bind fails
        the consumer is not recorded, the listener stays closed and
        last_bind_failed is set until a later bind succeeds.
        """
        async with self._lock:
            if consumer_id in self._consumers:
                result = RegistrationResult(ok=True, already_registered=True)
            elif not self._consumers and not await self._open():
                result = RegistrationResult(ok=False)
            else:
                self._consumers[consumer_id] = None
                result = RegistrationResult(ok=True)
            count = len(self._consumers)

        await self.logger.log_audit(
            f"Ident consumer register: {consumer_id} ({count} active)",
            user=str(consumer_id),
            action="register",
            result=(
                "ALREADY_REGISTERED" if result.already_registered
                else "REGISTERED" if result.ok
                else "BIND_FAILED"
            ),
        )
        return result

    async def deregister(self, consumer_id: Hashable) -> bool:
        """Declare that consumer_id no longer needs the listener.

        Releases the socket when the last consumer leaves. Returns False
        if the consumer was not registered.
        """
        async with self._lock:
            was_registered = consumer_id in self._consumers
            if was_registered:
                del self._consumers[consumer_id]
                if not self._consumers:
                    await self._close()
            count = len(self._consumers)

        await self.logger.log_audit(
            f"Ident consumer deregister: {consumer_id} ({count} active)",
            user=str(consumer_id),
            action="deregister",
            result="DEREGISTERED" if was_registered else "NOT_REGISTERED",
        )
        return was_registered

    async def deregister_many(self, consumer_ids: Iterable[Hashable]) -> int:
        """Deregister several consumers. Returns how many were registered."""
        removed = 0
        for consumer_id in consumer_ids:
            if await self.deregister(consumer_id):
                removed += 1
        return removed

    async def stop(self) -> None:
        """Drop every consumer and close the listener."""
        async with self._lock:
            self._consumers.clear()
            await self._close()

    # ----------------------------------------------------------------
    # Socket lifecycle (called with self._lock held)
    # ----------------------------------------------------------------

    async def _open(self) -> bool:
        try:
            self.server = await asyncio.start_server(
                self._handle_client,
                self.host,
                self.port,
                limit=self.max_line_length,
            )
        except OSError as e:
            self.server = None
            self._last_bind_failed = True
            await self.logger.log_alarm(
                message=(
                    f"Failed to open ident listener on "
                    f"{self.host or '*'}:{self.port}: {e}"
                ),
                priority=AlarmPriority.HIGH,
                state=AlarmState.ACTIVE,
                data={
                    "host": self.host,
                    "port": self.port,
                    "error": str(e),
                },
            )
            return False

        recovered = self._last_bind_failed
        self._last_bind_failed = False
        self.total_opens += 1
        await self.logger.log_event(
            EventSeverity.INFO,
            EventCategory.SYSTEM,
            f"Ident listener started on {self.bound_address}",
        )
        if recovered:
            await self.logger.log_alarm(
                message=f"Ident listener open again on {self.host or '*'}:{self.port}",
                priority=AlarmPriority.HIGH,
                state=AlarmState.CLEARED,
                data={"host": self.host, "port": self.port},
            )
        return True

    async def _close(self) -> None:
        if self.server is None:
            return

        server, self.server = self.server, None
        server.close()

        # Cancel handlers before wait_closed(), which would otherwise wait
        # for them to finish reading
        if self._connection_tasks:
            tasks = list(self._connection_tasks)
            self.logger.debug(f"Cancelling {len(tasks)} in-flight ident exchanges")
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self._connection_tasks.clear()

        await server.wait_closed()

        self.total_closes += 1
        await self.logger.log_event(
            EventSeverity.INFO,
            EventCategory.SYSTEM,
            f"Ident listener stopped after {self.total_queries} queries",
        )

    # ----------------------------------------------------------------
    # Connection handling
    # ----------------------------------------------------------------

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Serve one ident exchange and close the connection."""
        task = asyncio.current_task()
        if task is not None:
            self._connection_tasks.add(task)

        sockname = writer.get_extra_info("sockname")
        peername = writer.get_extra_info("peername")
        local_ip = sockname[0] if sockname else ""
        remote_ip = peername[0] if peername else ""

        try:
            # Closing race: the last consumer left but the socket is not
            # released yet
            if not self._consumers:
                self.logger.debug(f"Ident connection from {remote_ip} refused: no consumers")
                return

            line = await self._read_request(reader, remote_ip)
            if line is None:
                return

            reply = self.resolver.resolve(
                parse_query(line),
                local_ip,
                remote_ip,
                self.source.snapshot(),
            )
            self._record_exchange(line, reply, local_ip, remote_ip)

            writer.write(reply.to_wire())
            await writer.drain()

            await self.logger.log_event(
                EventSeverity.DEBUG,
                EventCategory.COMMUNICATION,
                f"Ident reply to {remote_ip}: {reply}",
                source_ip=remote_ip,
            )
            if reply.detail == IdentError.INVALID_PORT.value:
                await self.log_security(
                    f"Malformed ident request from {remote_ip}",
                    severity=EventSeverity.WARNING,
                    data={"request": self.last_request},
                    source_ip=remote_ip,
                )

        except ConnectionError as e:
            self.logger.debug(f"Ident connection from {remote_ip} lost: {e}")
        except Exception as e:
            self.logger.error(f"Ident handler error for {remote_ip}: {e}", exc_info=True)
        finally:
            if task is not None:
                self._connection_tasks.discard(task)
            try:
                writer.close()
                await writer.wait_closed()
            except OSError:
                pass

    async def _read_request(
        self, reader: asyncio.StreamReader, remote_ip: str
    ) -> bytes | None:
        """Read the request line, or None if the peer gave us nothing usable.

        A final unterminated line followed by EOF still counts as a request.
        """
        try:
            line = await asyncio.wait_for(reader.readline(), timeout=self.read_timeout)
        except TimeoutError:
            self.logger.debug(f"Ident request from {remote_ip} timed out")
            return None
        except ValueError:
            # StreamReader limit exceeded
            self.logger.debug(f"Ident request from {remote_ip} exceeds {self.max_line_length} bytes")
            return None

        if not line:
            self.logger.debug(f"Ident connection from {remote_ip} closed without a request")
            return None
        return line

    def _record_exchange(
        self, line: bytes, reply: Reply, local_ip: str, remote_ip: str
    ) -> None:
        """Update the last request/reply diagnostics."""
        request = line.decode("ascii", errors="replace").replace("\r", "").replace("\n", " ")
        self.total_queries += 1
        self.last_request = f"{request.strip()} from {remote_ip} on {local_ip}"
        self.last_reply = str(reply)
        self.logger.debug(f"Ident request: {self.last_request}")
        self.logger.debug(f"Ident response: {self.last_reply}")
