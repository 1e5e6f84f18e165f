# components/network/servers/base_server.py
"""
Base class for TCP protocol servers.

Provides shared infrastructure every server needs:
- Host/port binding (None host = all interfaces)
- Service identity (device_name for logging context)
- ServiceLogger integration (security event logging)
- Common status reporting
"""

from abc import ABC, abstractmethod
from typing import Any

from components.security.logging_system import (
    EventSeverity,
    ServiceLogger,
    get_logger,
)


class BaseProtocolServer(ABC):
    """Base class for TCP protocol servers.

    Subclasses must implement: running, stop().
    """

    def __init__(
        self,
        host: str | None = None,
        port: int = 0,
        device_name: str = "unknown",
    ):
        self.host = host
        self.port = port
        self.device_name = device_name
        self.logger: ServiceLogger = get_logger(
            f"{self.__class__.__module__}.{device_name}",
            device=device_name,
        )

    @property
    @abstractmethod
    def running(self) -> bool: ...

    @abstractmethod
    async def stop(self) -> None: ...

    async def log_security(
        self,
        message: str,
        severity: EventSeverity = EventSeverity.INFO,
        data: dict[str, Any] | None = None,
        **kwargs,
    ) -> None:
        """Log a security event via ServiceLogger."""
        await self.logger.log_security(
            message=message,
            severity=severity,
            data=data or {},
            **kwargs,
        )

    def get_status(self) -> dict[str, Any]:
        """Get server status. Override to add protocol-specific fields."""
        return {
            "running": self.running,
            "host": self.host or "*",
            "port": self.port,
            "device": self.device_name,
        }
