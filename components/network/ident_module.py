# components/network/ident_module.py
"""
Host integration for the ident listener.

Translates IRC multiplexer events into listener registrations and
provides the operator command surface (HELP, STATUS).

Ident is only needed while an outbound connection is registering with
its IRC server, so a network registers when it starts connecting and
deregisters as soon as it is connected (or fails, or is deleted).
"""

from typing import Hashable, Iterable

from components.network.servers.ident_server import IdentListener
from components.security.logging_system import get_logger

__all__ = ["IdentModule", "BIND_FAILED_WARNING"]

BIND_FAILED_WARNING = [
    "*** WARNING: Opening the listening socket failed!",
    "*** IDENT listener is NOT running.",
]

_HELP_ROWS = [
    ("Status", "Displays status information about the ident server"),
]


class IdentModule:
    """Multiplexer-facing hooks around an IdentListener.

    Every hook takes the network (any hashable token identifying one
    user's connection to one IRC network) as the consumer id.
    """

    def __init__(self, listener: IdentListener):
        self.listener = listener
        self.logger = get_logger(__name__, device=listener.device_name)

    # ----------------------------------------------------------------
    # Multiplexer events
    # ----------------------------------------------------------------

    async def on_irc_connecting(self, network: Hashable) -> bool:
        """An outbound connection is about to be opened.

        Returns False if the listener could not be opened. The connection
        attempt should still go ahead, just without ident.
        """
        result = await self.listener.register(network)
        if not result.ok:
            self.logger.warning(
                f"Ident listener unavailable while {network} connects"
            )
        return result.ok

    async def on_irc_connected(
        self, network: Hashable, client_attached: bool = False
    ) -> list[str]:
        """Registration with the IRC server finished.

        Returns warning lines to deliver to the network's owner if the
        listener failed to open and no client was attached to see it live.
        """
        messages: list[str] = []
        if not client_attached and self.listener.last_bind_failed:
            messages = list(BIND_FAILED_WARNING)
        await self.listener.deregister(network)
        return messages

    async def on_irc_disconnected(self, network: Hashable) -> None:
        await self.listener.deregister(network)

    async def on_delete_network(self, network: Hashable) -> None:
        await self.listener.deregister(network)

    async def on_delete_user(self, networks: Iterable[Hashable]) -> int:
        """Drop every network of a deleted user."""
        return await self.listener.deregister_many(networks)

    def on_client_login(self) -> list[str]:
        """Warning lines shown to a client as it attaches."""
        if self.listener.last_bind_failed:
            return list(BIND_FAILED_WARNING)
        return []

    async def shutdown(self) -> None:
        """Module unload: close the listener regardless of consumers."""
        await self.listener.stop()

    # ----------------------------------------------------------------
    # Operator commands
    # ----------------------------------------------------------------

    def handle_command(self, line: str, is_admin: bool = False) -> list[str]:
        """Run one operator command and return its output lines."""
        tokens = line.split()
        command = tokens[0] if tokens else ""

        if command.upper() == "HELP":
            return self._help()
        if command.upper() == "STATUS":
            return self._status(is_admin)
        return [f"Unknown command [{command}] try 'Help'"]

    def _help(self) -> list[str]:
        width = max(len("Command"), *(len(cmd) for cmd, _ in _HELP_ROWS))
        lines = [f"{'Command':<{width}}  Description"]
        lines.extend(f"{cmd:<{width}}  {desc}" for cmd, desc in _HELP_ROWS)
        return lines

    def _status(self, is_admin: bool) -> list[str]:
        lines: list[str] = []
        listener = self.listener

        if listener.is_listening:
            ip, port = listener.bound_address
            lines.append(f"IdentServer is listening on: {ip}:{port}")
            if is_admin:
                lines.append("List of active users/networks:")
                lines.extend(f"* {consumer}" for consumer in listener.active_consumers)
        else:
            if listener.last_bind_failed:
                lines.append("WARNING: Opening the listening socket failed!")
            lines.append("IdentServer isn't listening.")

        if is_admin:
            lines.append(f"Last IDENT request: {listener.last_request}")
            lines.append(f"Last IDENT reply: {listener.last_reply}")

        return lines
