# components/network/servers/__init__.py
"""
Network protocol servers.

These servers open REAL network ports.

Example:
    # Terminal 1: Run the standalone ident service
    $ python tools/identd.py serve --port 11300

    # Terminal 2: Query it
    $ printf '40123, 6697\\r\\n' | nc localhost 11300
"""

from components.network.servers.base_server import BaseProtocolServer
from components.network.servers.ident_server import IdentListener, RegistrationResult

__all__ = [
    "BaseProtocolServer",
    "IdentListener",
    "RegistrationResult",
]
