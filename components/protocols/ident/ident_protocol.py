"""
Ident (RFC 1413) wire format.

Request line:  <local-port> , <remote-port>
Reply line:    <local-port>, <remote-port> : USERID : UNIX : <identity>
               <local-port>, <remote-port> : ERROR : <error-code>

Ports are from the point of view of the host being queried: local-port is
the port our outbound connection uses on this machine, remote-port is the
IRC server's port (e.g. 6667).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

__all__ = [
    "IPV4_MAPPED_PREFIX",
    "LINE_TERMINATOR",
    "ReplyKind",
    "IdentError",
    "Query",
    "Reply",
    "parse_query",
    "address_equivalent",
]

IPV4_MAPPED_PREFIX = "::ffff:"
LINE_TERMINATOR = b"\r\n"

MAX_PORT = 65535

# ASCII digits only; \d would also accept other Unicode digits
_QUERY_PATTERN = re.compile(r"^\s*([0-9]+)\s*,\s*([0-9]+)\s*$")


class ReplyKind(Enum):
    USERID = "USERID"
    ERROR = "ERROR"


class IdentError(Enum):
    """Error codes this service emits."""

    NO_USER = "NO-USER"
    INVALID_PORT = "INVALID-PORT"


@dataclass(frozen=True)
class Query:
    """A parsed ident request."""

    local_port: int
    remote_port: int


@dataclass(frozen=True)
class Reply:
    """A computed ident reply."""

    local_port: int
    remote_port: int
    kind: ReplyKind
    detail: str

    @classmethod
    def userid(cls, query: Query, identity: str) -> Reply:
        return cls(query.local_port, query.remote_port, ReplyKind.USERID, f"UNIX : {identity}")

    @classmethod
    def error(cls, local_port: int, remote_port: int, error: IdentError) -> Reply:
        return cls(local_port, remote_port, ReplyKind.ERROR, error.value)

    @property
    def is_userid(self) -> bool:
        return self.kind is ReplyKind.USERID

    def __str__(self) -> str:
        return f"{self.local_port}, {self.remote_port} : {self.kind.value} : {self.detail}"

    def to_wire(self) -> bytes:
        """Encode as a CRLF-terminated reply line."""
        return str(self).encode("utf-8") + LINE_TERMINATOR


def parse_query(line: str | bytes) -> Query | None:
    """
    Parse one request line.

    Returns None for anything that is not exactly two comma-separated
    port numbers in the 0..65535 range. Surrounding whitespace and the
    line terminator are ignored.
    """
    if isinstance(line, bytes):
        line = line.decode("ascii", errors="replace")

    match = _QUERY_PATTERN.match(line)
    if match is None:
        return None

    local_port, remote_port = int(match.group(1)), int(match.group(2))
    if local_port > MAX_PORT or remote_port > MAX_PORT:
        return None

    return Query(local_port=local_port, remote_port=remote_port)


def _strip_mapped_prefix(address: str) -> str:
    if address.startswith(IPV4_MAPPED_PREFIX):
        return address[len(IPV4_MAPPED_PREFIX):]
    return address


def address_equivalent(a: str, b: str) -> bool:
    """True if the addresses match once any IPv4-mapped IPv6 prefix is dropped."""
    return _strip_mapped_prefix(a) == _strip_mapped_prefix(b)
