"""
Ident query resolution.

Maps one parsed query, plus the addresses observed on the ident
connection itself, onto the outbound connection it refers to.
"""

from __future__ import annotations

from typing import Iterable

from components.network.connection_registry import ConnectionRecord
from components.protocols.ident.ident_protocol import (
    IdentError,
    Query,
    Reply,
    address_equivalent,
)
from components.security.logging_system import ServiceLogger, get_logger

__all__ = ["IdentResolver"]


class IdentResolver:
    """
    Resolves ident queries against a snapshot of outbound connections.

    Holds no state between calls. Every candidate considered is traced at
    DEBUG level.

    Matching rules, checked per record in snapshot order:

    1. Exact: local port, remote port and local address all match. The
       first exact match ends the scan.
    2. Fallback: remote address, remote port and local address match but
       the local port does not (NAT or port-rewriting in between). Only
       the first fallback seen is kept, and it is used only if no exact
       match turns up anywhere in the snapshot.

    Example:
        >>> resolver = IdentResolver()
        >>> reply = resolver.resolve(
        ...     parse_query("6667, 6697"), "10.0.0.5", "1.2.3.4", registry.snapshot()
        ... )
        >>> str(reply)
        '6667, 6697 : USERID : UNIX : alice'
    """

    def __init__(self, logger: ServiceLogger | None = None):
        self.logger = logger or get_logger(__name__, device="ident_resolver")

    def resolve(
        self,
        query: Query | None,
        observed_local_ip: str,
        observed_remote_ip: str,
        snapshot: Iterable[ConnectionRecord],
    ) -> Reply:
        """
        Compute the reply for one query.

        Args:
            query: Parsed query, or None if the request line did not parse
            observed_local_ip: Our address on the ident connection
            observed_remote_ip: The querying server's address
            snapshot: Active outbound connections, in registry order

        Returns:
            USERID reply for the matched connection, ERROR : INVALID-PORT
            for unparseable queries, ERROR : NO-USER otherwise
        """
        if query is None:
            return Reply.error(0, 0, IdentError.INVALID_PORT)

        fallback: ConnectionRecord | None = None

        for record in snapshot:
            if not address_equivalent(record.local_ip, observed_local_ip):
                continue

            self.logger.debug(
                f"Checking ({record.local_port}, {record.remote_port}, "
                f"{record.local_ip}) for {record.identity}"
            )

            if (
                record.local_port == query.local_port
                and record.remote_port == query.remote_port
            ):
                return Reply.userid(query, record.identity)

            if (
                fallback is None
                and record.remote_ip == observed_remote_ip
                and record.remote_port == query.remote_port
            ):
                self.logger.debug(
                    f"Fallback candidate ({record.remote_ip}, {record.remote_port}) "
                    f"for {record.identity}"
                )
                fallback = record

        if fallback is not None:
            return Reply.userid(query, fallback.identity)

        return Reply.error(query.local_port, query.remote_port, IdentError.NO_USER)
