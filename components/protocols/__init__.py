"""
Protocol implementations.

Structure:
    components/protocols/
    └── ident/
        ├── ident_protocol.py     # RFC 1413 query parsing and reply formatting
        └── ident_resolver.py     # Query -> identity lookup over a snapshot

Usage:
    from components.protocols.ident import IdentResolver, parse_query

    query = parse_query("6667, 6697")
    reply = IdentResolver().resolve(query, local_ip, remote_ip, registry.snapshot())
"""

from components.protocols.ident import IdentResolver, Reply, parse_query

__all__ = ["IdentResolver", "Reply", "parse_query"]
