"""Ident (RFC 1413) wire format and query resolution."""

from components.protocols.ident.ident_protocol import (
    IdentError,
    Query,
    Reply,
    ReplyKind,
    address_equivalent,
    parse_query,
)
from components.protocols.ident.ident_resolver import IdentResolver

__all__ = [
    "Query",  # Parsed request
    "Reply",  # Computed reply
    "ReplyKind",
    "IdentError",
    "parse_query",
    "address_equivalent",
    "IdentResolver",  # Query -> Reply against a registry snapshot
]
