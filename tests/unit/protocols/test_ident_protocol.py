# tests/unit/protocols/test_ident_protocol.py
"""Tests for the ident wire format.

Level 0 dependency - no other components.

Test Coverage:
- Strict query parsing
- Reply construction and serialisation
- IPv4-mapped address equivalence
"""

import pytest

from components.protocols.ident.ident_protocol import (
    IdentError,
    Query,
    Reply,
    ReplyKind,
    address_equivalent,
    parse_query,
)


# ================================================================
# QUERY PARSING TESTS
# ================================================================
class TestParseQuery:
    """Test parse_query()."""

    @pytest.mark.parametrize(
        "line",
        [
            "6667, 6697",
            "6667,6697",
            "  6667 ,   6697  ",
            "6667 , 6697\r\n",
            "6667,6697\n",
            "\t6667\t,\t6697\t",
        ],
    )
    def test_accepts_whitespace_variants(self, line):
        """WHY: Whitespace around the comma and the terminator are ignored."""
        assert parse_query(line) == Query(local_port=6667, remote_port=6697)

    def test_accepts_bytes(self):
        """WHY: Lines come straight off the socket."""
        assert parse_query(b"113, 40000\r\n") == Query(113, 40000)

    def test_accepts_port_bounds(self):
        assert parse_query("0, 65535") == Query(0, 65535)

    @pytest.mark.parametrize(
        "line",
        [
            "",
            "\r\n",
            "6667",
            "6667 6697",
            "6667, 6697, 1",
            "6667, 6697 : USERID",
            "abc, 6697",
            "6667, x",
            "-1, 6697",
            "+6667, 6697",
            "66.67, 6697",
            "65536, 6697",
            "6667, 99999999999999999999",
            "١٢, 6697",  # Arabic-Indic digits
        ],
    )
    def test_rejects_malformed_lines(self, line):
        """WHY: Anything but two uint16 values is INVALID-PORT."""
        assert parse_query(line) is None

    def test_rejects_non_ascii_bytes(self):
        assert parse_query(b"66\xff67, 6697\r\n") is None


# ================================================================
# REPLY TESTS
# ================================================================
class TestReply:
    """Test Reply construction and wire format."""

    def test_userid_reply_format(self):
        """WHY: Identity replies are always reported as UNIX."""
        reply = Reply.userid(Query(6667, 6697), "alice")

        assert reply.kind is ReplyKind.USERID
        assert reply.is_userid
        assert str(reply) == "6667, 6697 : USERID : UNIX : alice"

    def test_error_reply_format(self):
        reply = Reply.error(9999, 6697, IdentError.NO_USER)

        assert reply.kind is ReplyKind.ERROR
        assert not reply.is_userid
        assert str(reply) == "9999, 6697 : ERROR : NO-USER"

    def test_invalid_port_reply_format(self):
        reply = Reply.error(0, 0, IdentError.INVALID_PORT)

        assert str(reply) == "0, 0 : ERROR : INVALID-PORT"

    def test_to_wire_is_crlf_terminated(self):
        """WHY: Replies are always CRLF terminated."""
        wire = Reply.userid(Query(1, 2), "bob").to_wire()

        assert wire == b"1, 2 : USERID : UNIX : bob\r\n"

    def test_reply_is_immutable(self):
        reply = Reply.userid(Query(1, 2), "bob")

        with pytest.raises(AttributeError):
            reply.detail = "UNIX : mallory"


# ================================================================
# ADDRESS EQUIVALENCE TESTS
# ================================================================
class TestAddressEquivalent:
    """Test address_equivalent()."""

    def test_mapped_and_plain_ipv4_are_equal(self):
        """WHY: Dual-stack sockets report IPv4 peers in mapped form."""
        assert address_equivalent("::ffff:10.0.0.1", "10.0.0.1")
        assert address_equivalent("10.0.0.1", "::ffff:10.0.0.1")
        assert address_equivalent("::ffff:10.0.0.1", "::ffff:10.0.0.1")

    def test_different_addresses_are_not_equal(self):
        assert not address_equivalent("10.0.0.1", "10.0.0.2")
        assert not address_equivalent("::ffff:10.0.0.1", "10.0.0.2")

    def test_plain_ipv6_compared_verbatim(self):
        assert address_equivalent("2001:db8::1", "2001:db8::1")
        assert not address_equivalent("2001:db8::1", "2001:db8::2")
