# tests/conftest.py
"""Shared pytest fixtures for ident service tests.

Follows a bottom-up testing strategy: components are tested with real
dependencies (real registry, real sockets on loopback) wherever possible.
"""

import asyncio
import tempfile
from pathlib import Path
from typing import Generator

import pytest
import yaml

from components.network.connection_registry import ConnectionRecord


# ----------------------------------------------------------------
# Configuration fixtures
# ----------------------------------------------------------------
@pytest.fixture
def temp_config_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test configuration files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def write_config_file(temp_config_dir):
    """Factory fixture for writing YAML configuration files.

    Returns:
        Function that writes config dict to YAML file
    """

    def _write_config(config: dict, filename: str = "ident.yml") -> Path:
        config_file = temp_config_dir / filename
        with open(config_file, "w") as f:
            yaml.dump(config, f)
        return config_file

    return _write_config


# ----------------------------------------------------------------
# Registry fixtures
# ----------------------------------------------------------------
class StaticSnapshotSource:
    """Snapshot source over a fixed list of records."""

    def __init__(self, records=None):
        self.records = list(records or [])
        self.snapshot_calls = 0

    def snapshot(self):
        self.snapshot_calls += 1
        return tuple(self.records)


@pytest.fixture
def make_record():
    """Factory for ConnectionRecord with loopback defaults."""

    def _make(
        identity: str = "alice",
        local_ip: str = "127.0.0.1",
        local_port: int = 40123,
        remote_ip: str = "127.0.0.1",
        remote_port: int = 6697,
    ) -> ConnectionRecord:
        return ConnectionRecord(
            local_ip=local_ip,
            local_port=local_port,
            remote_ip=remote_ip,
            remote_port=remote_port,
            identity=identity,
        )

    return _make


@pytest.fixture
def static_source():
    """Factory for StaticSnapshotSource."""

    def _create(records=None) -> StaticSnapshotSource:
        return StaticSnapshotSource(records)

    return _create


# ----------------------------------------------------------------
# Network helpers
# ----------------------------------------------------------------
@pytest.fixture
def ident_exchange():
    """Send raw bytes to an ident server and return everything it replies.

    Returns:
        Async function (host, port, payload, half_close) -> bytes
    """

    async def _exchange(
        host: str,
        port: int,
        payload: bytes,
        half_close: bool = False,
        timeout: float = 2.0,
    ) -> bytes:
        reader, writer = await asyncio.open_connection(host, port)
        try:
            if payload:
                writer.write(payload)
                await writer.drain()
            if half_close:
                writer.write_eof()
            return await asyncio.wait_for(reader.read(), timeout=timeout)
        except ConnectionResetError:
            # Server closed with our unread bytes still queued
            return b""
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    return _exchange


@pytest.fixture
async def occupied_port():
    """A loopback port held by another listener for the duration of the test."""

    async def _idle(reader, writer):
        writer.close()

    server = await asyncio.start_server(_idle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]

    yield port

    server.close()
    await server.wait_closed()


@pytest.fixture
async def wait_for_condition():
    """Provide utility for waiting on async conditions.

    Returns:
        Async function that polls a condition until true or timeout
    """

    async def _wait(
        condition_fn,
        timeout: float = 1.0,
        poll_interval: float = 0.01,
        error_msg: str = "Condition not met within timeout",
    ):
        loop = asyncio.get_running_loop()
        start = loop.time()
        while loop.time() - start < timeout:
            if condition_fn():
                return
            await asyncio.sleep(poll_interval)

        raise AssertionError(error_msg)

    return _wait
