# tests/integration/__init__.py
"""
Integration tests for the ident service.

These tests wire the connection registry, the host module and the
listener together and talk to the listener over loopback sockets.

Running Integration Tests:
    pytest tests/integration/                    # All integration tests
    pytest tests/integration/ -k lifecycle       # Lifecycle tests only
"""
