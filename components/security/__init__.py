# components/security/__init__.py
"""
Security components for the ident service.

Modules:
- logging_system: Structured service logging with audit trail and alarms
"""

from components.security.logging_system import (
    AlarmPriority,
    AlarmState,
    EventCategory,
    EventSeverity,
    ServiceLogger,
    configure_logging,
    get_logger,
)

__all__ = [
    "ServiceLogger",
    "configure_logging",
    "get_logger",
    "EventSeverity",
    "EventCategory",
    "AlarmPriority",
    "AlarmState",
]
