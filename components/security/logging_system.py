# components/security/logging_system.py
"""
Structured logging system for the ident service.

Provides:
- Structured logging (JSON and plain text formats)
- Audit trail management
- Alarm and event classification
- Log rotation and retention

Service-specific features:
- Event severity levels
- Alarm priorities
- Component context (listener, registry, host module)
"""

import asyncio
import json
import logging
import logging.handlers
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

__all__ = [
    "EventSeverity",
    "EventCategory",
    "AlarmPriority",
    "AlarmState",
    "LogEntry",
    "UptimeFormatter",
    "JSONFormatter",
    "ServiceLogger",
    "configure_logging",
    "get_logger",
]

# Process-wide reference point for uptime stamps
_STARTED_AT = time.monotonic()


def uptime() -> float:
    """Seconds since the logging system was imported."""
    return time.monotonic() - _STARTED_AT


# ----------------------------------------------------------------
# Event Classification
# ----------------------------------------------------------------


class EventSeverity(Enum):
    """
    Event severity levels (syslog ordering).

    Lower number = higher severity
    """

    CRITICAL = 1
    ALERT = 2  # Immediate action required
    ERROR = 3
    WARNING = 4
    NOTICE = 5  # Normal but significant events
    INFO = 6
    DEBUG = 7


class EventCategory(Enum):
    """Service event categories."""

    SECURITY = "security"  # Who queried what
    ALARM = "alarm"  # Conditions that degrade availability
    AUDIT = "audit"  # Consumer register/deregister trail
    SYSTEM = "system"  # Listener open/close
    COMMUNICATION = "communication"  # Query/reply exchanges


class AlarmPriority(Enum):
    """Alarm priority levels."""

    CRITICAL = 1
    HIGH = 2  # Service unavailable
    MEDIUM = 3
    LOW = 4


class AlarmState(Enum):
    """Alarm states."""

    ACTIVE = "ACTIVE"
    CLEARED = "CLEARED"


LOGGING_TO_SEVERITY = {
    logging.CRITICAL: EventSeverity.CRITICAL,
    logging.ERROR: EventSeverity.ERROR,
    logging.WARNING: EventSeverity.WARNING,
    logging.INFO: EventSeverity.INFO,
    logging.DEBUG: EventSeverity.DEBUG,
}

SEVERITY_TO_LOGGING = {
    EventSeverity.CRITICAL: logging.CRITICAL,
    EventSeverity.ALERT: logging.CRITICAL,
    EventSeverity.ERROR: logging.ERROR,
    EventSeverity.WARNING: logging.WARNING,
    EventSeverity.NOTICE: logging.INFO,
    EventSeverity.INFO: logging.INFO,
    EventSeverity.DEBUG: logging.DEBUG,
}


# ----------------------------------------------------------------
# Structured Log Entry
# ----------------------------------------------------------------


@dataclass
class LogEntry:
    """Structured log entry for service events."""

    uptime: float  # Seconds since process start
    wall_time: float  # Unix timestamp
    severity: EventSeverity
    category: EventCategory
    message: str

    # Context
    device: str = ""  # Service instance name, e.g. "identd_11300"
    component: str = ""
    user: str = ""
    source_ip: str = ""

    data: dict[str, Any] = field(default_factory=dict)

    alarm_priority: AlarmPriority | None = None
    alarm_state: AlarmState | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialisation."""
        entry_dict = {
            "uptime": self.uptime,
            "wall_time": self.wall_time,
            "severity": self.severity.name,
            "category": self.category.value,
            "message": self.message,
        }

        if self.device:
            entry_dict["device"] = self.device
        if self.component:
            entry_dict["component"] = self.component
        if self.user:
            entry_dict["user"] = self.user
        if self.source_ip:
            entry_dict["source_ip"] = self.source_ip
        if self.data:
            entry_dict["data"] = json.dumps(self.data)
        if self.alarm_priority:
            entry_dict["alarm_priority"] = self.alarm_priority.name
        if self.alarm_state:
            entry_dict["alarm_state"] = self.alarm_state.value

        return entry_dict

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def to_human_readable(self) -> str:
        """Convert to human-readable format."""
        severity_str = f"[{self.severity.name:8s}]"
        device_str = f"{self.device}:" if self.device else ""
        component_str = f"{self.component}:" if self.component else ""

        return f"{severity_str} {device_str}{component_str} {self.message}"


# ----------------------------------------------------------------
# Formatters
# ----------------------------------------------------------------


class UptimeFormatter(logging.Formatter):
    """Format log records with an uptime prefix."""

    def __init__(self):
        super().__init__(
            fmt="[UP:%(uptime)9.2fs] [%(levelname)8s] %(name)s: %(message)s"
        )

    def format(self, record: logging.LogRecord) -> str:
        record.uptime = uptime()
        return super().format(record)


class JSONFormatter(logging.Formatter):
    """Format log records as JSON lines."""

    def __init__(self, device: str = ""):
        super().__init__()
        self.device = device

    def format(self, record: logging.LogRecord) -> str:
        severity = LOGGING_TO_SEVERITY.get(record.levelno, EventSeverity.INFO)

        log_entry = LogEntry(
            uptime=uptime(),
            wall_time=record.created,
            severity=severity,
            category=EventCategory.SYSTEM,
            message=record.getMessage(),
            device=self.device,
            component=record.name,
        )

        if record.exc_info:
            log_entry.data["exception"] = self.formatException(record.exc_info)

        return log_entry.to_json()


# ----------------------------------------------------------------
# Service Logger
# ----------------------------------------------------------------


class ServiceLogger:
    """
    Logger for service components.

    Wraps Python's logging with:
    - Structured logging (JSON file output with rotation)
    - Event classification
    - Audit trail support
    - Alarm logging
    """

    def __init__(
        self,
        name: str,
        device: str = "",
        log_dir: Path | None = None,
        enable_json: bool = True,
        enable_console: bool = True,
        level: int = logging.DEBUG,
        max_audit_entries: int = 10000,
    ):
        """
        Initialise service logger.

        Args:
            name: Logger name (typically module name)
            device: Service instance name for context
            log_dir: Directory for log files (None = no file logging)
            enable_json: Enable JSON formatted logs (requires log_dir)
            enable_console: Enable console output
            level: Minimum level emitted by the handlers
            max_audit_entries: Maximum audit trail entries to retain
        """
        self.name = name
        self.device = device
        self.log_dir = log_dir

        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)
        self.logger.propagate = False

        self.logger.handlers.clear()

        if enable_console:
            self._add_console_handler(level)

        if enable_json and log_dir:
            self._add_json_handler(level)

        self.audit_trail: list[LogEntry] = []
        self._audit_lock = asyncio.Lock()
        self._max_audit_entries = max_audit_entries

    def _add_console_handler(self, level: int) -> None:
        handler = logging.StreamHandler()
        handler.setLevel(level)
        handler.setFormatter(UptimeFormatter())
        self.logger.addHandler(handler)

    def _add_json_handler(self, level: int) -> None:
        """Add JSON file handler with rotation."""
        if not self.log_dir:
            return

        self.log_dir.mkdir(parents=True, exist_ok=True)
        log_file = self.log_dir / f"{self.device or 'identd'}.json.log"

        # 10MB max, 5 backups
        handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
        )
        handler.setLevel(level)
        handler.setFormatter(JSONFormatter(device=self.device))
        self.logger.addHandler(handler)

    # ----------------------------------------------------------------
    # Standard logging methods
    # ----------------------------------------------------------------

    def debug(self, message: str, **kwargs) -> None:
        self.logger.debug(message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        self.logger.error(message, **kwargs)

    # ----------------------------------------------------------------
    # Structured logging methods
    # ----------------------------------------------------------------

    async def log_event(
        self,
        severity: EventSeverity,
        category: EventCategory,
        message: str,
        **kwargs,
    ) -> LogEntry:
        """
        Log structured service event.

        Args:
            severity: Event severity level
            category: Event category
            message: Event message
            **kwargs: Additional context (user, component, data, etc.)

        Returns:
            LogEntry that was created
        """
        device = kwargs.pop("device", self.device)

        entry = LogEntry(
            uptime=uptime(),
            wall_time=time.time(),
            severity=severity,
            category=category,
            message=message,
            device=device,
            **kwargs,
        )

        log_level = SEVERITY_TO_LOGGING.get(severity, logging.INFO)
        self.logger.log(log_level, entry.to_human_readable())

        if category in (EventCategory.AUDIT, EventCategory.SECURITY, EventCategory.ALARM):
            async with self._audit_lock:
                self.audit_trail.append(entry)
                if len(self.audit_trail) > self._max_audit_entries:
                    self.audit_trail = self.audit_trail[-self._max_audit_entries :]

        return entry

    async def log_audit(
        self, message: str, user: str = "", action: str = "", result: str = "", **kwargs
    ) -> LogEntry:
        """
        Log audit trail event.

        Args:
            message: Audit message
            user: Consumer the action was performed for
            action: Action performed (register, deregister)
            result: Result of action (REGISTERED, ALREADY_REGISTERED, ...)
            **kwargs: Additional context

        Returns:
            LogEntry that was created
        """
        data = kwargs.get("data", {})
        data.update(
            {
                "action": action,
                "result": result,
            }
        )
        kwargs["data"] = data

        return await self.log_event(
            severity=EventSeverity.NOTICE,
            category=EventCategory.AUDIT,
            message=message,
            user=user,
            **kwargs,
        )

    async def log_alarm(
        self,
        message: str,
        priority: AlarmPriority,
        state: AlarmState = AlarmState.ACTIVE,
        **kwargs,
    ) -> LogEntry:
        """
        Log alarm event.

        Args:
            message: Alarm message
            priority: Alarm priority
            state: Alarm state
            **kwargs: Additional context

        Returns:
            LogEntry that was created
        """
        severity_map = {
            AlarmPriority.CRITICAL: EventSeverity.CRITICAL,
            AlarmPriority.HIGH: EventSeverity.ALERT,
            AlarmPriority.MEDIUM: EventSeverity.WARNING,
            AlarmPriority.LOW: EventSeverity.NOTICE,
        }
        severity = severity_map.get(priority, EventSeverity.WARNING)

        return await self.log_event(
            severity=severity,
            category=EventCategory.ALARM,
            message=message,
            alarm_priority=priority,
            alarm_state=state,
            **kwargs,
        )

    async def log_security(
        self, message: str, severity: EventSeverity = EventSeverity.WARNING, **kwargs
    ) -> LogEntry:
        """Log security event."""
        return await self.log_event(
            severity=severity,
            category=EventCategory.SECURITY,
            message=message,
            **kwargs,
        )

    # ----------------------------------------------------------------
    # Audit trail access
    # ----------------------------------------------------------------

    async def get_audit_trail(
        self,
        limit: int = 100,
        severity: EventSeverity | None = None,
        category: EventCategory | None = None,
    ) -> list[LogEntry]:
        """
        Get audit trail entries.

        Args:
            limit: Maximum number of entries to return
            severity: Filter by severity
            category: Filter by category

        Returns:
            List of log entries (most recent last)
        """
        async with self._audit_lock:
            entries = self.audit_trail

            if severity:
                entries = [e for e in entries if e.severity == severity]
            if category:
                entries = [e for e in entries if e.category == category]

            return entries[-limit:]

    async def clear_audit_trail(self) -> int:
        """Clear audit trail. Returns number of entries cleared."""
        async with self._audit_lock:
            count = len(self.audit_trail)
            self.audit_trail.clear()
            return count


# ----------------------------------------------------------------
# Global logger factory
# ----------------------------------------------------------------

_loggers: dict[str, ServiceLogger] = {}
_loggers_lock = threading.Lock()
_default_log_dir: Path | None = None
_default_level: int = logging.DEBUG


def configure_logging(
    log_dir: Path | str | None = None,
    level: int | str = logging.DEBUG,
) -> None:
    """
    Configure global logging settings.

    Affects loggers created after the call.

    Args:
        log_dir: Directory for log files
        level: Minimum level (int or name such as "INFO")
    """
    global _default_log_dir, _default_level

    if log_dir:
        _default_log_dir = Path(log_dir)
        _default_log_dir.mkdir(parents=True, exist_ok=True)

    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
        level = resolved
    _default_level = level


def get_logger(name: str, device: str = "", **kwargs) -> ServiceLogger:
    """
    Get or create a service logger.

    Thread-safe logger factory.

    Args:
        name: Logger name (typically __name__)
        device: Service instance name for context
        **kwargs: Additional ServiceLogger arguments

    Returns:
        ServiceLogger instance
    """
    logger_key = f"{name}:{device}"

    with _loggers_lock:
        if logger_key not in _loggers:
            if "log_dir" not in kwargs and _default_log_dir:
                kwargs["log_dir"] = _default_log_dir
            if "level" not in kwargs:
                kwargs["level"] = _default_level

            _loggers[logger_key] = ServiceLogger(name, device, **kwargs)

        return _loggers[logger_key]
