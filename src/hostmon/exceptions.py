"""Exception types raised by hostmon."""

from typing import Any


class HostmonError(Exception):
    """Base class for all hostmon errors."""


class ConfigError(HostmonError):
    """Raised when a configuration value is invalid."""

    def __init__(self, message: str, field_name: str | None = None, value: Any = None):
        super().__init__(message)
        self.field_name = field_name
        self.value = value


class StartupError(HostmonError):
    """Raised when the daemon cannot acquire its log directory or PID file."""


class AlreadyRunningError(HostmonError):
    """Raised when starting while another instance holds the PID file."""

    def __init__(self, pid: int):
        super().__init__(f"Monitoring service is already running (PID: {pid})")
        self.pid = pid
