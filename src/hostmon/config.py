"""Configuration for the hostmon daemon."""

import logging
import math
import os
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping

from hostmon.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = Path.home() / ".hostmon" / "runtime"

NORMAL_LOG_BASE = "monitor"
ALERT_LOG_BASE = "monitor_alert"
PID_FILE_NAME = "monitor.pid"

# Environment variable -> MonitorConfig field
ENV_VARS = {
    "HOSTMON_LOG_DIR": "log_dir",
    "HOSTMON_INTERVAL": "interval_seconds",
    "HOSTMON_CPU_THRESHOLD": "cpu_threshold",
    "HOSTMON_MEMORY_THRESHOLD": "memory_threshold",
    "HOSTMON_TOP_N": "top_n",
    "HOSTMON_LOG_MAX_BYTES": "log_max_bytes",
    "HOSTMON_MONTHLY_LOGS": "monthly_logs",
}

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(slots=True, frozen=True)
class MonitorConfig:
    """
    Process-wide monitor settings, fixed for the lifetime of a daemon.

    Thresholds are percentages; a breach is a value strictly greater than
    the threshold.
    """

    interval_seconds: float = 30.0
    cpu_threshold: float = 80.0
    memory_threshold: float = 80.0
    top_n: int = 10
    log_max_bytes: int = 10 * 1024 * 1024
    log_dir: Path = field(default_factory=lambda: DEFAULT_LOG_DIR)
    monthly_logs: bool = True
    compress_backups: bool = True
    disk_path: str = "/"
    stop_grace_seconds: float = 2.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "log_dir", Path(self.log_dir).expanduser())
        self.validate()

    def validate(self) -> None:
        """Raise ConfigError if any value is out of range."""
        if not (math.isfinite(self.interval_seconds) and self.interval_seconds > 0):
            raise ConfigError(
                f"interval must be a positive number, got {self.interval_seconds}",
                "interval_seconds",
                self.interval_seconds,
            )
        for name in ("cpu_threshold", "memory_threshold"):
            value = getattr(self, name)
            if not (math.isfinite(value) and 0 <= value <= 100):
                raise ConfigError(f"{name} must be within 0-100, got {value}", name, value)
        if self.top_n < 1:
            raise ConfigError(f"top_n must be at least 1, got {self.top_n}", "top_n", self.top_n)
        if self.log_max_bytes < 1:
            raise ConfigError(
                f"log_max_bytes must be at least 1, got {self.log_max_bytes}",
                "log_max_bytes",
                self.log_max_bytes,
            )
        if not (math.isfinite(self.stop_grace_seconds) and self.stop_grace_seconds >= 0):
            raise ConfigError(
                "stop_grace_seconds must be a non-negative number",
                "stop_grace_seconds",
                self.stop_grace_seconds,
            )

    @property
    def paths(self) -> "LogPaths":
        """Filesystem layout derived from this configuration."""
        return LogPaths(self.log_dir, monthly=self.monthly_logs)

    def with_overrides(self, **overrides: Any) -> "MonitorConfig":
        """Return a copy with the non-None overrides applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes) if changes else self

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "MonitorConfig":
        """Build a config from defaults overridden by HOSTMON_* variables."""
        environ = os.environ if environ is None else environ
        types = {f.name: f.type for f in fields(cls)}
        values: dict[str, Any] = {}
        for var, name in ENV_VARS.items():
            raw = environ.get(var)
            if raw is None or raw.strip() == "":
                continue
            values[name] = _coerce(var, raw.strip(), types[name])
            logger.debug(f"Config {name}={values[name]!r} from {var}")
        return cls(**values)


def _coerce(var: str, raw: str, field_type: Any) -> Any:
    try:
        if field_type is bool:
            lowered = raw.lower()
            if lowered in _TRUE_VALUES:
                return True
            if lowered in _FALSE_VALUES:
                return False
            raise ValueError(raw)
        if field_type in (int, float):
            return field_type(raw)
    except ValueError as e:
        raise ConfigError(f"Invalid value for {var}: {raw!r}", var, raw) from e
    return Path(raw) if field_type is Path else raw


@dataclass(slots=True, frozen=True)
class LogPaths:
    """
    Locations of the PID file and the active log files.

    With monthly naming the active log names embed the current year and
    month (``monitor_202610.log``), so they are recomputed on every access.
    """

    log_dir: Path
    monthly: bool = True

    @property
    def pid_file(self) -> Path:
        return self.log_dir / PID_FILE_NAME

    def log_file(self, base_name: str, now: datetime | None = None) -> Path:
        if not self.monthly:
            return self.log_dir / f"{base_name}.log"
        now = now or datetime.now()
        return self.log_dir / f"{base_name}_{now:%Y%m}.log"

    def normal_log(self, now: datetime | None = None) -> Path:
        return self.log_file(NORMAL_LOG_BASE, now)

    def alert_log(self, now: datetime | None = None) -> Path:
        return self.log_file(ALERT_LOG_BASE, now)
