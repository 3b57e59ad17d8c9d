"""Data models for hostmon."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class Alert(Enum):
    """Threshold breaches a sample can raise."""

    CPU_HIGH = "cpu"
    MEM_HIGH = "mem"


class SortBy(Enum):
    """Metric used to rank processes."""

    CPU = "cpu"
    MEMORY = "mem"


class DaemonState(Enum):
    """Lifecycle states of the monitor daemon."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


def clamp_percent(value: float) -> float:
    """Clamp a percentage into [0, 100]."""
    return max(0.0, min(100.0, float(value)))


@dataclass(slots=True, frozen=True)
class Sample:
    """Point-in-time snapshot of system resource usage."""

    timestamp: datetime
    cpu_percent: float
    memory_percent: float
    load_average: str  # "1m, 5m, 15m", display only
    disk_percent: int

    def summary(self) -> str:
        """Render the one-line summary written to the normal log."""
        return (
            f"CPU: {self.cpu_percent:.1f}%, Memory: {self.memory_percent:.1f}%, "
            f"Load: {self.load_average}, Disk: {self.disk_percent}%"
        )


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable record of a ranked process at breach time."""

    user: str
    pid: int
    cpu_percent: float
    memory_percent: float
    command: str  # Truncated to 50 characters


@dataclass(slots=True, frozen=True)
class DaemonStatus:
    """Result of a status query against the PID file."""

    running: bool
    pid: int | None = None
    stale_removed: bool = False


@dataclass(slots=True, frozen=True)
class LogRecord:
    """A single timestamped line of a monitor log."""

    timestamp: datetime
    message: str

    def format(self) -> str:
        """Serialize as ``[YYYY-MM-DD HH:MM:SS] message`` (no newline)."""
        return f"[{self.timestamp.strftime(TIMESTAMP_FORMAT)}] {self.message}"

    @classmethod
    def parse(cls, line: str) -> "LogRecord | None":
        """
        Parse a formatted log line.

        Returns None for lines without a leading timestamp, such as the
        rows of a process table written to the alert log.
        """
        line = line.rstrip("\n")
        if not line.startswith("[") or "] " not in line:
            return None
        stamp, _, message = line[1:].partition("] ")
        try:
            timestamp = datetime.strptime(stamp, TIMESTAMP_FORMAT)
        except ValueError:
            return None
        return cls(timestamp=timestamp, message=message)
