"""
Append-only monitor logs with size-based rotation.

Every record is written with a single write() of a newline-terminated
string, so a concurrent ``tail -f`` never observes a partial line. Before
each write the active file is checked against the size cap; an oversized
file is renamed to ``<file>.<YYYYMMDD_HHMMSS>``, a fresh file is started
and the backup is gzipped in a background thread.
"""

import gzip
import logging
import os
import shutil
import threading
from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from hostmon.config import ALERT_LOG_BASE, NORMAL_LOG_BASE
from hostmon.models import LogRecord, ProcessRecord

logger = logging.getLogger(__name__)

BACKUP_SUFFIX_FORMAT = "%Y%m%d_%H%M%S"
TABLE_HEADER = "USER       PID    CPU%   MEM%   COMMAND"
TABLE_RULE = "-" * 40


def format_process_table(records: Sequence[ProcessRecord]) -> list[str]:
    """Render ranked processes as the fixed-width table used in alert logs."""
    lines = [TABLE_HEADER, TABLE_RULE]
    for rec in records:
        lines.append(
            f"{rec.user[:10]:<10} {rec.pid:>6} {rec.cpu_percent:>6.1f}% "
            f"{rec.memory_percent:>6.1f}% {rec.command}"
        )
    return lines


class LogWriter:
    """Writes timestamped records and rotates files past ``max_bytes``."""

    def __init__(self, max_bytes: int, compress: bool = True) -> None:
        self._max_bytes = max_bytes
        self._compress = compress
        self._compressors: list[threading.Thread] = []

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def append(self, path: Path, message: str, now: datetime | None = None) -> bool:
        """
        Append one ``[timestamp] message`` record.

        Returns False if the record could not be written; the failure is
        logged and never raised.
        """
        record = LogRecord(timestamp=now or datetime.now(), message=message)
        return self._write(path, record.format() + "\n")

    def append_block(self, path: Path, lines: Iterable[str]) -> bool:
        """Append untimestamped lines (such as a process table) in one write."""
        text = "".join(f"{line}\n" for line in lines)
        if not text:
            return True
        return self._write(path, text)

    def _write(self, path: Path, text: str) -> bool:
        self.rotate_if_needed(path)
        try:
            with open(path, "a", encoding="utf-8") as f:
                f.write(text)
            return True
        except OSError as e:
            logger.warning(f"Failed to write to {path}: {e}")
            return False

    def rotate_if_needed(self, path: Path) -> Path | None:
        """
        Rotate ``path`` if it is larger than the size cap.

        Returns the backup path, or None when no rotation happened.
        """
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Cannot stat {path}: {e}")
            return None

        if size <= self._max_bytes:
            return None

        backup = _backup_path(path, datetime.now())
        try:
            path.rename(backup)
            path.touch()
        except OSError as e:
            logger.warning(f"Failed to rotate {path}: {e}")
            return None

        logger.info(f"Log file rotated: {backup}")
        if self._compress:
            self._start_compression(backup)
        return backup

    def _start_compression(self, backup: Path) -> None:
        self._compressors = [t for t in self._compressors if t.is_alive()]
        thread = threading.Thread(
            target=compress_file,
            args=(backup,),
            daemon=True,
            name=f"compress-{backup.name}",
        )
        self._compressors.append(thread)
        thread.start()

    def wait_for_compression(self, timeout: float | None = None) -> None:
        """Block until pending background compressions finish."""
        for thread in self._compressors:
            thread.join(timeout=timeout)
        self._compressors = [t for t in self._compressors if t.is_alive()]


def _backup_path(path: Path, now: datetime) -> Path:
    backup = path.with_name(f"{path.name}.{now.strftime(BACKUP_SUFFIX_FORMAT)}")
    counter = 1
    while backup.exists() or Path(f"{backup}.gz").exists():
        backup = path.with_name(f"{path.name}.{now.strftime(BACKUP_SUFFIX_FORMAT)}.{counter}")
        counter += 1
    return backup


def compress_file(path: Path) -> Path | None:
    """Gzip ``path`` to ``<path>.gz`` and delete the original. Never raises."""
    target = Path(f"{path}.gz")
    try:
        with open(path, "rb") as src, gzip.open(target, "wb") as dst:
            shutil.copyfileobj(src, dst)
        path.unlink()
    except OSError as e:
        logger.warning(f"Failed to compress {path}: {e}")
        try:
            target.unlink(missing_ok=True)
        except OSError:
            pass
        return None
    logger.info(f"Log file compressed: {target}")
    return target


def tail(path: Path, lines: int) -> list[str]:
    """Return the last ``lines`` lines of a file without trailing newlines."""
    with open(path, encoding="utf-8", errors="replace") as f:
        return [line.rstrip("\n") for line in deque(f, maxlen=lines)]


@dataclass(slots=True)
class LogInventory:
    """Monitor log files found in a log directory, grouped by kind."""

    normal: list[Path] = field(default_factory=list)
    alert: list[Path] = field(default_factory=list)
    backups: list[Path] = field(default_factory=list)


def list_log_files(log_dir: Path) -> LogInventory:
    """Group the monitor logs in ``log_dir`` into normal, alert and backup files."""
    inventory = LogInventory()
    if not log_dir.is_dir():
        return inventory

    for entry in sorted(log_dir.iterdir()):
        name = entry.name
        if not entry.is_file() or not name.startswith(NORMAL_LOG_BASE):
            continue
        if ".log." in name:
            inventory.backups.append(entry)
        elif not name.endswith(".log"):
            continue
        elif name.startswith(ALERT_LOG_BASE):
            inventory.alert.append(entry)
        else:
            inventory.normal.append(entry)
    return inventory


def human_size(size: int) -> str:
    """Format bytes as a short human-readable string."""
    value = float(size)
    for unit in ["B", "K", "M", "G", "T"]:
        if value < 1024:
            return f"{int(value)}{unit}" if unit == "B" else f"{value:.1f}{unit}"
        value /= 1024
    return f"{value:.1f}P"


def file_size(path: Path) -> int:
    try:
        return os.path.getsize(path)
    except OSError:
        return 0
