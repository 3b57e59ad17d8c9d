"""
Lifecycle control for the monitor daemon.

The PID file is the ownership token for the Running state: a PID file that
names a live process means the daemon is running; a missing file or a dead
PID means it is stopped, and such a stale file is removed whenever it is
noticed.
"""

import logging
import os
import signal
import threading
from pathlib import Path
from typing import Any

import psutil
from rich.console import Console
from rich.markup import escape

from hostmon.config import LogPaths, MonitorConfig
from hostmon.exceptions import AlreadyRunningError, StartupError
from hostmon.logwriter import LogWriter, format_process_table
from hostmon.models import (
    TIMESTAMP_FORMAT,
    Alert,
    DaemonState,
    DaemonStatus,
    Sample,
    SortBy,
)
from hostmon.monitor import MetricsCollector, ProcessRanker, evaluate

logger = logging.getLogger(__name__)

ALERT_SEPARATOR = "-" * 40
CPU_WARMUP_SECONDS = 1.0

_ALERT_LABELS = {
    Alert.CPU_HIGH: ("CPU", "CPU", SortBy.CPU),
    Alert.MEM_HIGH: ("MEMORY", "memory", SortBy.MEMORY),
}


def is_alive(pid: int) -> bool:
    """Check whether ``pid`` names a running, non-zombie process."""
    if pid <= 0:
        return False
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except (psutil.NoSuchProcess, psutil.ZombieProcess):
        return False
    except psutil.AccessDenied:
        # Exists but belongs to another user
        return True


class PidFile:
    """Reads, writes and removes the daemon's PID file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def read(self) -> int | None:
        """Return the recorded PID, or None if the file is absent or unreadable."""
        try:
            return int(self.path.read_text().strip())
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable PID file {self.path}: {e}")
            return None

    def write(self, pid: int) -> None:
        self.path.write_text(f"{pid}\n")
        logger.debug(f"PID file written: {self.path} ({pid})")

    def remove(self) -> bool:
        """Delete the PID file. Returns True if a file was removed."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Failed to remove PID file {self.path}: {e}")
            return False
        logger.debug(f"PID file removed: {self.path}")
        return True

    def live_pid(self) -> int | None:
        """Return the recorded PID if that process is alive."""
        pid = self.read()
        if pid is not None and pid != os.getpid() and is_alive(pid):
            return pid
        return None


def daemon_status(paths: LogPaths) -> DaemonStatus:
    """Report whether the daemon is running, cleaning a stale PID file."""
    pid_file = PidFile(paths.pid_file)
    pid = pid_file.live_pid()
    if pid is not None:
        return DaemonStatus(running=True, pid=pid)
    stale_pid = pid_file.read()
    removed = pid_file.remove()
    if removed:
        logger.info(f"Removed stale PID file (PID: {stale_pid})")
    return DaemonStatus(running=False, pid=stale_pid, stale_removed=removed)


def stop_daemon(paths: LogPaths, grace_seconds: float = 2.0) -> DaemonStatus:
    """
    Stop the running daemon.

    Sends SIGTERM, waits up to ``grace_seconds`` and escalates to SIGKILL.
    Returns the status observed before stopping; ``running`` is False when
    there was nothing to stop.
    """
    pid_file = PidFile(paths.pid_file)
    pid = pid_file.live_pid()
    if pid is None:
        stale_pid = pid_file.read()
        return DaemonStatus(running=False, pid=stale_pid, stale_removed=pid_file.remove())

    try:
        proc = psutil.Process(pid)
        logger.info(f"Sending SIGTERM to monitor (PID: {pid})")
        proc.terminate()
        try:
            proc.wait(timeout=grace_seconds)
        except psutil.TimeoutExpired:
            logger.warning(f"Monitor (PID: {pid}) ignored SIGTERM, sending SIGKILL")
            proc.kill()
            proc.wait(timeout=grace_seconds)
    except psutil.NoSuchProcess:
        pass
    except psutil.AccessDenied:
        # The PID was reused by a process this user may not signal
        logger.warning(f"Not permitted to signal PID {pid}, treating the PID file as stale")
        return DaemonStatus(running=False, pid=pid, stale_removed=pid_file.remove())
    except psutil.TimeoutExpired:
        logger.error(f"Monitor (PID: {pid}) still alive after SIGKILL")

    pid_file.remove()
    return DaemonStatus(running=True, pid=pid)


class MonitorDaemon:
    """
    Foreground sampling loop with PID-file ownership and signal handling.

    Each tick samples the system, appends a summary to the normal log and,
    for every breached threshold, appends the top processes to the alert
    log. SIGINT and SIGTERM set a shutdown flag that is checked between
    ticks and also cuts the interval wait short.
    """

    def __init__(
        self,
        config: MonitorConfig,
        collector: MetricsCollector | None = None,
        ranker: ProcessRanker | None = None,
        writer: LogWriter | None = None,
        console: Console | None = None,
    ) -> None:
        self.config = config
        self.paths = config.paths
        self._collector = collector or MetricsCollector(disk_path=config.disk_path)
        self._ranker = ranker or ProcessRanker()
        self._writer = writer or LogWriter(
            config.log_max_bytes, compress=config.compress_backups
        )
        self._console = console
        self._pid_file = PidFile(self.paths.pid_file)
        self._shutdown = threading.Event()
        self._original_handlers: dict[int, Any] = {}
        self._received_signal: int | None = None
        self.state = DaemonState.STOPPED

    @property
    def writer(self) -> LogWriter:
        return self._writer

    def request_stop(self) -> None:
        """Ask the loop to finish after the current tick."""
        self._shutdown.set()

    def start(self, install_signals: bool = True) -> None:
        """
        Acquire the PID file and run until a stop is requested.

        Raises:
            AlreadyRunningError: Another live process owns the PID file.
            StartupError: The log directory or PID file cannot be written.
        """
        self.state = DaemonState.STARTING
        try:
            self._acquire()
        except Exception:
            self.state = DaemonState.STOPPED
            raise

        if install_signals:
            self._install_signal_handlers()
        try:
            self.state = DaemonState.RUNNING
            self._announce_start()
            self._run_loop()
        finally:
            self._shutdown_cleanup()

    def _acquire(self) -> None:
        try:
            self.paths.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StartupError(f"Cannot create log directory {self.paths.log_dir}: {e}") from e

        pid = self._pid_file.live_pid()
        if pid is not None:
            raise AlreadyRunningError(pid)
        if self._pid_file.remove():
            logger.info("Removed stale PID file")

        try:
            self._pid_file.write(os.getpid())
        except OSError as e:
            raise StartupError(f"Cannot write PID file {self._pid_file.path}: {e}") from e

    def _announce_start(self) -> None:
        cfg = self.config
        logger.info(
            f"Starting system monitoring (interval: {cfg.interval_seconds:g}s, "
            f"CPU threshold: {cfg.cpu_threshold:g}%, "
            f"memory threshold: {cfg.memory_threshold:g}%)"
        )
        self._writer.append(
            self.paths.normal_log(),
            f"Monitoring started - Config: interval {cfg.interval_seconds:g}s, "
            f"CPU threshold {cfg.cpu_threshold:g}%, "
            f"memory threshold {cfg.memory_threshold:g}%",
        )

    def _run_loop(self) -> None:
        # The first CPU reading needs a real measurement window
        self._collector.prime()
        self._shutdown.wait(timeout=min(self.config.interval_seconds, CPU_WARMUP_SECONDS))
        while not self._shutdown.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Monitoring tick failed")
            self._shutdown.wait(timeout=self.config.interval_seconds)

    def tick(self) -> frozenset[Alert]:
        """Run one sample-evaluate-record cycle and return the raised alerts."""
        sample = self._collector.sample()
        summary = sample.summary()
        self._writer.append(self.paths.normal_log(), summary)

        alerts = evaluate(sample, self.config)
        for alert in Alert:
            if alert in alerts:
                self._record_alert(alert, sample)

        self._echo(sample, summary, alerts)
        return alerts

    def _record_alert(self, alert: Alert, sample: Sample) -> None:
        label, noun, sort_by = _ALERT_LABELS[alert]
        if alert is Alert.CPU_HIGH:
            value, threshold = sample.cpu_percent, self.config.cpu_threshold
        else:
            value, threshold = sample.memory_percent, self.config.memory_threshold

        alert_log = self.paths.alert_log()
        self._writer.append(
            alert_log, f"🚨 HIGH {label} USAGE: {value:.1f}% (threshold: {threshold:g}%)"
        )
        self._writer.append(alert_log, f"Top {noun} consuming processes:")
        try:
            processes = self._ranker.rank(sort_by, self.config.top_n)
        except (psutil.Error, OSError) as e:
            logger.warning(f"Could not list processes: {e}")
            processes = []
        self._writer.append_block(alert_log, format_process_table(processes))
        self._writer.append(alert_log, ALERT_SEPARATOR)

    def _echo(self, sample: Sample, summary: str, alerts: frozenset[Alert]) -> None:
        if self._console is None:
            return
        stamp = sample.timestamp.strftime(TIMESTAMP_FORMAT)
        if alerts:
            line = f"[{stamp}] ⚠️  High resource usage detected: {summary}"
            self._console.print(f"[red]{escape(line)}[/red]")
        else:
            line = f"[{stamp}] ✅ {summary}"
            self._console.print(f"[green]{escape(line)}[/green]")

    def _install_signal_handlers(self) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                self._original_handlers[sig] = signal.signal(sig, self._handle_signal)
            except (ValueError, OSError) as e:
                logger.warning(f"Failed to set up handler for {sig!r}: {e}")
        logger.debug("Signal handlers installed")

    def _restore_signal_handlers(self) -> None:
        for sig, handler in self._original_handlers.items():
            try:
                signal.signal(sig, handler)
            except (ValueError, OSError) as e:
                logger.warning(f"Failed to restore handler for {sig!r}: {e}")
        self._original_handlers.clear()

    def _handle_signal(self, signum: int, frame: Any) -> None:
        # Only flag the shutdown here; logging is not reentrant
        self._received_signal = signum
        self._shutdown.set()

    def _shutdown_cleanup(self) -> None:
        self.state = DaemonState.STOPPING
        if self._received_signal is not None:
            name = signal.Signals(self._received_signal).name
            logger.info(f"Received {name}, exiting monitoring...")
        self._writer.append(self.paths.normal_log(), "Monitoring stopped")
        if self._pid_file.read() == os.getpid():
            self._pid_file.remove()
        self._restore_signal_handlers()
        self._writer.wait_for_compression(timeout=5.0)
        self.state = DaemonState.STOPPED
        logger.info("Monitoring stopped")
