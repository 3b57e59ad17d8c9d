"""Resource sampling, threshold evaluation and process ranking for hostmon."""

import logging
import threading
import time
from collections.abc import Iterable
from datetime import datetime
from queue import Queue

import psutil

from hostmon.config import MonitorConfig
from hostmon.models import Alert, ProcessRecord, Sample, SortBy, clamp_percent

logger = logging.getLogger(__name__)

COMMAND_WIDTH = 50
ELLIPSIS = "..."
ZERO_LOAD = "0.00, 0.00, 0.00"


def truncate_command(command: str, width: int = COMMAND_WIDTH) -> str:
    """Cut a command line to ``width`` characters, ending in '...' when cut."""
    if len(command) <= width:
        return command
    return command[: width - len(ELLIPSIS)] + ELLIPSIS


def evaluate(sample: Sample, config: MonitorConfig) -> frozenset[Alert]:
    """Return the alerts raised by a sample (strictly above threshold)."""
    alerts = set()
    if sample.cpu_percent > config.cpu_threshold:
        alerts.add(Alert.CPU_HIGH)
    if sample.memory_percent > config.memory_threshold:
        alerts.add(Alert.MEM_HIGH)
    return frozenset(alerts)


def rank_processes(
    records: Iterable[ProcessRecord], by: SortBy, limit: int
) -> list[ProcessRecord]:
    """Order records by the chosen metric, highest first, keeping input order on ties."""
    key_func = {
        SortBy.CPU: lambda r: r.cpu_percent,
        SortBy.MEMORY: lambda r: r.memory_percent,
    }
    # sorted() is stable, so reverse=True keeps listing order among equals
    return sorted(records, key=key_func[by], reverse=True)[: max(0, limit)]


class MetricsCollector:
    """
    Collects system-wide samples using psutil.

    CPU usage is delta based: psutil.cpu_percent(interval=None) reports the
    busy share of CPU time elapsed since the previous call. The collector
    primes the counter on construction and on prime(), so the next sample
    covers the time since then. If it is sampled immediately the value can
    be 0.0.

    sample() never raises; every failed sub-measurement becomes 0.
    """

    def __init__(self, disk_path: str = "/") -> None:
        self._disk_path = disk_path
        self.prime()

    def prime(self) -> None:
        """Start a new CPU measurement window; the next sample covers it."""
        try:
            psutil.cpu_percent(interval=None)
        except (psutil.Error, OSError) as e:
            logger.debug(f"Could not prime CPU counters: {e}")

    def sample(self) -> Sample:
        """Collect a snapshot of the current system state."""
        return Sample(
            timestamp=datetime.now(),
            cpu_percent=self._cpu_percent(),
            memory_percent=self._memory_percent(),
            load_average=self._load_average(),
            disk_percent=self._disk_percent(),
        )

    def _cpu_percent(self) -> float:
        try:
            return clamp_percent(psutil.cpu_percent(interval=None))
        except (psutil.Error, OSError, ValueError) as e:
            logger.warning(f"CPU usage unavailable: {e}")
            return 0.0

    def _memory_percent(self) -> float:
        try:
            mem = psutil.virtual_memory()
            if not mem.total:
                return 0.0
            return clamp_percent(mem.used / mem.total * 100.0)
        except (psutil.Error, OSError, ValueError) as e:
            logger.warning(f"Memory usage unavailable: {e}")
            return 0.0

    def _load_average(self) -> str:
        try:
            return ", ".join(f"{value:.2f}" for value in psutil.getloadavg())
        except (psutil.Error, OSError, AttributeError) as e:
            logger.debug(f"Load average unavailable: {e}")
            return ZERO_LOAD

    def _disk_percent(self) -> int:
        try:
            usage = psutil.disk_usage(self._disk_path)
            return int(round(clamp_percent(usage.percent)))
        except (psutil.Error, OSError, ValueError) as e:
            logger.warning(f"Disk usage of {self._disk_path} unavailable: {e}")
            return 0


class ProcessRanker:
    """
    Snapshots running processes and ranks them by CPU or memory share.

    CPU share follows ``ps aux``: total CPU time divided by the process's
    wall-clock lifetime, so no priming interval is needed at breach time.
    Handles NoSuchProcess, AccessDenied and ZombieProcess by skipping.
    """

    ATTRS = ["pid", "name", "username", "cpu_times", "create_time", "memory_percent", "cmdline"]

    def rank(self, by: SortBy, limit: int) -> list[ProcessRecord]:
        """Return the top ``limit`` processes by the chosen metric."""
        return rank_processes(self.snapshot(), by, limit)

    def snapshot(self) -> list[ProcessRecord]:
        """Collect a record for every process that can be read."""
        records: list[ProcessRecord] = []
        now = time.time()

        for proc in psutil.process_iter(attrs=self.ATTRS):
            try:
                records.append(self._to_record(proc.info, now))
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                # Process died mid-poll or is unreadable
                continue

        return records

    @staticmethod
    def _to_record(info: dict, now: float) -> ProcessRecord:
        cmdline = info.get("cmdline") or []
        name = info.get("name") or ""
        command = " ".join(cmdline) if cmdline else f"[{name}]"

        cpu_percent = 0.0
        cpu_times = info.get("cpu_times")
        create_time = info.get("create_time")
        if cpu_times is not None and create_time:
            elapsed = now - create_time
            if elapsed > 0:
                cpu_percent = (cpu_times.user + cpu_times.system) / elapsed * 100.0

        return ProcessRecord(
            user=info.get("username") or "?",
            pid=info.get("pid", 0),
            cpu_percent=round(max(0.0, cpu_percent), 1),
            memory_percent=round(info.get("memory_percent") or 0.0, 1),
            command=truncate_command(command),
        )


class SampleStream:
    """
    Background sampler feeding the live dashboard.

    Runs in a separate daemon thread and pushes (Sample, top processes)
    updates to a thread-safe Queue.
    """

    def __init__(
        self,
        update_queue: "Queue[tuple[Sample, list[ProcessRecord]]]",
        poll_rate: float = 2.0,
        top_n: int = 10,
        collector: MetricsCollector | None = None,
        ranker: ProcessRanker | None = None,
    ) -> None:
        """
        Initialize the SampleStream.

        Args:
            update_queue: Thread-safe queue to push updates to.
            poll_rate: How often to poll the system (in seconds). Default 2.0s.
            top_n: Number of processes included with each update.
        """
        self._queue = update_queue
        self._poll_rate = poll_rate
        self._top_n = top_n
        self._collector = collector or MetricsCollector()
        self._ranker = ranker or ProcessRanker()
        self._sort_by = SortBy.CPU
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def sort_by(self) -> SortBy:
        return self._sort_by

    @sort_by.setter
    def sort_by(self, value: SortBy) -> None:
        self._sort_by = value

    @property
    def is_running(self) -> bool:
        """Check if the sampling thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the sampling thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="SampleStream",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the sampling thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                sample = self._collector.sample()
                processes = self._ranker.rank(self._sort_by, self._top_n)
                self._queue.put((sample, processes))
            except Exception:
                logger.exception("Dashboard sampling failed")

            # Wait for poll_rate seconds or until stop is requested
            self._stop_event.wait(timeout=self._poll_rate)
