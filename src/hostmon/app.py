"""hostmon - Live Textual dashboard."""

from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import DataTable, Footer, Static

from hostmon.config import MonitorConfig
from hostmon.logwriter import tail
from hostmon.models import ProcessRecord, Sample, SortBy
from hostmon.monitor import SampleStream

ALERT_PREVIEW_LINES = 8


def usage_bar(percent: float, threshold: float | None = None, width: int = 20) -> str:
    """Render a percentage as a Textual markup bar, red above ``threshold``."""
    filled = min(int(percent / (100 / width)), width)
    color = "red" if threshold is not None and percent > threshold else "green"
    # Escaped brackets for the bar container
    return f"\\[[{color}]{'█' * filled}[/{color}][dim]{'░' * (width - filled)}[/dim]]"


class HeaderStats(Static):
    """Header widget showing the latest sample against the thresholds."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, config: MonitorConfig, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._monitor_config = config
        self._sample: Sample | None = None

    @property
    def sample(self) -> Sample | None:
        return self._sample

    def compose(self) -> ComposeResult:
        yield Horizontal(
            Static(self._get_usage_info(), id="usage-info"),
            Static(self._get_system_info(), id="system-info"),
        )

    def update_sample(self, sample: Sample) -> None:
        """Show a new sample."""
        self._sample = sample
        try:
            self.query_one("#usage-info", Static).update(self._get_usage_info())
            self.query_one("#system-info", Static).update(self._get_system_info())
        except Exception:
            pass  # Widget not mounted yet

    def _get_usage_info(self) -> str:
        if self._sample is None:
            return "Waiting for first sample..."
        s = self._sample
        cfg = self._monitor_config
        return (
            f"CPU {usage_bar(s.cpu_percent, cfg.cpu_threshold)} {s.cpu_percent:5.1f}%\n"
            f"Mem {usage_bar(s.memory_percent, cfg.memory_threshold)} {s.memory_percent:5.1f}%\n"
            f"Dsk {usage_bar(s.disk_percent)} {s.disk_percent:5d}%"
        )

    def _get_system_info(self) -> str:
        if self._sample is None:
            return ""
        cfg = self._monitor_config
        return (
            f"Load average: {self._sample.load_average}\n"
            f"Thresholds: CPU {cfg.cpu_threshold:g}%  Mem {cfg.memory_threshold:g}%\n"
            f"Updated: {self._sample.timestamp:%H:%M:%S}"
        )


class ProcessTable(Container):
    """Container for the top process table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._sort_by = SortBy.CPU

    @property
    def sort_by(self) -> SortBy:
        return self._sort_by

    def cycle_sort(self) -> SortBy:
        """Switch between CPU and memory ordering and return the new key."""
        keys = list(SortBy)
        self._sort_by = keys[(keys.index(self._sort_by) + 1) % len(keys)]
        return self._sort_by

    def compose(self) -> ComposeResult:
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"
        table.add_column("USER", key="user", width=10)
        table.add_column("PID", key="pid", width=8)
        table.add_column("CPU%", key="cpu", width=8)
        table.add_column("MEM%", key="mem", width=8)
        table.add_column("Command", key="command")

    def update_processes(self, processes: list[ProcessRecord]) -> None:
        """Replace the table rows with the ranked processes."""
        table = self.query_one("#process-table", DataTable)
        table.clear()
        for proc in processes:
            table.add_row(
                proc.user[:10],
                str(proc.pid),
                f"{proc.cpu_percent:5.1f}",
                f"{proc.memory_percent:5.1f}",
                proc.command,
                key=str(proc.pid),
            )


class AlertPanel(Static):
    """Tail of the current alert log."""

    DEFAULT_CSS = """
    AlertPanel {
        height: auto;
        max-height: 12;
        border: solid $error;
        padding: 0 1;
    }
    """

    def __init__(self, config: MonitorConfig, *args, **kwargs) -> None:
        super().__init__("", *args, markup=False, **kwargs)
        self._monitor_config = config

    def refresh_alerts(self) -> list[str]:
        path = self._monitor_config.paths.alert_log()
        try:
            lines = tail(path, ALERT_PREVIEW_LINES)
        except OSError:
            lines = []
        self.update("\n".join(lines) if lines else "No alerts recorded")
        return lines


class HostmonApp(App):
    """Live view of the sampled metrics, top processes and recent alerts."""

    TITLE = "hostmon"
    SUB_TITLE = "Host Resource Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 6;
    }

    Horizontal {
        height: auto;
    }

    #usage-info {
        width: 1fr;
        padding-right: 2;
    }

    #system-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
    ]

    def __init__(self, config: MonitorConfig | None = None) -> None:
        super().__init__()
        self._monitor_config = config or MonitorConfig()
        self._update_queue: Queue[tuple[Sample, list[ProcessRecord]]] = Queue()
        self._stream = SampleStream(
            self._update_queue, poll_rate=2.0, top_n=self._monitor_config.top_n
        )

    def compose(self) -> ComposeResult:
        yield HeaderStats(self._monitor_config, id="header-stats")
        yield ProcessTable()
        yield AlertPanel(self._monitor_config, id="alert-panel")
        yield Footer()

    def on_mount(self) -> None:
        """Start sampling when the app is mounted."""
        self._stream.start()
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the queue and show the most recent update."""
        update = None
        while True:
            try:
                update = self._update_queue.get_nowait()
            except Empty:
                break

        if update is not None:
            self.show_update(*update)

    def show_update(self, sample: Sample, processes: list[ProcessRecord]) -> None:
        """Push a sample and its process ranking into the widgets."""
        self.query_one("#header-stats", HeaderStats).update_sample(sample)
        self.query_one(ProcessTable).update_processes(processes)
        self.query_one("#alert-panel", AlertPanel).refresh_alerts()

    def action_sort(self) -> None:
        """Toggle process ordering between CPU and memory."""
        sort_by = self.query_one(ProcessTable).cycle_sort()
        self._stream.sort_by = sort_by
        self.notify(f"Sort: {sort_by.value.upper()}")

    def action_quit(self) -> None:
        """Stop sampling and exit."""
        self._stream.stop()
        self.exit()
