"""
Command-line interface for hostmon.

A single entry point dispatching on a subcommand: ``start`` (default) runs
the monitor in the foreground, ``stop`` and ``status`` act on the PID file,
``logs``, ``alerts`` and ``list-logs`` read the log directory, and
``watch`` opens the live dashboard.
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from hostmon.config import MonitorConfig
from hostmon.daemon import MonitorDaemon, daemon_status, stop_daemon
from hostmon.exceptions import AlreadyRunningError, ConfigError, StartupError
from hostmon.logwriter import file_size, human_size, list_log_files, tail

logger = logging.getLogger(__name__)

COMMANDS = ("start", "stop", "status", "logs", "alerts", "list-logs", "watch")
LOG_TAIL_LINES = 20
ALERT_TAIL_LINES = 50


def setup_logging(verbosity: int) -> None:
    """Configure diagnostic logging on stderr."""
    level = {-1: logging.WARNING, 0: logging.INFO}.get(verbosity, logging.DEBUG)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def _describe_config(config: MonitorConfig) -> str:
    return (
        "Configuration:\n"
        f"  Monitoring interval: {config.interval_seconds:g} seconds\n"
        f"  CPU alert threshold: {config.cpu_threshold:g}%\n"
        f"  Memory alert threshold: {config.memory_threshold:g}%\n"
        f"  Processes recorded per alert: {config.top_n}\n"
        f"  Log rotation size: {human_size(config.log_max_bytes)}\n"
        f"  Log directory: {config.log_dir}\n"
        "\n"
        "Examples:\n"
        "  hostmon start              # Start monitoring in foreground\n"
        "  nohup hostmon start &      # Start monitoring in background\n"
        "  hostmon stop               # Stop monitoring\n"
        "  hostmon logs               # View monitoring logs"
    )


def build_parser(config: MonitorConfig) -> argparse.ArgumentParser:
    """Build the argument parser; the help text shows ``config``."""
    parser = argparse.ArgumentParser(
        prog="hostmon",
        description="System resource monitor: logs CPU/memory usage and records "
        "the top processes when a threshold is exceeded.",
        epilog=_describe_config(config),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="start",
        choices=COMMANDS,
        help="start (default), stop, status, logs, alerts, list-logs or watch",
    )
    parser.add_argument("--log-dir", type=Path, help="Directory for logs and the PID file")
    parser.add_argument("--interval", type=float, help="Sampling interval in seconds")
    parser.add_argument("--cpu-threshold", type=float, help="CPU alert threshold (%%)")
    parser.add_argument("--memory-threshold", type=float, help="Memory alert threshold (%%)")
    parser.add_argument("--top-n", type=int, help="Processes recorded per alert")
    parser.add_argument("--log-max-bytes", type=int, help="Rotate logs larger than this")
    parser.add_argument(
        "--single-log",
        action="store_true",
        help="Use monitor.log instead of monthly monitor_YYYYMM.log files",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log warnings")
    return parser


def _apply_args(config: MonitorConfig, args: argparse.Namespace) -> MonitorConfig:
    return config.with_overrides(
        log_dir=args.log_dir,
        interval_seconds=args.interval,
        cpu_threshold=args.cpu_threshold,
        memory_threshold=args.memory_threshold,
        top_n=args.top_n,
        log_max_bytes=args.log_max_bytes,
        monthly_logs=False if args.single_log else None,
    )


def cmd_start(config: MonitorConfig, console: Console) -> int:
    daemon = MonitorDaemon(config, console=console)
    try:
        daemon.start()
    except AlreadyRunningError as e:
        console.print(f"[yellow]{escape(str(e))}[/yellow]")
        console.print("Use 'hostmon stop' to stop the existing instance")
        return 1
    except StartupError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        return 1
    return 0


def cmd_stop(config: MonitorConfig, console: Console) -> int:
    status = stop_daemon(config.paths, grace_seconds=config.stop_grace_seconds)
    if status.running:
        console.print("[green]Monitoring service stopped[/green]")
    elif status.stale_removed:
        console.print("[yellow]PID file exists but process is not running[/yellow]")
    else:
        console.print("[yellow]Monitoring service is not running[/yellow]")
    return 0


def cmd_status(config: MonitorConfig, console: Console) -> int:
    status = daemon_status(config.paths)
    if status.running:
        console.print(f"[green]Monitoring service is running (PID: {status.pid})[/green]")
    elif status.stale_removed:
        console.print("[yellow]PID file exists but process is not running[/yellow]")
    else:
        console.print("[yellow]Monitoring service is not running[/yellow]")
    return 0


def _show_tail(console: Console, path: Path, title: str, color: str, lines: int) -> int:
    if not path.is_file():
        console.print(f"[yellow]{title} log file does not exist: {escape(path.name)}[/yellow]")
        return 0
    try:
        content = tail(path, lines)
    except OSError as e:
        console.print(f"[red]Cannot read {escape(str(path))}: {escape(str(e))}[/red]")
        return 1
    header = f"=== {title} Log (Last {lines} lines) - {path.name} ==="
    console.print(f"[{color}]{escape(header)}[/{color}]")
    for line in content:
        console.print(line, markup=False)
    return 0


def cmd_logs(config: MonitorConfig, console: Console) -> int:
    return _show_tail(
        console, config.paths.normal_log(), "Normal Monitoring", "blue", LOG_TAIL_LINES
    )


def cmd_alerts(config: MonitorConfig, console: Console) -> int:
    return _show_tail(console, config.paths.alert_log(), "Alert", "red", ALERT_TAIL_LINES)


def _print_files(console: Console, files: list[Path], empty: str) -> None:
    if not files:
        console.print(f"  {empty}")
        return
    for path in files:
        try:
            modified = datetime.fromtimestamp(path.stat().st_mtime).strftime("%Y-%m-%d %H:%M")
        except OSError:
            modified = "?"
        console.print(f"  {human_size(file_size(path)):>7}  {modified}  {path}", markup=False)


def cmd_list_logs(config: MonitorConfig, console: Console) -> int:
    inventory = list_log_files(config.log_dir)
    console.print("[blue]=== All Monitoring Log Files ===[/blue]")
    console.print()
    console.print("[green]Normal Monitoring Logs:[/green]")
    _print_files(console, inventory.normal, "No normal monitoring log files")
    console.print()
    console.print("[red]Alert Logs:[/red]")
    _print_files(console, inventory.alert, "No alert log files")
    console.print()
    console.print("[yellow]Backup Files:[/yellow]")
    _print_files(console, inventory.backups, "No backup files")
    return 0


def cmd_watch(config: MonitorConfig, console: Console) -> int:
    from hostmon.app import HostmonApp

    HostmonApp(config).run()
    return 0


HANDLERS = {
    "start": cmd_start,
    "stop": cmd_stop,
    "status": cmd_status,
    "logs": cmd_logs,
    "alerts": cmd_alerts,
    "list-logs": cmd_list_logs,
    "watch": cmd_watch,
}


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, run the chosen command and return its exit code."""
    console = Console(soft_wrap=True, highlight=False, emoji=False)
    try:
        config = MonitorConfig.from_env()
    except ConfigError as e:
        console.print(f"[red]Invalid configuration: {escape(str(e))}[/red]")
        return 2

    parser = build_parser(config)
    args = parser.parse_args(argv)
    setup_logging(-1 if args.quiet else int(args.verbose))

    try:
        config = _apply_args(config, args)
    except ConfigError as e:
        console.print(f"[red]Invalid configuration: {escape(str(e))}[/red]")
        return 2

    logger.debug(f"Running '{args.command}' with {config}")
    return HANDLERS[args.command](config, console)


def run() -> None:
    """Console-script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
