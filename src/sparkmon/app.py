"""sparkmon - console dashboard and command line entry point."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.logging import TextualHandler
from textual.widgets import DataTable, Footer, Static

from sparkmon.config import Settings
from sparkmon.containers import collect_containers, execute_container_action
from sparkmon.inventory import collect_models
from sparkmon.models import (
    ContainerActionRequest,
    ContainerRecord,
    GpuProcessRecord,
    ModelEntry,
    SystemSnapshot,
    to_dict,
)
from sparkmon.monitor import DashboardUpdate, SnapshotPoller, collect_snapshot
from sparkmon.runner import DEFAULT_RUNNER, ProcessRunner
from sparkmon.units import format_bytes

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s  %(levelname)s %(name)s %(message)s"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _bar(percent: float, colour: str) -> str:
    bar_len = min(max(int(percent / 5), 0), 20)  # Cap at 20 chars
    return f"[{colour}]█[/{colour}]" * bar_len + "[dim]░[/dim]" * (20 - bar_len)


def format_uptime(seconds: int) -> str:
    """Format an uptime counter as 'N days, HH:MM:SS'."""
    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    if days > 0:
        return f"{days} days, {hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class HeaderStats(Static):
    """Header widget showing GPU, memory, disk, load and uptime."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize HeaderStats."""
        super().__init__(*args, **kwargs)
        self._snapshot: SystemSnapshot | None = None

    def compose(self) -> ComposeResult:
        """Compose the header stats layout."""
        yield Horizontal(
            Static(self._get_gpu_info(), id="gpu-info"),
            Static(self._get_host_info(), id="host-info"),
        )

    def update_stats(self, snapshot: SystemSnapshot) -> None:
        """Update the statistics from a system snapshot."""
        self._snapshot = snapshot
        self._refresh_display()

    def _refresh_display(self) -> None:
        """Refresh the display with current data."""
        try:
            self.query_one("#gpu-info", Static).update(self._get_gpu_info())
            self.query_one("#host-info", Static).update(self._get_host_info())
        except Exception:
            pass  # Widget not mounted yet

    def _get_gpu_info(self) -> str:
        """Get GPU info display."""
        gpu = (self._snapshot or SystemSnapshot.placeholder()).gpu
        mem_percent = (
            gpu.memory_used_mib / gpu.memory_total_mib * 100 if gpu.memory_total_mib else 0.0
        )
        unified = " (unified)" if gpu.unified_memory else ""
        return (
            f"{gpu.name}\n"
            f"GPU\\[{_bar(gpu.utilization_percent, 'green')}] {gpu.utilization_percent:5.1f}%\n"
            f"VRM\\[{_bar(mem_percent, 'magenta')}] "
            f"{gpu.memory_used_mib}M/{gpu.memory_total_mib}M{unified}\n"
            f"Temp: {gpu.temperature_c}°C  Power: {gpu.power_draw_w:.1f}W  "
            f"Procs: {len(gpu.processes)}"
        )

    def _get_host_info(self) -> str:
        """Get memory, disk, load and uptime display."""
        snapshot = self._snapshot or SystemSnapshot.placeholder()
        memory = snapshot.memory
        disk = snapshot.disk
        cpu = snapshot.cpu
        mem_percent = memory.used_bytes / memory.total_bytes * 100 if memory.total_bytes else 0.0
        disk_percent = disk.used_bytes / disk.total_bytes * 100 if disk.total_bytes else 0.0
        swap_percent = (
            memory.swap_used_bytes / memory.swap_total_bytes * 100
            if memory.swap_total_bytes
            else 0.0
        )

        # Use escaped brackets for the bar containers
        return (
            f"Mem\\[{_bar(mem_percent, 'cyan')}] "
            f"{format_bytes(memory.used_bytes)}/{format_bytes(memory.total_bytes)}\n"
            f"Swp\\[{_bar(swap_percent, 'yellow')}] "
            f"{format_bytes(memory.swap_used_bytes)}/{format_bytes(memory.swap_total_bytes)}\n"
            f"Dsk\\[{_bar(disk_percent, 'blue')}] "
            f"{format_bytes(disk.used_bytes)}/{format_bytes(disk.total_bytes)} {disk.mount_point}\n"
            f"Load average: {cpu.load_1m:.2f} {cpu.load_5m:.2f} {cpu.load_15m:.2f}  "
            f"Uptime: {format_uptime(snapshot.uptime.seconds)}"
        )


class ContainerTable(Container):
    """Container for the container data table."""

    DEFAULT_CSS = """
    ContainerTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ContainerTable."""
        super().__init__(*args, **kwargs)
        self._current_ids: set[str] = set()

    def compose(self) -> ComposeResult:
        """Compose the container table."""
        yield DataTable(id="container-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#container-table", DataTable)
        table.cursor_type = "row"

        table.add_column("ID", key="id", width=12)
        table.add_column("NAME", key="name", width=20)
        table.add_column("STATUS", key="status", width=10)
        table.add_column("CPU%", key="cpu", width=7)
        table.add_column("MEM", key="mem", width=16)
        table.add_column("NET RX/TX", key="net", width=16)
        table.add_column("RUNTIME", key="runtime", width=8)
        table.add_column("Image", key="image")

    def update_containers(self, containers: list[ContainerRecord]) -> None:
        """
        Update the table with new data.

        Uses update_cell for existing rows to avoid re-rendering the whole table.
        """
        table = self.query_one("#container-table", DataTable)
        new_ids = {c.id for c in containers}

        for container_id in self._current_ids - new_ids:
            try:
                table.remove_row(container_id)
            except Exception:
                pass  # Row may not exist

        for container in containers:
            cells = self._cells(container)
            if container.id in self._current_ids:
                try:
                    for column, value in cells.items():
                        table.update_cell(container.id, column, value)
                except Exception:
                    pass  # Row may have been removed
            else:
                try:
                    table.add_row(*cells.values(), key=container.id)
                except Exception:
                    pass  # Row may already exist

        self._current_ids = new_ids

    @staticmethod
    def _cells(container: ContainerRecord) -> dict[str, str]:
        return {
            "id": container.id[:12],
            "name": container.name[:20],
            "status": container.status.value,
            "cpu": f"{container.cpu_percent:5.1f}",
            "mem": f"{format_bytes(container.memory_usage_bytes)}/"
            f"{format_bytes(container.memory_limit_bytes)}",
            "net": f"{format_bytes(container.net_rx_bytes)}/"
            f"{format_bytes(container.net_tx_bytes)}",
            "runtime": container.runtime,
            "image": container.image,
        }

    def selected_id(self) -> str | None:
        """Id of the highlighted container, if any."""
        table = self.query_one("#container-table", DataTable)
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return row_key.value


class GpuProcessTable(Container):
    """Container for the GPU compute process table."""

    DEFAULT_CSS = """
    GpuProcessTable {
        height: 8;
        border: solid $accent;
    }
    """

    def compose(self) -> ComposeResult:
        """Compose the GPU process table."""
        yield DataTable(id="gpu-process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#gpu-process-table", DataTable)
        table.cursor_type = "row"
        table.add_column("PID", key="pid", width=8)
        table.add_column("GPU MEM", key="memory", width=10)
        table.add_column("Command", key="name")

    def update_processes(self, processes: tuple[GpuProcessRecord, ...]) -> None:
        """Replace the rows with the latest process list."""
        table = self.query_one("#gpu-process-table", DataTable)
        table.clear()
        for process in processes:
            table.add_row(str(process.pid), f"{process.memory_mib}M", process.name)


class ModelTable(Container):
    """Container for the model inventory table."""

    DEFAULT_CSS = """
    ModelTable {
        height: 1fr;
        border: solid $secondary;
    }
    """

    def compose(self) -> ComposeResult:
        """Compose the model table."""
        yield DataTable(id="model-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#model-table", DataTable)
        table.cursor_type = "row"
        table.add_column("NAME", key="name", width=32)
        table.add_column("FORMAT", key="format", width=12)
        table.add_column("SIZE", key="size", width=8)
        table.add_column("Path", key="path")

    def load_models(self, models: list[ModelEntry]) -> None:
        """Replace the table contents with a fresh scan."""
        table = self.query_one("#model-table", DataTable)
        table.clear()
        for model in models:
            table.add_row(
                model.name[:32],
                model.format,
                format_bytes(model.size_bytes),
                model.path,
                key=model.path,
            )


class SparkmonApp(App):
    """Main sparkmon application."""

    TITLE = "sparkmon"
    SUB_TITLE = "GPU Workstation Monitor"

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

    #gpu-info {
        width: 1fr;
        padding-right: 2;
    }

    #host-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("s", "container('start')", "Start"),
        ("x", "container('stop')", "Stop"),
        ("r", "container('restart')", "Restart"),
        ("m", "scan_models", "Rescan models"),
    ]

    def __init__(
        self, runner: ProcessRunner | None = None, settings: Settings | None = None
    ) -> None:
        """Initialize the SparkmonApp."""
        super().__init__()
        self._runner = runner or DEFAULT_RUNNER
        self._settings = settings or Settings.from_env()
        self._update_queue: Queue[DashboardUpdate] = Queue()
        self._poller = SnapshotPoller(
            self._update_queue,
            poll_rate=self._settings.poll_interval,
            runner=self._runner,
            settings=self._settings,
        )

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(id="header-stats")
        yield GpuProcessTable()
        yield ContainerTable()
        yield ModelTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start the poller and the first model scan when the app is mounted."""
        self._poller.start()
        self.set_interval(0.5, self._check_for_updates)
        self.action_scan_models()

    def _check_for_updates(self) -> None:
        """Drain the queue and show the most recent update."""
        update = None
        while True:
            try:
                update = self._update_queue.get_nowait()
            except Empty:
                break

        if update is not None:
            self._update_ui(update)

    def _update_ui(self, update: DashboardUpdate) -> None:
        """Update the UI with a new polling result."""
        try:
            self.query_one("#header-stats", HeaderStats).update_stats(update.snapshot)
        except Exception:
            logger.exception("failed to update header")

        try:
            self.query_one(GpuProcessTable).update_processes(update.snapshot.gpu.processes)
        except Exception:
            logger.exception("failed to update GPU process table")

        try:
            self.query_one(ContainerTable).update_containers(update.containers)
        except Exception:
            logger.exception("failed to update container table")

    def action_container(self, action: str) -> None:
        """Run a lifecycle action against the highlighted container."""
        container_id = self.query_one(ContainerTable).selected_id()
        if container_id is None:
            self.notify("No container selected", severity="warning")
            return
        request = ContainerActionRequest(container_id=container_id, action=action)
        self.run_worker(self._run_container_action(request), group="container-action")

    async def _run_container_action(self, request: ContainerActionRequest) -> None:
        result = await execute_container_action(
            request.container_id, request.action, self._runner, self._settings
        )
        self.notify(result.message, severity="information" if result.success else "error")

    def action_scan_models(self) -> None:
        """Rescan the model directories in the background."""
        self.run_worker(self._scan_models(), exclusive=True, group="models")

    async def _scan_models(self) -> None:
        models = await collect_models(self._settings.scan)
        self.query_one(ModelTable).load_models(models)

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._poller.stop()
        self.exit()


def configure_logging(level: str, console: bool) -> None:
    """
    Set up the root logger.

    In the dashboard records go to Textual's devtools console so they do
    not draw over the screen; otherwise they go to stderr.
    """
    if console:
        logging.basicConfig(level=level.upper(), handlers=[TextualHandler()], force=True)
    else:
        logging.basicConfig(level=level.upper(), format=LOG_FORMAT, force=True)


async def collect_all(
    runner: ProcessRunner | None = None, settings: Settings | None = None
) -> dict:
    """Collect everything once and return it as JSON-ready data."""
    settings = settings or Settings.from_env()
    snapshot, containers, models = await asyncio.gather(
        collect_snapshot(runner, settings),
        collect_containers(runner, settings),
        collect_models(settings.scan),
    )
    return {
        "system": to_dict(snapshot),
        "containers": to_dict(containers),
        "models": to_dict(models),
    }


def main(argv: list[str] | None = None) -> None:
    """Entry point for sparkmon."""
    parser = argparse.ArgumentParser(
        prog="sparkmon", description="GPU workstation telemetry dashboard"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="print one JSON snapshot of system, containers and models, then exit",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("SPARKMON_LOG_LEVEL", "WARNING"),
        help="logging level (default: $SPARKMON_LOG_LEVEL or WARNING)",
    )
    args = parser.parse_args(argv)

    if args.log_level.upper() not in LOG_LEVELS:
        parser.error(
            f"invalid log level {args.log_level!r} (choose from {', '.join(LOG_LEVELS)})"
        )
    try:
        settings = Settings.from_env()
    except ValueError as exc:
        parser.error(str(exc))

    configure_logging(args.log_level, console=not args.once)
    if args.once:
        json.dump(asyncio.run(collect_all(settings=settings)), sys.stdout, indent=2)
        sys.stdout.write("\n")
        return

    SparkmonApp(settings=settings).run()


if __name__ == "__main__":
    main()
