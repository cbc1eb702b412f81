"""Snapshot aggregation and background polling for sparkmon."""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from queue import Queue

from sparkmon.config import DEFAULT_SETTINGS, Settings
from sparkmon.containers import collect_containers
from sparkmon.gpu import collect_gpu
from sparkmon.models import ContainerRecord, SystemSnapshot
from sparkmon.runner import DEFAULT_RUNNER, ProcessRunner
from sparkmon.system import collect_cpu, collect_disk, collect_memory, collect_uptime

logger = logging.getLogger(__name__)


async def collect_snapshot(
    runner: ProcessRunner | None = None, settings: Settings | None = None
) -> SystemSnapshot:
    """
    Collect GPU, memory, CPU, disk and uptime concurrently.

    Waits for all five collectors; each one falls back to its mock record
    on failure, so the snapshot is always complete.
    """
    runner = runner or DEFAULT_RUNNER
    settings = settings or DEFAULT_SETTINGS
    gpu, memory, cpu, disk, uptime = await asyncio.gather(
        collect_gpu(runner, settings),
        collect_memory(settings.sources),
        collect_cpu(settings.sources),
        collect_disk(settings.sources),
        collect_uptime(settings.sources),
    )
    return SystemSnapshot(gpu=gpu, memory=memory, cpu=cpu, disk=disk, uptime=uptime)


@dataclass(slots=True)
class DashboardUpdate:
    """One polling cycle's worth of data for the dashboard."""

    snapshot: SystemSnapshot
    containers: list[ContainerRecord]


class SnapshotPoller:
    """
    Polls the collectors on a fixed cadence from a daemon thread.

    Each cycle runs in its own event loop and pushes a DashboardUpdate to a
    thread-safe Queue. A failing cycle is logged and the loop carries on.
    """

    def __init__(
        self,
        update_queue: Queue[DashboardUpdate],
        poll_rate: float = 2.0,
        runner: ProcessRunner | None = None,
        settings: Settings | None = None,
    ) -> None:
        """
        Initialize the SnapshotPoller.

        Args:
            update_queue: Thread-safe queue to push updates to.
            poll_rate: How often to poll (in seconds). Default 2.0s.
            runner: Process runner for the external tools.
            settings: Source paths and commands.
        """
        self._queue = update_queue
        self._poll_rate = max(0.1, poll_rate)
        self._runner = runner or DEFAULT_RUNNER
        self._settings = settings or DEFAULT_SETTINGS
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
    def is_running(self) -> bool:
        """Check if the poller thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the polling thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="SnapshotPoller",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the polling thread.

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
                self._queue.put(asyncio.run(self.collect_once()))
            except Exception:
                logger.exception("polling cycle failed")

            self._stop_event.wait(timeout=self._poll_rate)

    async def collect_once(self) -> DashboardUpdate:
        """Collect the system snapshot and the container list."""
        snapshot, containers = await asyncio.gather(
            collect_snapshot(self._runner, self._settings),
            collect_containers(self._runner, self._settings),
        )
        return DashboardUpdate(snapshot=snapshot, containers=containers)
