"""Data models for sparkmon."""

from __future__ import annotations

from dataclasses import dataclass, fields, is_dataclass
from enum import Enum
from typing import Any


class ContainerStatus(Enum):
    """Lifecycle state of a container as reported by the runtime."""

    RUNNING = "running"
    STOPPED = "stopped"
    RESTARTING = "restarting"
    PAUSED = "paused"
    DEAD = "dead"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, state: str) -> ContainerStatus:
        """Map a raw runtime state string onto a status. Never fails."""
        return _STATE_MAP.get(state.strip().lower(), cls.UNKNOWN)


_STATE_MAP = {
    "running": ContainerStatus.RUNNING,
    "exited": ContainerStatus.STOPPED,
    "restarting": ContainerStatus.RESTARTING,
    "paused": ContainerStatus.PAUSED,
    "dead": ContainerStatus.DEAD,
}


class ContainerAction(Enum):
    """Lifecycle actions that may be issued against a container."""

    START = "start"
    STOP = "stop"
    RESTART = "restart"


@dataclass(slots=True, frozen=True)
class GpuProcessRecord:
    """A compute process holding GPU memory."""

    pid: int
    name: str
    memory_mib: int


@dataclass(slots=True, frozen=True)
class GpuRecord:
    """
    Point-in-time GPU reading.

    When ``unified_memory`` is set the vendor tool did not report a memory
    total and ``memory_total_mib`` holds host RAM instead.
    """

    name: str
    utilization_percent: float  # 0.0 - 100.0
    temperature_c: int
    memory_used_mib: int
    memory_total_mib: int
    power_draw_w: float
    unified_memory: bool = False
    processes: tuple[GpuProcessRecord, ...] = ()

    @classmethod
    def placeholder(cls) -> GpuRecord:
        """Record shown before any reading exists."""
        return cls(
            name="No GPU detected",
            utilization_percent=0.0,
            temperature_c=0,
            memory_used_mib=0,
            memory_total_mib=0,
            power_draw_w=0.0,
        )


@dataclass(slots=True, frozen=True)
class MemoryRecord:
    """Host memory and swap, in bytes."""

    total_bytes: int
    used_bytes: int
    available_bytes: int
    swap_total_bytes: int
    swap_used_bytes: int

    @classmethod
    def placeholder(cls) -> MemoryRecord:
        return cls(0, 0, 0, 0, 0)


@dataclass(slots=True, frozen=True)
class CpuRecord:
    """Load averages over 1, 5 and 15 minutes."""

    load_1m: float
    load_5m: float
    load_15m: float

    @classmethod
    def placeholder(cls) -> CpuRecord:
        return cls(0.0, 0.0, 0.0)


@dataclass(slots=True, frozen=True)
class DiskRecord:
    """Capacity of one mounted filesystem, in bytes."""

    total_bytes: int
    used_bytes: int
    available_bytes: int
    mount_point: str = "/"

    @classmethod
    def placeholder(cls) -> DiskRecord:
        return cls(0, 0, 0)


@dataclass(slots=True, frozen=True)
class UptimeRecord:
    """Whole seconds since boot."""

    seconds: int

    @classmethod
    def placeholder(cls) -> UptimeRecord:
        return cls(0)


@dataclass(slots=True, frozen=True)
class SystemSnapshot:
    """Every scalar host reading taken in one collection pass."""

    gpu: GpuRecord
    memory: MemoryRecord
    cpu: CpuRecord
    disk: DiskRecord
    uptime: UptimeRecord

    @classmethod
    def placeholder(cls) -> SystemSnapshot:
        """All-zero snapshot shown before the first collection completes."""
        return cls(
            gpu=GpuRecord.placeholder(),
            memory=MemoryRecord.placeholder(),
            cpu=CpuRecord.placeholder(),
            disk=DiskRecord.placeholder(),
            uptime=UptimeRecord.placeholder(),
        )


@dataclass(slots=True, frozen=True)
class ContainerRecord:
    """One container, merged from the list, stats and inspect queries."""

    id: str
    name: str
    image: str
    status: ContainerStatus = ContainerStatus.UNKNOWN
    state_text: str = ""
    cpu_percent: float = 0.0
    memory_usage_bytes: int = 0
    memory_limit_bytes: int = 0
    net_rx_bytes: int = 0
    net_tx_bytes: int = 0
    ports: tuple[str, ...] = ()
    runtime: str = ""
    restart_policy: str = ""
    created: str = ""
    mounts: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class ContainerActionRequest:
    container_id: str
    action: str


@dataclass(slots=True, frozen=True)
class ContainerActionResult:
    success: bool
    message: str


@dataclass(slots=True, frozen=True)
class ModelEntry:
    """A model weights file found on disk."""

    name: str
    path: str
    size_bytes: int
    format: str  # upper-cased extension, e.g. 'GGUF'
    modified: str  # epoch seconds, '' when unknown


def to_dict(value: Any) -> Any:
    """Convert records (and containers of records) into JSON-ready data."""
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_dict(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {key: to_dict(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_dict(item) for item in value]
    return value
