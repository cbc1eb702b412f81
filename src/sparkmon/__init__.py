"""sparkmon - host, GPU, container and model telemetry."""

from __future__ import annotations

__all__ = [
    "collect_containers",
    "collect_cpu",
    "collect_disk",
    "collect_gpu",
    "collect_memory",
    "collect_models",
    "collect_snapshot",
    "collect_uptime",
    "execute_container_action",
]

from .containers import collect_containers, execute_container_action
from .gpu import collect_gpu
from .inventory import collect_models
from .monitor import collect_snapshot
from .system import collect_cpu, collect_disk, collect_memory, collect_uptime
