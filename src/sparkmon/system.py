"""Scalar host collectors: CPU load, memory, disk and uptime."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import psutil

from sparkmon.config import DEFAULT_SETTINGS, SourcePaths
from sparkmon.models import CpuRecord, DiskRecord, MemoryRecord, UptimeRecord
from sparkmon.units import parse_number

logger = logging.getLogger(__name__)

KIB = 1024
GIB = 1024**3

MOCK_CPU = CpuRecord(load_1m=2.45, load_5m=1.89, load_15m=1.32)
MOCK_MEMORY = MemoryRecord(
    total_bytes=128 * GIB,
    used_bytes=48 * GIB,
    available_bytes=80 * GIB,
    swap_total_bytes=8 * GIB,
    swap_used_bytes=512 * 1024**2,
)
MOCK_DISK = DiskRecord(
    total_bytes=2 * 1024 * GIB,
    used_bytes=750 * GIB,
    available_bytes=2 * 1024 * GIB - 750 * GIB,
    mount_point="/",
)
MOCK_UPTIME = UptimeRecord(seconds=3 * 86400 + 7 * 3600 + 42 * 60 + 15)


async def _read_text(path: str) -> str:
    return await asyncio.to_thread(Path(path).read_text, encoding="utf-8")


# --- parsing ---------------------------------------------------------------


def parse_loadavg(contents: str) -> CpuRecord:
    """Parse /proc/loadavg. Raises ValueError if fewer than three fields."""
    tokens = contents.split()
    if len(tokens) < 3:
        raise ValueError(f"unexpected loadavg format: {contents!r}")
    load_1m, load_5m, load_15m = (parse_number(t) or 0.0 for t in tokens[:3])
    return CpuRecord(load_1m=load_1m, load_5m=load_5m, load_15m=load_15m)


def _meminfo_values(contents: str) -> dict[str, int]:
    """Return meminfo values (in kB) keyed without the trailing colon."""
    values: dict[str, int] = {}
    for line in contents.splitlines():
        parts = line.split()
        if len(parts) < 2:
            continue
        try:
            value = int(parts[1])
        except ValueError:
            value = 0
        values[parts[0].rstrip(":")] = value
    return values


def parse_meminfo(contents: str) -> MemoryRecord:
    """Parse /proc/meminfo. Missing keys count as zero."""
    values = _meminfo_values(contents)
    total = values.get("MemTotal", 0) * KIB
    available = values.get("MemAvailable", 0) * KIB
    swap_total = values.get("SwapTotal", 0) * KIB
    swap_free = values.get("SwapFree", 0) * KIB
    return MemoryRecord(
        total_bytes=total,
        used_bytes=max(total - available, 0),
        available_bytes=available,
        swap_total_bytes=swap_total,
        swap_used_bytes=max(swap_total - swap_free, 0),
    )


def disk_record(total: int, available: int, mount_point: str = "/") -> DiskRecord:
    """Build a DiskRecord, deriving used space from total and available."""
    return DiskRecord(
        total_bytes=total,
        used_bytes=max(total - available, 0),
        available_bytes=available,
        mount_point=mount_point,
    )


def parse_uptime(contents: str) -> UptimeRecord:
    """Parse /proc/uptime. Raises ValueError on empty or non-numeric input."""
    tokens = contents.split()
    if not tokens:
        raise ValueError("empty uptime source")
    seconds = parse_number(tokens[0])
    if seconds is None:
        raise ValueError(f"failed to parse uptime: {tokens[0]!r}")
    return UptimeRecord(seconds=max(int(seconds), 0))


# --- collectors ------------------------------------------------------------


async def collect_cpu(sources: SourcePaths | None = None) -> CpuRecord:
    """Read load averages, or the mock record if the source is unusable."""
    path = (sources or DEFAULT_SETTINGS.sources).loadavg
    try:
        return parse_loadavg(await _read_text(path))
    except (OSError, ValueError) as exc:
        logger.warning("%s unavailable, returning mock CPU data: %s", path, exc)
        return MOCK_CPU


async def collect_memory(sources: SourcePaths | None = None) -> MemoryRecord:
    """Read memory and swap usage, or the mock record if the source is unusable."""
    path = (sources or DEFAULT_SETTINGS.sources).meminfo
    try:
        return parse_meminfo(await _read_text(path))
    except (OSError, ValueError) as exc:
        logger.warning("%s unavailable, returning mock memory data: %s", path, exc)
        return MOCK_MEMORY


async def read_meminfo_total_mib(sources: SourcePaths | None = None) -> int | None:
    """MemTotal in MiB, or None if it cannot be read."""
    path = (sources or DEFAULT_SETTINGS.sources).meminfo
    try:
        values = _meminfo_values(await _read_text(path))
    except (OSError, ValueError) as exc:
        logger.warning("cannot read MemTotal from %s: %s", path, exc)
        return None
    if "MemTotal" not in values:
        return None
    return values["MemTotal"] // 1024


async def collect_disk(sources: SourcePaths | None = None) -> DiskRecord:
    """
    Read filesystem capacity for the configured mount point.

    psutil derives total from f_blocks * f_frsize and free from
    f_bavail * f_frsize, i.e. space available to unprivileged users.
    """
    mount_point = (sources or DEFAULT_SETTINGS.sources).disk_mount
    try:
        usage = await asyncio.to_thread(psutil.disk_usage, mount_point)
    except OSError as exc:
        logger.warning("statvfs unavailable, returning mock disk data: %s", exc)
        return MOCK_DISK
    return disk_record(usage.total, usage.free, mount_point)


async def collect_uptime(sources: SourcePaths | None = None) -> UptimeRecord:
    """Read seconds since boot, or the mock record if the source is unusable."""
    path = (sources or DEFAULT_SETTINGS.sources).uptime
    try:
        return parse_uptime(await _read_text(path))
    except (OSError, ValueError) as exc:
        logger.warning("%s unavailable, returning mock uptime data: %s", path, exc)
        return MOCK_UPTIME
