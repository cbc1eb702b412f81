"""GPU collector backed by nvidia-smi."""

from __future__ import annotations

import logging

from sparkmon.config import DEFAULT_SETTINGS, Settings
from sparkmon.models import GpuProcessRecord, GpuRecord
from sparkmon.runner import DEFAULT_RUNNER, ProcessRunner
from sparkmon.system import read_meminfo_total_mib
from sparkmon.units import parse_vendor_field

logger = logging.getLogger(__name__)

GPU_QUERY = [
    "--query-gpu=name,utilization.gpu,temperature.gpu,memory.used,memory.total,power.draw",
    "--format=csv,noheader,nounits",
]
PROCESS_QUERY = [
    "--query-compute-apps=pid,process_name,used_gpu_memory",
    "--format=csv,noheader,nounits",
]

MOCK_GPU = GpuRecord(
    name="NVIDIA GH200 (mock)",
    utilization_percent=42.0,
    temperature_c=55,
    memory_used_mib=15360,
    memory_total_mib=98304,
    power_draw_w=185.0,
    unified_memory=False,
    processes=(
        GpuProcessRecord(pid=1234, name="python3", memory_mib=8192),
        GpuProcessRecord(pid=5678, name="comfyui", memory_mib=4096),
        GpuProcessRecord(pid=9012, name="ollama", memory_mib=3072),
    ),
)


class GpuQueryError(Exception):
    """The summary query could not produce a usable row."""


def _field_or_zero(raw: str, label: str) -> float:
    value = parse_vendor_field(raw)
    if value is None:
        logger.warning("could not parse GPU %s %r", label, raw.strip())
        return 0.0
    return value


def _int_or_zero(raw: str, label: str) -> int:
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning("failed to parse GPU process %s %r", label, raw.strip())
        return 0


def parse_process_rows(output: str) -> tuple[GpuProcessRecord, ...]:
    """Parse compute-apps CSV rows. Bad pid or memory fields become 0."""
    processes = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        fields = line.split(", ")
        if len(fields) < 3:
            continue
        processes.append(
            GpuProcessRecord(
                pid=_int_or_zero(fields[0], "pid"),
                name=fields[1].strip(),
                memory_mib=_int_or_zero(fields[2], "memory"),
            )
        )
    return tuple(processes)


async def _summary_fields(runner: ProcessRunner, program: str) -> list[str]:
    try:
        result = await runner.run(program, GPU_QUERY)
    except OSError as exc:
        raise GpuQueryError(f"failed to run {program}: {exc}") from exc
    if not result.ok:
        raise GpuQueryError(f"{program} exited with status {result.returncode}")

    lines = result.stdout.splitlines()
    if not lines:
        raise GpuQueryError(f"empty {program} output")
    fields = lines[0].split(", ")
    if len(fields) < 6:
        raise GpuQueryError(f"unexpected {program} output format: {lines[0]!r}")
    return fields


async def _processes(runner: ProcessRunner, program: str) -> tuple[GpuProcessRecord, ...]:
    try:
        result = await runner.run(program, PROCESS_QUERY)
    except OSError as exc:
        logger.warning("failed to query GPU processes: %s", exc)
        return ()
    if not result.ok:
        return ()
    return parse_process_rows(result.stdout)


async def collect_gpu(
    runner: ProcessRunner | None = None, settings: Settings | None = None
) -> GpuRecord:
    """
    Query nvidia-smi for a GPU summary and its compute processes.

    On unified-memory hardware (e.g. GB10) memory.total comes back as
    [N/A]; the total is then taken from host MemTotal and the record is
    flagged ``unified_memory``. If nvidia-smi is missing or fails the mock
    record is returned.
    """
    runner = runner or DEFAULT_RUNNER
    settings = settings or DEFAULT_SETTINGS
    program = settings.commands.nvidia_smi

    try:
        fields = await _summary_fields(runner, program)
    except GpuQueryError as exc:
        logger.warning("nvidia-smi unavailable, returning mock GPU data: %s", exc)
        return MOCK_GPU

    utilization = _field_or_zero(fields[1], "utilization")
    temperature = _field_or_zero(fields[2], "temperature")
    power = _field_or_zero(fields[5], "power draw")
    memory_used = parse_vendor_field(fields[3]) or 0.0

    unified_memory = False
    memory_total = parse_vendor_field(fields[4])
    if memory_total is None:
        logger.warning(
            "nvidia-smi memory.total is N/A (%r), falling back to host memory",
            fields[4].strip(),
        )
        unified_memory = True
        memory_total = await read_meminfo_total_mib(settings.sources) or 0

    return GpuRecord(
        name=fields[0].strip(),
        utilization_percent=utilization,
        temperature_c=int(temperature),
        memory_used_mib=int(memory_used),
        memory_total_mib=int(memory_total),
        power_draw_w=power,
        unified_memory=unified_memory,
        processes=await _processes(runner, program),
    )
