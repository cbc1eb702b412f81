"""Container collector and lifecycle actions backed by the docker CLI."""

from __future__ import annotations

import dataclasses
import json
import logging
from dataclasses import dataclass

from sparkmon.config import DEFAULT_SETTINGS, Settings
from sparkmon.models import (
    ContainerAction,
    ContainerActionResult,
    ContainerRecord,
    ContainerStatus,
)
from sparkmon.runner import DEFAULT_RUNNER, ProcessRunner
from sparkmon.units import parse_percent, parse_size_pair

logger = logging.getLogger(__name__)

LIST_FORMAT = (
    "{{.ID}}\t{{.Names}}\t{{.Image}}\t{{.State}}\t{{.Status}}\t{{.Ports}}\t{{.CreatedAt}}"
)
STATS_FORMAT = "{{.Name}}\t{{.CPUPerc}}\t{{.MemUsage}}\t{{.NetIO}}"
INSPECT_FORMAT = (
    "{{.HostConfig.Runtime}}\t{{.HostConfig.RestartPolicy.Name}}\t{{json .Mounts}}"
)

LIST_FIELDS = 7
STATS_FIELDS = 4


@dataclass(slots=True, frozen=True)
class ContainerStats:
    cpu_percent: float
    memory_usage_bytes: int
    memory_limit_bytes: int
    net_rx_bytes: int
    net_tx_bytes: int


@dataclass(slots=True, frozen=True)
class ContainerInspect:
    runtime: str
    restart_policy: str
    mounts: tuple[str, ...]


class DockerCommandError(Exception):
    """A docker invocation could not be launched or exited non-zero."""


async def _docker(runner: ProcessRunner, program: str, args: list[str]) -> str:
    try:
        result = await runner.run(program, args)
    except OSError as exc:
        raise DockerCommandError(f"failed to run docker {args[0]}: {exc}") from exc
    if not result.ok:
        raise DockerCommandError(f"docker {args[0]} failed: {result.stderr.strip()}")
    return result.stdout


# --- parsing ---------------------------------------------------------------


def parse_list_rows(output: str) -> list[ContainerRecord]:
    """
    Parse `docker ps` rows into records with zeroed stats.

    Rows with fewer than seven tab-separated fields are skipped.
    """
    containers = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        fields = [f.strip() for f in line.split("\t")]
        if len(fields) < LIST_FIELDS:
            logger.warning("unexpected docker ps line format: %r", line)
            continue

        container_id, name, image, state, status_text, ports, created = fields[:7]
        containers.append(
            ContainerRecord(
                id=container_id,
                name=name,
                image=image,
                status=ContainerStatus.parse(state),
                state_text=status_text,
                ports=tuple(ports.split(", ")) if ports else (),
                created=created,
            )
        )
    return containers


def parse_stats_rows(output: str) -> dict[str, ContainerStats]:
    """Parse `docker stats` rows keyed by container name."""
    stats = {}
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        fields = line.split("\t")
        if len(fields) < STATS_FIELDS:
            continue

        memory_usage, memory_limit = parse_size_pair(fields[2])
        net_rx, net_tx = parse_size_pair(fields[3])
        stats[fields[0].strip()] = ContainerStats(
            cpu_percent=parse_percent(fields[1]),
            memory_usage_bytes=memory_usage,
            memory_limit_bytes=memory_limit,
            net_rx_bytes=net_rx,
            net_tx_bytes=net_tx,
        )
    return stats


def parse_mounts(raw: str) -> tuple[str, ...]:
    """
    Turn the inspect Mounts JSON into 'source:destination' strings.

    Entries without string Source and Destination are dropped; anything
    that is not a JSON array gives no mounts.
    """
    try:
        mounts = json.loads(raw)
    except ValueError:
        return ()
    if not isinstance(mounts, list):
        return ()

    result = []
    for mount in mounts:
        if not isinstance(mount, dict):
            continue
        source = mount.get("Source")
        destination = mount.get("Destination")
        if isinstance(source, str) and isinstance(destination, str):
            result.append(f"{source}:{destination}")
    return tuple(result)


def parse_inspect_row(output: str) -> ContainerInspect:
    fields = output.strip().split("\t", 2)
    runtime = fields[0].strip() if fields else ""
    restart_policy = fields[1].strip() if len(fields) > 1 else ""
    mounts_json = fields[2].strip() if len(fields) > 2 else "[]"
    return ContainerInspect(
        runtime=runtime,
        restart_policy=restart_policy,
        mounts=parse_mounts(mounts_json),
    )


# --- phases ----------------------------------------------------------------


async def list_containers(runner: ProcessRunner, program: str) -> list[ContainerRecord]:
    output = await _docker(runner, program, ["ps", "-a", "--format", LIST_FORMAT])
    return parse_list_rows(output)


async def container_stats(runner: ProcessRunner, program: str) -> dict[str, ContainerStats]:
    """Live stats keyed by name; an empty map if docker stats fails."""
    try:
        output = await _docker(
            runner, program, ["stats", "--no-stream", "--format", STATS_FORMAT]
        )
    except DockerCommandError as exc:
        logger.warning("docker stats unavailable: %s", exc)
        return {}
    return parse_stats_rows(output)


async def inspect_containers(
    runner: ProcessRunner, program: str, ids: list[str]
) -> dict[str, ContainerInspect]:
    """
    Inspect each container in turn.

    One failed inspect only leaves that container out of the map.
    """
    inspected = {}
    for container_id in ids:
        try:
            output = await _docker(
                runner, program, ["inspect", container_id, "--format", INSPECT_FORMAT]
            )
        except DockerCommandError as exc:
            logger.warning("docker inspect failed for %s: %s", container_id, exc)
            continue
        inspected[container_id] = parse_inspect_row(output)
    return inspected


def merge_container(
    container: ContainerRecord,
    stats: ContainerStats | None,
    inspect: ContainerInspect | None,
) -> ContainerRecord:
    """Overlay stats and inspect data; list-derived fields stay as they are."""
    changes: dict[str, object] = {}
    if stats is not None:
        changes.update(
            cpu_percent=stats.cpu_percent,
            memory_usage_bytes=stats.memory_usage_bytes,
            memory_limit_bytes=stats.memory_limit_bytes,
            net_rx_bytes=stats.net_rx_bytes,
            net_tx_bytes=stats.net_tx_bytes,
        )
    if inspect is not None:
        changes.update(
            runtime=inspect.runtime,
            restart_policy=inspect.restart_policy,
            mounts=inspect.mounts,
        )
    return dataclasses.replace(container, **changes) if changes else container


async def collect_containers(
    runner: ProcessRunner | None = None, settings: Settings | None = None
) -> list[ContainerRecord]:
    """
    List every container with live stats and inspect details.

    Runs `docker ps`, then `docker stats` if anything is running, then one
    `docker inspect` per container. If the list query fails the result is
    empty.
    """
    runner = runner or DEFAULT_RUNNER
    program = (settings or DEFAULT_SETTINGS).commands.docker

    try:
        containers = await list_containers(runner, program)
    except DockerCommandError as exc:
        logger.warning("docker ps failed: %s", exc)
        return []
    if not containers:
        return []

    if any(c.status is ContainerStatus.RUNNING for c in containers):
        stats = await container_stats(runner, program)
    else:
        stats = {}
    inspected = await inspect_containers(runner, program, [c.id for c in containers])
    logger.debug(
        "collected %d containers (%d with stats, %d inspected)",
        len(containers),
        len(stats),
        len(inspected),
    )

    return [
        merge_container(c, stats.get(c.name), inspected.get(c.id)) for c in containers
    ]


async def execute_container_action(
    container_id: str,
    action: str,
    runner: ProcessRunner | None = None,
    settings: Settings | None = None,
) -> ContainerActionResult:
    """
    Start, stop or restart a container.

    Never raises: unknown actions and docker failures come back as an
    unsuccessful result carrying the reason.
    """
    try:
        command = ContainerAction(action).value
    except ValueError:
        return ContainerActionResult(success=False, message=f"unknown action: {action}")

    runner = runner or DEFAULT_RUNNER
    program = (settings or DEFAULT_SETTINGS).commands.docker
    try:
        result = await runner.run(program, [command, container_id])
    except OSError as exc:
        logger.warning("failed to run docker %s: %s", command, exc)
        return ContainerActionResult(
            success=False, message=f"failed to run docker {command}: {exc}"
        )

    if result.ok:
        return ContainerActionResult(
            success=True, message=f"docker {command} {container_id} succeeded"
        )
    logger.warning("docker %s %s failed: %s", command, container_id, result.stderr.strip())
    return ContainerActionResult(
        success=False, message=f"docker {command} failed: {result.stderr.strip()}"
    )
