"""Tests for the container collector and lifecycle actions."""

import json

import pytest

from sparkmon.containers import (
    collect_containers,
    execute_container_action,
    parse_inspect_row,
    parse_list_rows,
    parse_mounts,
    parse_stats_rows,
)
from sparkmon.models import ContainerStatus

PS_OUTPUT = (
    "abc123\tcomfyui\tghcr.io/comfy:latest\trunning\tUp 2 hours\t"
    "0.0.0.0:8188->8188/tcp, :::8188->8188/tcp\t2024-05-01 10:00:00 +0000 UTC\n"
    "def456\tollama\tollama/ollama\texited\tExited (0) 3 days ago\t\t"
    "2024-04-28 09:00:00 +0000 UTC\n"
)
STATS_OUTPUT = "comfyui\t12.34%\t3.578MiB / 121.7GiB\t16kB / 126B\n"
MOUNTS = json.dumps(
    [
        {"Type": "bind", "Source": "/opt/models", "Destination": "/models"},
        {"Type": "volume", "Source": "/var/lib/docker/volumes/x", "Destination": "/data"},
    ]
)


def _inspect(runtime, policy, mounts="[]"):
    return f"{runtime}\t{policy}\t{mounts}\n"


class TestParseListRows:
    """Tests for parse_list_rows."""

    def test_parses_fields(self):
        """Test a full row maps onto a record."""
        rows = parse_list_rows(PS_OUTPUT)
        assert [c.id for c in rows] == ["abc123", "def456"]

        comfy = rows[0]
        assert comfy.name == "comfyui"
        assert comfy.image == "ghcr.io/comfy:latest"
        assert comfy.status is ContainerStatus.RUNNING
        assert comfy.state_text == "Up 2 hours"
        assert comfy.ports == ("0.0.0.0:8188->8188/tcp", ":::8188->8188/tcp")
        assert comfy.created == "2024-05-01 10:00:00 +0000 UTC"

        ollama = rows[1]
        assert ollama.status is ContainerStatus.STOPPED
        assert ollama.ports == ()

    def test_short_row_skipped_order_preserved(self, caplog):
        """Test a row with fewer than seven fields is dropped and logged."""
        output = (
            "a1\tfirst\timg\trunning\tUp\t\tcreated\n"
            "b2\tbroken\timg\trunning\n"
            "c3\tthird\timg\tpaused\tUp (Paused)\t\tcreated\n"
        )
        with caplog.at_level("WARNING", logger="sparkmon.containers"):
            rows = parse_list_rows(output)

        assert [c.name for c in rows] == ["first", "third"]
        assert rows[1].status is ContainerStatus.PAUSED
        assert "broken" in caplog.text

    def test_blank_lines_ignored(self):
        """Test blank lines produce no records."""
        assert parse_list_rows("\n   \n") == []


class TestParseStatsRows:
    """Tests for parse_stats_rows."""

    def test_parses_sizes(self):
        """Test CPU, memory and network fields."""
        stats = parse_stats_rows(STATS_OUTPUT)["comfyui"]
        assert stats.cpu_percent == 12.34
        assert stats.memory_usage_bytes == 3751804
        assert stats.memory_limit_bytes == 130674379980
        assert stats.net_rx_bytes == 16000
        assert stats.net_tx_bytes == 126

    def test_short_rows_skipped(self):
        """Test rows with fewer than four fields are ignored."""
        assert parse_stats_rows("comfyui\t1%\n") == {}

    def test_malformed_pairs_are_zero(self):
        """Test values without a separator become zero."""
        stats = parse_stats_rows("web\t--\t--\t--\n")["web"]
        assert stats.cpu_percent == 0.0
        assert stats.memory_usage_bytes == 0
        assert stats.net_tx_bytes == 0


class TestParseInspect:
    """Tests for inspect output parsing."""

    def test_mounts(self):
        """Test mounts join source and destination."""
        assert parse_mounts(MOUNTS) == (
            "/opt/models:/models",
            "/var/lib/docker/volumes/x:/data",
        )

    @pytest.mark.parametrize("raw", ["", "not json", "{}", "null", "[1, 2]"])
    def test_malformed_mounts_are_empty(self, raw):
        """Test unparsable or non-array JSON gives no mounts."""
        assert parse_mounts(raw) == ()

    def test_mount_without_strings_dropped(self):
        """Test a mount lacking string Source/Destination is skipped."""
        raw = json.dumps([{"Source": "/a"}, {"Source": 1, "Destination": "/b"}])
        assert parse_mounts(raw) == ()

    def test_inspect_row(self):
        """Test runtime, policy and mounts are split out."""
        data = parse_inspect_row(_inspect("nvidia", "unless-stopped", MOUNTS))
        assert data.runtime == "nvidia"
        assert data.restart_policy == "unless-stopped"
        assert len(data.mounts) == 2

    def test_inspect_row_missing_mounts(self):
        """Test a row without the mounts field has no mounts."""
        data = parse_inspect_row("runc\tno\n")
        assert data.runtime == "runc"
        assert data.restart_policy == "no"
        assert data.mounts == ()


class TestCollectContainers:
    """Tests for collect_containers."""

    @pytest.mark.asyncio
    async def test_merges_all_phases(self, runner, settings):
        """Test stats join by name and inspect joins by id."""
        runner.add("docker", "ps", stdout=PS_OUTPUT)
        runner.add("docker", "stats", stdout=STATS_OUTPUT)
        runner.add("docker", "inspect", "abc123", stdout=_inspect("nvidia", "always", MOUNTS))
        runner.add("docker", "inspect", "def456", stdout=_inspect("runc", "no"))

        comfy, ollama = await collect_containers(runner, settings)

        assert comfy.cpu_percent == 12.34
        assert comfy.memory_limit_bytes == 130674379980
        assert comfy.runtime == "nvidia"
        assert comfy.restart_policy == "always"
        assert comfy.mounts == ("/opt/models:/models", "/var/lib/docker/volumes/x:/data")

        assert ollama.cpu_percent == 0.0
        assert ollama.memory_usage_bytes == 0
        assert ollama.runtime == "runc"
        assert ollama.state_text == "Exited (0) 3 days ago"

    @pytest.mark.asyncio
    async def test_stats_unavailable(self, runner, settings):
        """Test a missing stats query leaves a running container zeroed."""
        runner.add("docker", "ps", stdout=PS_OUTPUT.splitlines()[0] + "\n")
        runner.fail_launch("docker", "stats", error=FileNotFoundError(2, "missing"))
        runner.add("docker", "inspect", stdout=_inspect("runc", "no"))

        (container,) = await collect_containers(runner, settings)

        assert container.status is ContainerStatus.RUNNING
        assert container.cpu_percent == 0.0
        assert container.memory_usage_bytes == 0
        assert container.memory_limit_bytes == 0
        assert container.net_rx_bytes == 0
        assert container.net_tx_bytes == 0

    @pytest.mark.asyncio
    async def test_stats_skipped_when_nothing_running(self, runner, settings):
        """Test docker stats is not invoked without a running container."""
        runner.add("docker", "ps", stdout=PS_OUTPUT.splitlines()[1] + "\n")
        runner.add("docker", "inspect", stdout=_inspect("runc", "no"))

        await collect_containers(runner, settings)

        assert not [c for c in runner.commands("docker") if c[1] == "stats"]

    @pytest.mark.asyncio
    async def test_inspect_is_serial_per_container(self, runner, settings):
        """Test one inspect call is made for each listed container, in order."""
        runner.add("docker", "ps", stdout=PS_OUTPUT)
        runner.add("docker", "stats", stdout="")
        runner.add("docker", "inspect", stdout=_inspect("runc", "no"))

        await collect_containers(runner, settings)

        inspected = [c[2] for c in runner.commands("docker") if c[1] == "inspect"]
        assert inspected == ["abc123", "def456"]

    @pytest.mark.asyncio
    async def test_partial_inspect_failure(self, runner, settings):
        """Test one failed inspect only blanks that container's inspect fields."""
        runner.add("docker", "ps", stdout=PS_OUTPUT)
        runner.add("docker", "stats", stdout=STATS_OUTPUT)
        runner.add("docker", "inspect", "abc123", stderr="no such object", returncode=1)
        runner.add("docker", "inspect", "def456", stdout=_inspect("runc", "on-failure", MOUNTS))

        comfy, ollama = await collect_containers(runner, settings)

        assert comfy.runtime == ""
        assert comfy.restart_policy == ""
        assert comfy.mounts == ()
        assert comfy.state_text == "Up 2 hours"
        assert comfy.cpu_percent == 12.34
        assert ollama.restart_policy == "on-failure"
        assert len(ollama.mounts) == 2

    @pytest.mark.asyncio
    async def test_list_failure_is_empty(self, runner, settings):
        """Test a failing docker ps gives no containers and no further calls."""
        runner.add("docker", "ps", stderr="Cannot connect to the Docker daemon", returncode=1)

        assert await collect_containers(runner, settings) == []
        assert len(runner.calls) == 1

    @pytest.mark.asyncio
    async def test_docker_missing_is_empty(self, runner, settings):
        """Test a missing docker binary gives no containers."""
        assert await collect_containers(runner, settings) == []


class TestExecuteContainerAction:
    """Tests for execute_container_action."""

    @pytest.mark.asyncio
    async def test_start_succeeds(self, runner, settings):
        """Test a zero exit reports success mentioning the id."""
        runner.add("docker", "start", "abc123", stdout="abc123\n")
        result = await execute_container_action("abc123", "start", runner, settings)

        assert result.success is True
        assert "abc123" in result.message
        assert runner.calls == [("docker", "start", "abc123")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", ["stop", "restart"])
    async def test_other_actions(self, runner, settings, action):
        """Test stop and restart run the matching subcommand."""
        runner.add("docker", action, stdout="abc123\n")
        result = await execute_container_action("abc123", action, runner, settings)

        assert result.success is True
        assert runner.calls == [("docker", action, "abc123")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", ["delete", "rm", "START", ""])
    async def test_unknown_action_rejected(self, runner, settings, action):
        """Test an unknown action fails without launching a process."""
        result = await execute_container_action("abc123", action, runner, settings)

        assert result.success is False
        assert result.message == f"unknown action: {action}"
        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_failure_carries_stderr(self, runner, settings):
        """Test a non-zero exit reports docker's diagnostic."""
        runner.add(
            "docker", "stop", stderr="Error response from daemon: No such container: x\n",
            returncode=1,
        )
        result = await execute_container_action("x", "stop", runner, settings)

        assert result.success is False
        assert "No such container: x" in result.message

    @pytest.mark.asyncio
    async def test_launch_failure(self, runner, settings):
        """Test a docker binary that cannot be launched reports failure."""
        result = await execute_container_action("abc123", "restart", runner, settings)

        assert result.success is False
        assert "failed to run docker restart" in result.message
