"""Shared fixtures for sparkmon tests."""

import logging
from collections.abc import Sequence

import pytest

from sparkmon.config import Commands, ScanConfig, Settings, SourcePaths
from sparkmon.runner import ProcessResult

MEMINFO = """\
MemTotal:       134217728 kB
MemFree:         8388608 kB
MemAvailable:   83886080 kB
Buffers:          524288 kB
SwapTotal:       8388608 kB
SwapFree:        7864320 kB
"""


class FakeRunner:
    """
    ProcessRunner stand-in returning canned results.

    Responses are keyed by program plus a prefix of the argument list; the
    longest matching prefix wins. Unknown commands raise FileNotFoundError,
    like a missing executable.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []
        self._responses: dict[tuple[str, ...], ProcessResult | OSError] = {}

    def add(
        self,
        *prefix: str,
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
    ) -> None:
        self._responses[prefix] = ProcessResult(returncode, stdout, stderr)

    def fail_launch(self, *prefix: str, error: OSError | None = None) -> None:
        self._responses[prefix] = error or PermissionError(13, "Permission denied")

    def commands(self, program: str) -> list[tuple[str, ...]]:
        return [call for call in self.calls if call[0] == program]

    async def run(self, program: str, args: Sequence[str]) -> ProcessResult:
        call = (program, *args)
        self.calls.append(call)
        matches = [key for key in self._responses if call[: len(key)] == key]
        if not matches:
            raise FileNotFoundError(2, "No such file or directory", program)
        response = self._responses[max(matches, key=len)]
        if isinstance(response, OSError):
            raise response
        return response


@pytest.fixture
def runner() -> FakeRunner:
    """A process runner with no commands registered."""
    return FakeRunner()


@pytest.fixture
def sources(tmp_path) -> SourcePaths:
    """Pseudo-files with realistic contents under tmp_path."""
    proc = tmp_path / "proc"
    proc.mkdir()
    (proc / "loadavg").write_text("0.52 0.58 0.59 1/1024 12345\n")
    (proc / "meminfo").write_text(MEMINFO)
    (proc / "uptime").write_text("350735.47 234388.90\n")
    return SourcePaths(
        loadavg=str(proc / "loadavg"),
        meminfo=str(proc / "meminfo"),
        uptime=str(proc / "uptime"),
        disk_mount=str(tmp_path),
    )


@pytest.fixture
def missing_sources(tmp_path) -> SourcePaths:
    """Source paths that do not exist."""
    missing = tmp_path / "missing"
    return SourcePaths(
        loadavg=str(missing / "loadavg"),
        meminfo=str(missing / "meminfo"),
        uptime=str(missing / "uptime"),
        disk_mount=str(missing),
    )


@pytest.fixture
def settings(sources, tmp_path) -> Settings:
    """Settings pointing every source at tmp_path."""
    return Settings(
        sources=sources,
        commands=Commands(nvidia_smi="nvidia-smi", docker="docker"),
        scan=ScanConfig(roots=(str(tmp_path / "models"),)),
        poll_interval=0.1,
    )


@pytest.fixture
def restore_root_logger():
    """Put the root logger's handlers and level back after the test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
