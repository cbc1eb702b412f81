"""Execution of external tools."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol, Sequence


@dataclass(slots=True, frozen=True)
class ProcessResult:
    """Exit status and captured output of a finished process."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessRunner(Protocol):
    """
    Anything able to run a program to completion.

    Implementations raise OSError when the program cannot be launched
    (missing executable, permission denied).
    """

    async def run(self, program: str, args: Sequence[str]) -> ProcessResult: ...


class AsyncProcessRunner:
    """Runs programs with asyncio subprocesses, capturing stdout and stderr."""

    async def run(self, program: str, args: Sequence[str]) -> ProcessResult:
        proc = await asyncio.create_subprocess_exec(
            program,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
        return ProcessResult(
            returncode=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )


DEFAULT_RUNNER = AsyncProcessRunner()
