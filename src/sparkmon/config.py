"""Configuration values for sparkmon."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_MODEL_DIRS: tuple[str, ...] = (
    "/opt/models",
    str(Path.home() / ".cache" / "huggingface" / "hub"),
    str(Path.home() / ".ollama" / "models"),
)

MODEL_EXTENSIONS: frozenset[str] = frozenset(
    {"gguf", "safetensors", "bin", "pt", "pth", "onnx", "ckpt"}
)


@dataclass(frozen=True)
class SourcePaths:
    """Kernel pseudo-files and the mount point read by the scalar collectors."""

    loadavg: str = "/proc/loadavg"
    meminfo: str = "/proc/meminfo"
    uptime: str = "/proc/uptime"
    disk_mount: str = "/"


@dataclass(frozen=True)
class Commands:
    """Executables for the external tools."""

    nvidia_smi: str = "nvidia-smi"
    docker: str = "docker"


@dataclass(frozen=True)
class ScanConfig:
    """Where the model scanner looks, and which file extensions it keeps."""

    roots: tuple[str, ...] = DEFAULT_MODEL_DIRS
    extensions: frozenset[str] = MODEL_EXTENSIONS


@dataclass(frozen=True)
class Settings:
    sources: SourcePaths = field(default_factory=SourcePaths)
    commands: Commands = field(default_factory=Commands)
    scan: ScanConfig = field(default_factory=ScanConfig)
    poll_interval: float = 2.0  # seconds, used by the dashboard only

    @classmethod
    def from_env(cls) -> Settings:
        """
        Build settings from SPARKMON_* environment variables.

        SPARKMON_MODEL_DIRS   os.pathsep separated scan roots
        SPARKMON_DOCKER       docker executable
        SPARKMON_NVIDIA_SMI   nvidia-smi executable
        SPARKMON_DISK_MOUNT   mount point reported by the disk collector
        SPARKMON_POLL_SEC     dashboard refresh interval
        """
        model_dirs = os.getenv("SPARKMON_MODEL_DIRS")
        roots = (
            tuple(d for d in model_dirs.split(os.pathsep) if d)
            if model_dirs
            else DEFAULT_MODEL_DIRS
        )
        poll_sec = os.getenv("SPARKMON_POLL_SEC", "2.0")
        try:
            poll_interval = float(poll_sec)
        except ValueError:
            raise ValueError(f"SPARKMON_POLL_SEC must be a number, got {poll_sec!r}") from None
        return cls(
            sources=SourcePaths(disk_mount=os.getenv("SPARKMON_DISK_MOUNT", "/")),
            commands=Commands(
                nvidia_smi=os.getenv("SPARKMON_NVIDIA_SMI", "nvidia-smi"),
                docker=os.getenv("SPARKMON_DOCKER", "docker"),
            ),
            scan=ScanConfig(roots=roots),
            poll_interval=poll_interval,
        )


DEFAULT_SETTINGS = Settings()
