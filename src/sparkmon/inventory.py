"""Model inventory scanner."""

from __future__ import annotations

import asyncio
import logging
import os
import stat
from pathlib import Path

from sparkmon.config import DEFAULT_SETTINGS, ScanConfig
from sparkmon.models import ModelEntry

logger = logging.getLogger(__name__)


def _model_entry(path: Path, extension: str) -> ModelEntry | None:
    try:
        info = path.stat()
    except OSError:
        return None
    if not stat.S_ISREG(info.st_mode):
        return None
    return ModelEntry(
        name=path.stem or "unknown",
        path=str(path),
        size_bytes=info.st_size,
        format=extension.upper(),
        modified=str(int(info.st_mtime)) if info.st_mtime >= 0 else "",
    )


def scan_models(config: ScanConfig | None = None) -> list[ModelEntry]:
    """
    Walk the configured roots and list model weight files, sorted by name.

    Uses an explicit stack instead of recursion. Directories that cannot be
    opened are skipped. Symlinks are followed, so a linked model directory
    is scanned and a linked file reports its target's size; each directory
    is visited at most once per root, which stops link cycles. Only regular
    files are reported.
    """
    config = config or DEFAULT_SETTINGS.scan
    entries: list[ModelEntry] = []

    for root in config.roots:
        stack = [Path(root)]
        visited: set[tuple[int, int]] = set()
        while stack:
            directory = stack.pop()
            try:
                info = directory.stat()
                key = (info.st_dev, info.st_ino)
                if key in visited:
                    continue
                visited.add(key)
                with os.scandir(directory) as it:
                    children = list(it)
            except OSError as exc:
                logger.debug("skipping %s: %s", directory, exc)
                continue

            for child in children:
                path = Path(child.path)
                try:
                    if child.is_dir():
                        stack.append(path)
                        continue
                    if not child.is_file():
                        continue
                except OSError:
                    continue

                extension = path.suffix[1:]
                if extension not in config.extensions:
                    continue
                entry = _model_entry(path, extension)
                if entry is not None:
                    entries.append(entry)

    entries.sort(key=lambda e: (e.name, e.path))
    return entries


async def collect_models(config: ScanConfig | None = None) -> list[ModelEntry]:
    """Run the model scan in a worker thread."""
    return await asyncio.to_thread(scan_models, config)
