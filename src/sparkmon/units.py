"""Parsing of human-readable sizes and vendor tool fields."""

from __future__ import annotations

import math

# Decimal units for the SI family, binary units for the IEC family.
SIZE_MULTIPLIERS: dict[str, int] = {
    "B": 1,
    "kB": 1000,
    "KB": 1000,
    "MB": 1000**2,
    "GB": 1000**3,
    "TB": 1000**4,
    "KiB": 1024,
    "MiB": 1024**2,
    "GiB": 1024**3,
    "TiB": 1024**4,
}

_NOT_AVAILABLE = "n/a"


def parse_number(text: str) -> float | None:
    """Parse a finite float, or None."""
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def parse_size(text: str) -> int:
    """
    Parse a size such as '3.578MiB', '15.6kB' or '126B' into bytes.

    The fractional byte is truncated. An unknown or missing unit counts as
    plain bytes, and anything that does not start with a number yields 0.
    """
    text = text.strip()
    if not text:
        return 0

    unit_start = next((i for i, ch in enumerate(text) if ch.isalpha()), len(text))
    number = parse_number(text[:unit_start].strip())
    if number is None:
        return 0

    multiplier = SIZE_MULTIPLIERS.get(text[unit_start:].strip(), 1)
    return max(int(number * multiplier), 0)


def parse_size_pair(text: str) -> tuple[int, int]:
    """Parse a 'used / limit' style pair. Missing separator yields (0, 0)."""
    left, sep, right = text.partition("/")
    if not sep:
        return 0, 0
    return parse_size(left), parse_size(right)


def parse_percent(text: str) -> float:
    """Parse '12.34%' into 12.34, falling back to 0.0."""
    value = parse_number(text.strip().rstrip("%").strip())
    return value if value is not None else 0.0


def parse_vendor_field(text: str) -> float | None:
    """
    Parse a numeric field from nvidia-smi CSV output.

    Returns None for '[N/A]', 'N/A' and friends so callers can tell a
    missing reading from a measured zero. Trailing units ('MiB', 'W') are
    ignored.
    """
    value = text.strip().strip("[]").strip()
    if not value or value.lower() == _NOT_AVAILABLE:
        return None
    return parse_number(value.split()[0])


def format_bytes(size: float) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{int(size):5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"
