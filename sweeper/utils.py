"""Small shared helpers."""

from datetime import datetime, timezone

_SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]


def utcnow() -> datetime:
    """Current time as a naive UTC datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_bytes(size: int) -> str:
    """Format a byte count for humans, e.g. ``1536 -> "1.5 KB"``."""
    if size <= 0:
        return "0 Bytes"

    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1

    return f"{round(value, 2):g} {_SIZE_UNITS[unit]}"
