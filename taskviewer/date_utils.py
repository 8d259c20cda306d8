"""Shared timestamp formatting helpers."""
from __future__ import annotations

from datetime import datetime, timezone

EPOCH_ISO = "1970-01-01T00:00:00.000Z"


def _format_datetime_utc(value: datetime) -> str:
    dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_mtime(mtime: float | None) -> str:
    """Render a filesystem mtime the way browsers print Date#toISOString."""
    if mtime is None:
        return EPOCH_ISO
    try:
        return _format_datetime_utc(datetime.fromtimestamp(float(mtime), tz=timezone.utc))
    except (OverflowError, OSError, ValueError):
        return EPOCH_ISO
