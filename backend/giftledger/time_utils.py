from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Timestamp stored on every ledger, gift and session row (UTC, naive)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Render a stored timestamp for JSON, e.g. "2026-10-19T08:30:00Z".

    Columns hold naive UTC values, so a naive dt is read as UTC.
    Sub-second precision is dropped.
    """
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"
