from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def current_timestamp() -> int:
    """Ledger time: whole unix seconds, the unit batch expiry is stored in."""
    return int(time.time())


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def timestamp_to_utc_z(ts: Optional[int]) -> Optional[str]:
    """Render a unix-seconds ledger timestamp as ISO-8601 with trailing 'Z'."""
    if ts is None:
        return None
    return to_utc_z(datetime.fromtimestamp(ts, tz=timezone.utc))
