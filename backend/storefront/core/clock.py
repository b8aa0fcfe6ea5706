from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> str:
    """Current time as an ISO-8601 UTC string, the format of every timestamp field."""
    return datetime.now(timezone.utc).isoformat()
