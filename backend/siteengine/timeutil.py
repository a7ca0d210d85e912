"""Timestamp helpers. All stored timestamps are ISO-8601 UTC strings."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()
