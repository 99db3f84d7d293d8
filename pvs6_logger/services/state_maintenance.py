from __future__ import annotations

import datetime as dt


def _cutoff(days: int, now: dt.datetime | None = None) -> dt.datetime:
    now = now or dt.datetime.now(dt.timezone.utc)
    return now - dt.timedelta(days=days)


def prune(store, heartbeat_days: int, *, vacuum: bool = True, now: dt.datetime | None = None) -> int:
    """Delete heartbeat rows older than ``heartbeat_days``; measurement rows are kept."""
    if heartbeat_days <= 0:
        raise ValueError("heartbeat_days must be positive")
    removed = store.prune_heartbeats(_cutoff(heartbeat_days, now))
    if vacuum:
        store.vacuum()
    return removed
