# pvs6_logger/services/reconciler.py

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from pvs6_logger.models.readings import SINGULAR_CATEGORIES, DeviceReading, Snapshot


def heartbeat_timestamp(current: Snapshot) -> Optional[datetime]:
    """Newest timestamp anywhere in the current snapshot, or None if it has none."""
    stamps = [r.timestamp for r in current.readings() if r.timestamp is not None]
    return max(stamps) if stamps else None


def is_repeat(current: DeviceReading, persisted: DeviceReading) -> bool:
    # Two sentinels "match" on serial and timestamp, but that is not a repeat.
    if current.is_sentinel or persisted.is_sentinel:
        return False
    return current.serial == persisted.serial and current.timestamp == persisted.timestamp


def reconcile(
    current: Snapshot,
    latest_persisted: Snapshot,
    log: Optional[logging.Logger] = None,
) -> Snapshot:
    """
    Replace readings the PVS6 is still echoing with heartbeats.

    The PVS6 repeats its last reading (same DATATIME) on every poll until its
    own counters roll over. A repeat becomes a heartbeat: same serial, the
    newest timestamp of this poll, no measurements. New readings pass
    through untouched; categories not observed this poll stay sentinels.

    Pure apart from diagnostics written to ``log``.
    """
    log = log or logging.getLogger("pvs6.reconciler")
    beat_ts = heartbeat_timestamp(current)
    result = Snapshot()

    for attr, _ in SINGULAR_CATEGORIES:
        reading: DeviceReading = getattr(current, attr)
        persisted: DeviceReading = getattr(latest_persisted, attr)
        if reading.is_sentinel:
            continue
        if is_repeat(reading, persisted):
            log.debug("%s %s repeated reading @ %s; heartbeat @ %s", reading.category, reading.serial, reading.timestamp, beat_ts)
            setattr(result, attr, reading.as_heartbeat(beat_ts))
        else:
            setattr(result, attr, reading)

    for inv in current.inverters:
        if inv.is_sentinel:
            continue
        match = latest_persisted.inverter_by_serial(inv.serial)
        if match is None:
            log.warning(
                "Inverter %s not found in stored state; treating reading @ %s as new",
                inv.serial,
                inv.timestamp,
            )
            result.inverters.append(inv)
        elif is_repeat(inv, match):
            log.debug("inverter %s repeated reading @ %s; heartbeat @ %s", inv.serial, inv.timestamp, beat_ts)
            result.inverters.append(inv.as_heartbeat(beat_ts))
        else:
            result.inverters.append(inv)

    return result
