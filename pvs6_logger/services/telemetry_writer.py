# pvs6_logger/services/telemetry_writer.py

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from pvs6_logger.models.readings import Snapshot


@dataclass
class WriteResult:
    category: str
    serial: str
    timestamp: Optional[datetime]
    heartbeat: bool
    ok: bool
    inserted: bool = False
    error: Optional[str] = None


@dataclass
class WriteReport:
    results: List[WriteResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def failures(self) -> List[WriteResult]:
        return [r for r in self.results if not r.ok]

    @property
    def heartbeats(self) -> int:
        return sum(1 for r in self.results if r.ok and r.heartbeat)

    def summary(self) -> str:
        if not self.results:
            return "nothing to store"
        if self.ok:
            return f"{len(self.results)} stored ({self.heartbeats} heartbeat)"
        failed = ", ".join(f"{r.category}:{r.serial}" for r in self.failures)
        return f"{len(self.failures)} of {len(self.results)} failed ({failed})"


def write_snapshot(store, snapshot: Snapshot, log: Optional[logging.Logger] = None) -> WriteReport:
    """
    Store every observed reading of a reconciled snapshot.

    Each reading is its own write: a failure is logged and recorded, and the
    remaining readings are still attempted. Nothing is retried here; the next
    poll cycle is the retry path.
    """
    log = log or logging.getLogger("pvs6.writer")
    report = WriteReport()

    for reading in snapshot.observed():
        category = reading.category
        result = WriteResult(
            category=category,
            serial=reading.serial,
            timestamp=reading.timestamp,
            heartbeat=reading.heartbeat,
            ok=False,
        )
        if reading.timestamp is None:
            result.error = "missing timestamp"
            log.error("Device: %s %s has no timestamp; not stored", category, reading.serial)
            report.results.append(result)
            continue

        try:
            result.inserted = store.insert(category, reading)
            result.ok = True
        except (sqlite3.Error, ValueError) as exc:
            result.error = str(exc)
            log.error(
                "Device: %s %s @ %s failed to store. Err: %s",
                category,
                reading.serial,
                reading.timestamp,
                exc,
            )
        else:
            if result.inserted:
                log.debug(
                    "Device: %s %s @ %s stored%s",
                    category,
                    reading.serial,
                    reading.timestamp,
                    " (heartbeat)" if reading.heartbeat else "",
                )
            else:
                log.debug("Device: %s %s @ %s already stored", category, reading.serial, reading.timestamp)
        report.results.append(result)

    if not report.results:
        log.warning("Reconciled snapshot had no observed devices; nothing stored")
    elif report.ok:
        log.info("All devices stored: %s", report.summary())
    else:
        log.warning("Some devices not stored: %s. See device errors above.", report.summary())
    return report
