# pvs6_logger/services/poll_cycle.py

from __future__ import annotations

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from pvs6_logger.logging import CycleLogEntry, StructuredLog
from pvs6_logger.models.readings import Snapshot
from pvs6_logger.models.weather import WeatherObservation
from pvs6_logger.services.latest_state import read_latest
from pvs6_logger.services.reconciler import reconcile
from pvs6_logger.services.telemetry_writer import WriteReport, write_snapshot


@dataclass
class DeviceCycleResult:
    polled: bool = False
    snapshot: Optional[Snapshot] = None
    report: WriteReport = field(default_factory=WriteReport)
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.polled and self.snapshot is not None and self.report.ok

    def summary(self) -> str:
        if not self.polled:
            return "PVS6 poll failed"
        if self.snapshot is None:
            return "PVS6 payload unusable"
        if self.dry_run:
            return f"dry run: {len(self.snapshot.observed())} device(s) reconciled"
        return self.report.summary()


@dataclass
class WeatherCycleResult:
    observation: Optional[WeatherObservation] = None
    inserted: bool = False
    ok: bool = False


class DeviceCycle:
    """Latest state -> poll -> decode -> reconcile -> write, once."""

    def __init__(
        self,
        poller,
        decoder,
        store,
        log: logging.Logger,
        *,
        notifier=None,
        structured_log: Optional[StructuredLog] = None,
        dry_run: bool = False,
    ):
        self.poller = poller
        self.decoder = decoder
        self.store = store
        self.log = log
        self.notifier = notifier
        self.structured_log = structured_log
        self.dry_run = dry_run

    def run_once(self, scheduled_for: Optional[datetime] = None) -> DeviceCycleResult:
        result = DeviceCycleResult(dry_run=self.dry_run)

        # Read before polling so the comparison is against what was stored last cycle.
        latest = read_latest(self.store, self.log.getChild("latest_state"))

        raw = self.poller.poll()
        if raw is None:
            self.log.warning("No PVS6 data this cycle; nothing stored")
            self._finish(result, scheduled_for)
            return result
        result.polled = True

        current = self.decoder.decode(raw)
        if current is None:
            self.log.warning("PVS6 payload could not be decoded; nothing stored")
            self._finish(result, scheduled_for)
            return result

        result.snapshot = reconcile(current, latest, self.log.getChild("reconciler"))

        if self.dry_run:
            self.log.info("Dry run: %d reading(s) reconciled, not stored", len(result.snapshot.observed()))
        else:
            result.report = write_snapshot(self.store, result.snapshot, self.log.getChild("writer"))

        self._finish(result, scheduled_for)
        return result

    def _finish(self, result: DeviceCycleResult, scheduled_for: Optional[datetime]) -> None:
        summary = result.summary()

        if self.notifier is not None and not self.dry_run:
            if result.ok:
                self.notifier.cycle_succeeded(summary)
            else:
                self.notifier.cycle_failed(summary)

        if self.structured_log is not None and self.structured_log.enabled:
            devices = None
            if result.snapshot is not None:
                devices = [
                    {
                        "category": r.category,
                        "serial": r.serial,
                        "timestamp": r.timestamp,
                        "heartbeat": r.heartbeat,
                    }
                    for r in result.snapshot.observed()
                ]
            self.structured_log.write(
                CycleLogEntry(
                    timestamp=datetime.now(timezone.utc).isoformat(),
                    family="devices",
                    scheduled_for=scheduled_for.isoformat() if scheduled_for else None,
                    polled=result.polled,
                    devices=devices,
                    writes=list(result.report.results) or None,
                    ok=result.ok,
                    summary=summary,
                )
            )


class WeatherCycle:
    def __init__(self, client, store, log: logging.Logger, *, dry_run: bool = False):
        self.client = client
        self.store = store
        self.log = log
        self.dry_run = dry_run

    def run_once(self, scheduled_for: Optional[datetime] = None) -> WeatherCycleResult:
        result = WeatherCycleResult()
        obs = self.client.fetch()
        if obs is None:
            self.log.warning("No weather observation this cycle")
            return result
        result.observation = obs

        if self.dry_run:
            result.ok = True
            return result

        try:
            result.inserted = self.store.insert_weather(obs)
        except sqlite3.Error as exc:
            self.log.error("Weather observation @ %s failed to store. Err: %s", obs.observed_at, exc)
            return result

        result.ok = True
        if result.inserted:
            self.log.info("Weather observation @ %s stored", obs.observed_at)
        else:
            self.log.debug("Weather observation @ %s already stored", obs.observed_at)
        return result


async def run_forever(schedule, cycle, log: logging.Logger, *, max_cycles: Optional[int] = None) -> None:
    """
    Run ``cycle`` on every tick of ``schedule``.

    The blocking cycle runs in a worker thread so the other family's timer
    keeps ticking. An unexpected error ends that cycle only.
    """
    count = 0
    async for fire_at in schedule.ticks():
        log.debug("%s: tick @ %s", schedule.name, fire_at.isoformat())
        try:
            await asyncio.to_thread(cycle.run_once, fire_at)
        except Exception:
            log.exception("%s: cycle @ %s failed", schedule.name, fire_at.isoformat())
        count += 1
        if max_cycles is not None and count >= max_cycles:
            return
