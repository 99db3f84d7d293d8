# pvs6_logger/services/payload_decoder.py

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pvs6_logger.models.readings import (
    SINGULAR_CATEGORIES,
    ConsumptionMeter,
    DeviceReading,
    Inverter,
    ProductionMeter,
    Snapshot,
    Supervisor,
)


SUPERVISOR = "PVS"
METER = "Power Meter"
INVERTER = "Inverter"
PRODUCTION_SUBTYPE = "GROSS_PRODUCTION_SITE"
CONSUMPTION_SUBTYPE = "NET_CONSUMPTION_LOADSIDE"


def parse_datatime(raw: Any) -> Optional[datetime]:
    """PVS6 DATATIME ("YYYY,MM,DD,HH,MM,SS", UTC) -> aware datetime."""
    if not raw or not isinstance(raw, str):
        return None
    try:
        return datetime.strptime(raw.strip(), "%Y,%m,%d,%H,%M,%S").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


class PayloadDecoder:
    """Turns a DeviceList response into a Snapshot, one category at a time."""

    def __init__(self, log):
        self.log = log

    # ------------------------------------------------------------------
    def _number(self, serial: str, key: str, value: Any) -> Optional[float]:
        if value is None or value == "":
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            self.log.debug("%s: unparseable value for %s: %r", serial, key, value)
            return None

    def _meter_class(self, entry: Dict[str, Any]) -> Optional[type[DeviceReading]]:
        subtype = str(entry.get("subtype") or "").strip()
        if subtype == PRODUCTION_SUBTYPE:
            return ProductionMeter
        if subtype == CONSUMPTION_SUBTYPE:
            return ConsumptionMeter
        meter_type = str(entry.get("TYPE") or "").strip().upper()
        if meter_type.endswith("-P"):
            return ProductionMeter
        if meter_type.endswith("-C"):
            return ConsumptionMeter
        return None

    def _build(self, reading_cls: type[DeviceReading], entry: Dict[str, Any]) -> Optional[DeviceReading]:
        serial = str(entry.get("SERIAL") or "").strip()
        if not serial:
            self.log.warning("Skipping %s entry without SERIAL", reading_cls.category)
            return None
        timestamp = parse_datatime(entry.get("DATATIME"))
        if timestamp is None:
            self.log.warning(
                "Skipping %s %s: missing or invalid DATATIME %r",
                reading_cls.category,
                serial,
                entry.get("DATATIME"),
            )
            return None
        values = {
            name: self._number(serial, name, entry.get(name))
            for name in reading_cls.measurement_fields()
        }
        return reading_cls(
            serial=serial,
            timestamp=timestamp,
            model=entry.get("MODEL") or None,
            device_type=entry.get("TYPE") or entry.get("DEVICE_TYPE") or None,
            **values,
        )

    # ------------------------------------------------------------------
    def decode(self, raw: str) -> Optional[Snapshot]:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as exc:
            self.log.error("PVS6 response is not valid JSON: %s", exc)
            return None

        if not isinstance(data, dict):
            self.log.error("PVS6 response was not a JSON object")
            return None
        if str(data.get("result", "")).lower() != "succeed":
            self.log.error("PVS6 reported result=%r; ignoring payload", data.get("result"))
            return None

        devices = data.get("devices") or []
        snapshot = Snapshot()
        singular_by_class = {reading_cls: attr for attr, reading_cls in SINGULAR_CATEGORIES}

        for entry in devices:
            if not isinstance(entry, dict):
                continue
            device_type = str(entry.get("DEVICE_TYPE") or "").strip()

            if device_type == SUPERVISOR:
                reading_cls = Supervisor
            elif device_type == METER:
                reading_cls = self._meter_class(entry)
                if reading_cls is None:
                    self.log.error(
                        "Power meter %s has unknown subtype %r",
                        entry.get("SERIAL"),
                        entry.get("subtype"),
                    )
                    continue
            elif device_type == INVERTER:
                reading_cls = Inverter
            else:
                self.log.error("Device %s did not match a known device type: %r", entry.get("SERIAL"), device_type)
                continue

            reading = self._build(reading_cls, entry)
            if reading is None:
                continue

            if reading_cls is Inverter:
                if snapshot.inverter_by_serial(reading.serial) is not None:
                    self.log.warning("Duplicate inverter %s in PVS6 response; keeping first", reading.serial)
                    continue
                snapshot.inverters.append(reading)
                continue

            attr = singular_by_class[reading_cls]
            existing = getattr(snapshot, attr)
            if not existing.is_sentinel:
                self.log.warning(
                    "More than one %s in PVS6 response (%s, %s); keeping %s",
                    reading_cls.category,
                    existing.serial,
                    reading.serial,
                    existing.serial,
                )
                continue
            setattr(snapshot, attr, reading)

        if snapshot.is_empty:
            self.log.error("PVS6 response contained no usable devices")
            return None

        for attr in singular_by_class.values():
            if getattr(snapshot, attr).is_sentinel:
                self.log.warning("No %s decoded from PVS6 response this cycle", attr)

        self.log.debug(
            "Decoded PVS6 snapshot: supervisor=%s production=%s consumption=%s inverters=%d",
            snapshot.supervisor.serial or "-",
            snapshot.production_meter.serial or "-",
            snapshot.consumption_meter.serial or "-",
            len(snapshot.inverters),
        )
        return snapshot
