# pvs6_logger/models/readings.py

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import ClassVar, Iterator, Optional

# Identity / bookkeeping attributes; everything else on a reading is a measurement.
_IDENTITY_FIELDS = frozenset({"serial", "timestamp", "model", "device_type", "heartbeat"})


@dataclass
class DeviceReading:
    """
    One telemetry reading for a single device.

    serial == "" is the "never observed" sentinel. Every measurement is
    independently optional; None means the value was absent or unreadable.
    """

    serial: str = ""
    timestamp: Optional[datetime] = None   # device-reported, UTC
    model: Optional[str] = None
    device_type: Optional[str] = None
    heartbeat: bool = False                # True when produced by the reconciler

    category: ClassVar[str] = "device"

    @classmethod
    def measurement_fields(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls) if f.name not in _IDENTITY_FIELDS)

    @classmethod
    def sentinel(cls):
        return cls()

    @property
    def is_sentinel(self) -> bool:
        return self.serial == ""

    def measurements(self) -> dict[str, Optional[float]]:
        return {name: getattr(self, name) for name in self.measurement_fields()}

    def as_heartbeat(self, timestamp: Optional[datetime]):
        """Same device, new timestamp, no measurement values."""
        cleared = {name: None for name in self.measurement_fields()}
        return replace(self, timestamp=timestamp, heartbeat=True, **cleared)


@dataclass
class Supervisor(DeviceReading):
    dl_comm_err: Optional[float] = None
    dl_cpu_load: Optional[float] = None
    dl_err_count: Optional[float] = None
    dl_flash_avail: Optional[float] = None
    dl_mem_used: Optional[float] = None
    dl_scan_time: Optional[float] = None
    dl_skipped_scans: Optional[float] = None
    dl_untransmitted: Optional[float] = None
    dl_uptime: Optional[float] = None

    category: ClassVar[str] = "supervisor"


@dataclass
class ProductionMeter(DeviceReading):
    freq_hz: Optional[float] = None
    i_a: Optional[float] = None
    net_ltea_3phsum_kwh: Optional[float] = None
    p_3phsum_kw: Optional[float] = None
    q_3phsum_kvar: Optional[float] = None
    s_3phsum_kva: Optional[float] = None
    tot_pf_rto: Optional[float] = None
    v12_v: Optional[float] = None

    category: ClassVar[str] = "production_meter"


@dataclass
class ConsumptionMeter(DeviceReading):
    freq_hz: Optional[float] = None
    i1_a: Optional[float] = None
    i2_a: Optional[float] = None
    neg_ltea_3phsum_kwh: Optional[float] = None
    net_ltea_3phsum_kwh: Optional[float] = None
    p_3phsum_kw: Optional[float] = None
    p1_kw: Optional[float] = None
    p2_kw: Optional[float] = None
    pos_ltea_3phsum_kwh: Optional[float] = None
    q_3phsum_kvar: Optional[float] = None
    s_3phsum_kva: Optional[float] = None
    tot_pf_rto: Optional[float] = None
    v12_v: Optional[float] = None
    v1n_v: Optional[float] = None
    v2n_v: Optional[float] = None

    category: ClassVar[str] = "consumption_meter"


@dataclass
class Inverter(DeviceReading):
    freq_hz: Optional[float] = None
    i_3phsum_a: Optional[float] = None
    i_mppt1_a: Optional[float] = None
    ltea_3phsum_kwh: Optional[float] = None
    p_3phsum_kw: Optional[float] = None
    p_mppt1_kw: Optional[float] = None
    stat_ind: Optional[float] = None
    t_htsnk_degc: Optional[float] = None
    v_mppt1_v: Optional[float] = None
    vln_3phavg_v: Optional[float] = None

    category: ClassVar[str] = "inverter"


# Snapshot attribute name -> reading class, for the one-per-snapshot categories.
SINGULAR_CATEGORIES: tuple[tuple[str, type[DeviceReading]], ...] = (
    ("supervisor", Supervisor),
    ("production_meter", ProductionMeter),
    ("consumption_meter", ConsumptionMeter),
)

READING_TYPES: dict[str, type[DeviceReading]] = {
    cls.category: cls for cls in (Supervisor, ProductionMeter, ConsumptionMeter, Inverter)
}


@dataclass
class Snapshot:
    supervisor: Supervisor = field(default_factory=Supervisor)
    production_meter: ProductionMeter = field(default_factory=ProductionMeter)
    consumption_meter: ConsumptionMeter = field(default_factory=ConsumptionMeter)
    inverters: list[Inverter] = field(default_factory=list)

    def singular(self) -> list[DeviceReading]:
        return [getattr(self, attr) for attr, _ in SINGULAR_CATEGORIES]

    def readings(self) -> Iterator[DeviceReading]:
        yield from self.singular()
        yield from self.inverters

    def observed(self) -> list[DeviceReading]:
        return [r for r in self.readings() if not r.is_sentinel]

    def inverter_by_serial(self, serial: str) -> Optional[Inverter]:
        for inv in self.inverters:
            if inv.serial == serial:
                return inv
        return None

    @property
    def is_empty(self) -> bool:
        return not self.observed()
