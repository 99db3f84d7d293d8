# pvs6_logger/services/store.py

from __future__ import annotations

import logging
import queue
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional, Union

from pvs6_logger.models.readings import READING_TYPES, DeviceReading
from pvs6_logger.models.weather import WeatherObservation


TS_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_ts(ts: datetime) -> str:
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc)
    return ts.strftime(TS_FORMAT)


def parse_ts(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    return datetime.strptime(raw, TS_FORMAT).replace(tzinfo=timezone.utc)


def _reading_type(category: str) -> type[DeviceReading]:
    try:
        return READING_TYPES[category]
    except KeyError:
        raise ValueError(f"Unknown device category: {category!r}") from None


def _table(category: str) -> str:
    _reading_type(category)
    return f"{category}_readings"


class ConnectionPool:
    """Fixed-size pool of SQLite connections shared by the polling families."""

    def __init__(self, path: Union[Path, str], size: int = 2):
        self.path = Path(path).expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.size = size
        self._idle: "queue.LifoQueue[sqlite3.Connection]" = queue.LifoQueue(maxsize=size)
        for _ in range(size):
            self._idle.put(self._connect())

    def _connect(self) -> sqlite3.Connection:
        # Connections move between worker threads but are only ever held by one at a time.
        conn = sqlite3.connect(self.path, timeout=30.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._idle.get()
        try:
            yield conn
        finally:
            self._idle.put(conn)

    def close(self) -> None:
        while True:
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                break
            conn.close()


class TelemetryStore:
    """SQLite-backed telemetry tables, one per device category, plus weather."""

    def __init__(self, pool: ConnectionPool):
        self.pool = pool
        self._log = logging.getLogger("pvs6.store")
        self._init_schema()

    # ------------------------------------------------------------------
    def _init_schema(self) -> None:
        stmts = []
        for category, cls in READING_TYPES.items():
            columns = ",\n".join(f"    {name} REAL" for name in cls.measurement_fields())
            stmts.append(
                f"""
                CREATE TABLE IF NOT EXISTS {_table(category)} (
                    serial TEXT NOT NULL,
                    data_time TEXT NOT NULL,
                    heartbeat INTEGER NOT NULL DEFAULT 0,
                {columns},
                    PRIMARY KEY (serial, data_time)
                )
                """
            )
        stmts += [
            """
            CREATE TABLE IF NOT EXISTS devices (
                serial TEXT PRIMARY KEY,
                category TEXT NOT NULL,
                model TEXT,
                device_type TEXT,
                first_seen TEXT NOT NULL,
                last_seen TEXT NOT NULL
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS weather_observations (
                latitude REAL NOT NULL,
                longitude REAL NOT NULL,
                observed_at TEXT NOT NULL,
                provider TEXT NOT NULL,
                temp_c REAL,
                cloud_cover_pct REAL,
                wind_mps REAL,
                ghi_wm2 REAL,
                dni_wm2 REAL,
                diffuse_wm2 REAL,
                weather_code INTEGER,
                PRIMARY KEY (latitude, longitude, observed_at)
            )
            """,
        ]
        with self.pool.connection() as conn:
            with conn:
                for stmt in stmts:
                    conn.execute(stmt)

    # Device readings ---------------------------------------------------
    def query_latest(self, category: str) -> list[DeviceReading]:
        """
        Latest measurement row per serial, newest first. Heartbeat rows are
        not device readings and are never returned here.
        """
        cls = _reading_type(category)
        table = _table(category)
        with self.pool.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT r.* FROM {table} AS r
                JOIN (
                    SELECT serial, MAX(data_time) AS data_time
                    FROM {table}
                    WHERE heartbeat = 0
                    GROUP BY serial
                ) AS latest
                ON r.serial = latest.serial AND r.data_time = latest.data_time
                ORDER BY r.data_time DESC, r.serial
                """
            ).fetchall()
        return [self._row_to_reading(cls, row) for row in rows]

    @staticmethod
    def _row_to_reading(reading_cls: type[DeviceReading], row: sqlite3.Row) -> DeviceReading:
        values = {name: row[name] for name in reading_cls.measurement_fields()}
        return reading_cls(
            serial=row["serial"],
            timestamp=parse_ts(row["data_time"]),
            heartbeat=bool(row["heartbeat"]),
            **values,
        )

    def insert(self, category: str, reading: DeviceReading) -> bool:
        """
        Insert one reading and refresh the device registry in one transaction.

        A measurement replaces a heartbeat already stored at the same
        (serial, timestamp). Returns False when the existing row is kept: a
        measurement is already there, or a heartbeat meets any stored row.
        """
        cls = _reading_type(category)
        if reading.is_sentinel or reading.timestamp is None:
            raise ValueError(f"Refusing to store unobserved {category} reading")

        names = cls.measurement_fields()
        columns = ", ".join(("serial", "data_time", "heartbeat") + names)
        placeholders = ", ".join("?" for _ in range(len(names) + 3))
        table = _table(category)
        updates = ",\n".join(["heartbeat = 0"] + [f"{name} = excluded.{name}" for name in names])
        ts = format_ts(reading.timestamp)
        params = [reading.serial, ts, 1 if reading.heartbeat else 0]
        params += [getattr(reading, name) for name in names]

        with self.pool.connection() as conn:
            with conn:
                cur = conn.execute(
                    f"""
                    INSERT INTO {table} ({columns})
                    VALUES ({placeholders})
                    ON CONFLICT(serial, data_time) DO UPDATE SET
                    {updates}
                    WHERE {table}.heartbeat = 1 AND excluded.heartbeat = 0
                    """,
                    params,
                )
                conn.execute(
                    """
                    INSERT INTO devices(serial, category, model, device_type, first_seen, last_seen)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(serial) DO UPDATE SET
                        category=excluded.category,
                        model=COALESCE(excluded.model, devices.model),
                        device_type=COALESCE(excluded.device_type, devices.device_type),
                        last_seen=MAX(devices.last_seen, excluded.last_seen)
                    """,
                    (reading.serial, category, reading.model, reading.device_type, ts, ts),
                )
        return cur.rowcount > 0

    # Weather -------------------------------------------------------------
    def insert_weather(self, obs: WeatherObservation) -> bool:
        with self.pool.connection() as conn:
            with conn:
                cur = conn.execute(
                    """
                    INSERT INTO weather_observations (
                        latitude, longitude, observed_at, provider, temp_c, cloud_cover_pct,
                        wind_mps, ghi_wm2, dni_wm2, diffuse_wm2, weather_code
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(latitude, longitude, observed_at) DO NOTHING
                    """,
                    (
                        obs.latitude,
                        obs.longitude,
                        format_ts(obs.observed_at),
                        obs.provider,
                        obs.temp_c,
                        obs.cloud_cover_pct,
                        obs.wind_mps,
                        obs.ghi_wm2,
                        obs.dni_wm2,
                        obs.diffuse_wm2,
                        obs.weather_code,
                    ),
                )
        return cur.rowcount > 0

    def latest_weather(self) -> Optional[WeatherObservation]:
        with self.pool.connection() as conn:
            row = conn.execute(
                "SELECT * FROM weather_observations ORDER BY observed_at DESC LIMIT 1"
            ).fetchone()
        if not row:
            return None
        return WeatherObservation(
            observed_at=parse_ts(row["observed_at"]),
            latitude=row["latitude"],
            longitude=row["longitude"],
            provider=row["provider"],
            temp_c=row["temp_c"],
            cloud_cover_pct=row["cloud_cover_pct"],
            wind_mps=row["wind_mps"],
            ghi_wm2=row["ghi_wm2"],
            dni_wm2=row["dni_wm2"],
            diffuse_wm2=row["diffuse_wm2"],
            weather_code=row["weather_code"],
        )

    # Maintenance ---------------------------------------------------------
    def prune_heartbeats(self, cutoff: datetime) -> int:
        removed = 0
        cutoff_str = format_ts(cutoff)
        with self.pool.connection() as conn:
            with conn:
                for category in READING_TYPES:
                    cur = conn.execute(
                        f"DELETE FROM {_table(category)} WHERE heartbeat = 1 AND data_time < ?",
                        (cutoff_str,),
                    )
                    removed += cur.rowcount
        return removed

    def vacuum(self) -> None:
        with self.pool.connection() as conn:
            conn.execute("VACUUM")

    def close(self) -> None:
        self.pool.close()
