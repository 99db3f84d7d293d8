# pvs6_logger/services/output_formatter.py

from __future__ import annotations

import json
from typing import Optional

from pvs6_logger.models.readings import DeviceReading, Snapshot
from pvs6_logger.models.weather import WeatherObservation
from pvs6_logger.services.telemetry_writer import WriteReport


def _ts(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _reading_to_dict(reading: DeviceReading) -> dict:
    payload = {
        "category": reading.category,
        "serial": reading.serial,
        "timestamp": _ts(reading.timestamp),
        "heartbeat": reading.heartbeat,
    }
    if reading.model:
        payload["model"] = reading.model
    if not reading.heartbeat:
        payload["measurements"] = reading.measurements()
    return payload


def _weather_to_dict(obs: WeatherObservation | None) -> Optional[dict]:
    if obs is None:
        return None
    return {
        "observed_at": _ts(obs.observed_at),
        "provider": obs.provider,
        "latitude": obs.latitude,
        "longitude": obs.longitude,
        "temp_c": obs.temp_c,
        "cloud_cover_pct": obs.cloud_cover_pct,
        "wind_mps": obs.wind_mps,
        "ghi_wm2": obs.ghi_wm2,
        "dni_wm2": obs.dni_wm2,
        "diffuse_wm2": obs.diffuse_wm2,
        "weather_code": obs.weather_code,
    }


def snapshot_to_dict(
    snapshot: Snapshot | None,
    *,
    report: WriteReport | None = None,
    weather: WeatherObservation | None = None,
) -> dict:
    payload: dict = {"devices": []}
    if snapshot is not None:
        payload["devices"] = [_reading_to_dict(r) for r in snapshot.observed()]
    if report is not None:
        payload["writes"] = [
            {
                "category": r.category,
                "serial": r.serial,
                "timestamp": _ts(r.timestamp),
                "heartbeat": r.heartbeat,
                "ok": r.ok,
                "inserted": r.inserted,
                "error": r.error,
            }
            for r in report.results
        ]
    if weather is not None:
        payload["weather"] = _weather_to_dict(weather)
    return payload


def emit_json(
    snapshot: Snapshot | None,
    *,
    report: WriteReport | None = None,
    weather: WeatherObservation | None = None,
) -> None:
    print(json.dumps(snapshot_to_dict(snapshot, report=report, weather=weather), indent=2))


def _fmt(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"{value:g}"


def _human_line(reading: DeviceReading) -> str:
    ts = reading.timestamp.strftime("%Y-%m-%d %H:%M:%S") if reading.timestamp else "?"
    if reading.heartbeat:
        return f"{reading.category:<18} {reading.serial:<22} {ts}  heartbeat"
    values = " ".join(f"{name}={_fmt(value)}" for name, value in reading.measurements().items() if value is not None)
    return f"{reading.category:<18} {reading.serial:<22} {ts}  {values or '(no values)'}"


def emit_human(
    snapshot: Snapshot | None,
    *,
    report: WriteReport | None = None,
    weather: WeatherObservation | None = None,
) -> None:
    if snapshot is None or snapshot.is_empty:
        print("No device readings.")
    else:
        for reading in snapshot.observed():
            print(_human_line(reading))

    if report is not None:
        print(f"\nStore: {report.summary()}")
        for failure in report.failures:
            print(f"  FAILED {failure.category} {failure.serial}: {failure.error}")

    if weather is not None:
        print(
            "\nWeather @ {ts} ({provider}): temp={temp}C cloud={cloud}% wind={wind}m/s "
            "ghi={ghi} dni={dni} dhi={dhi}".format(
                ts=weather.observed_at.strftime("%Y-%m-%d %H:%M:%S") if weather.observed_at else "?",
                provider=weather.provider,
                temp=_fmt(weather.temp_c),
                cloud=_fmt(weather.cloud_cover_pct),
                wind=_fmt(weather.wind_mps),
                ghi=_fmt(weather.ghi_wm2),
                dni=_fmt(weather.dni_wm2),
                dhi=_fmt(weather.diffuse_wm2),
            )
        )
