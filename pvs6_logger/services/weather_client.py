from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import requests
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pvs6_logger.config import WeatherConfig
from pvs6_logger.models.weather import WeatherObservation


OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"

CURRENT_FIELDS = (
    "temperature_2m",
    "cloud_cover",
    "wind_speed_10m",
    "weather_code",
    "shortwave_radiation",
    "direct_normal_irradiance",
    "diffuse_radiation",
)


def _parse_time(ts: str | None, tz: ZoneInfo) -> Optional[datetime]:
    if not ts:
        return None
    try:
        dt = datetime.fromisoformat(ts)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt.astimezone(timezone.utc)


def _as_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass
class WeatherClient:
    cfg: WeatherConfig
    log: Any
    session: Optional[requests.Session] = None

    def __post_init__(self):
        self._owns_session = self.session is None
        if self._owns_session:
            self.session = requests.Session()

    def close(self) -> None:
        # An injected session belongs to the caller.
        if self._owns_session and self.session is not None:
            self.session.close()
            self.session = None

    @property
    def enabled(self) -> bool:
        return bool(self.cfg.enabled and self.cfg.latitude is not None and self.cfg.longitude is not None)

    def fetch(self) -> Optional[WeatherObservation]:
        if not self.enabled:
            return None

        params = {
            "latitude": self.cfg.latitude,
            "longitude": self.cfg.longitude,
            "current": ",".join(CURRENT_FIELDS),
            "wind_speed_unit": "ms",
            "timezone": "UTC",
        }

        try:
            resp = self.session.get(OPEN_METEO_URL, params=params, timeout=self.cfg.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            self.log.warning("Weather fetch failed: %s", exc)
            return None

        try:
            tz = ZoneInfo(data.get("timezone") or "UTC")
        except (ZoneInfoNotFoundError, ValueError):
            tz = ZoneInfo("UTC")

        current = data.get("current", {}) or {}
        observed_at = _parse_time(current.get("time"), tz)
        if observed_at is None:
            self.log.warning("Weather response had no usable current.time; skipping")
            return None

        code = current.get("weather_code")
        return WeatherObservation(
            observed_at=observed_at,
            latitude=self.cfg.latitude,
            longitude=self.cfg.longitude,
            provider=self.cfg.provider or "open-meteo",
            temp_c=_as_float(current.get("temperature_2m")),
            cloud_cover_pct=_as_float(current.get("cloud_cover")),
            wind_mps=_as_float(current.get("wind_speed_10m")),
            ghi_wm2=_as_float(current.get("shortwave_radiation")),
            dni_wm2=_as_float(current.get("direct_normal_irradiance")),
            diffuse_wm2=_as_float(current.get("diffuse_radiation")),
            weather_code=int(code) if code is not None else None,
        )
