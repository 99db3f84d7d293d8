from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class WeatherObservation:
    observed_at: datetime
    latitude: float
    longitude: float
    provider: str
    temp_c: Optional[float]
    cloud_cover_pct: Optional[float]
    wind_mps: Optional[float]
    ghi_wm2: Optional[float]
    dni_wm2: Optional[float]
    diffuse_wm2: Optional[float]
    weather_code: Optional[int]
