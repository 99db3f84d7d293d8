# pvs6_logger/config.py
from dataclasses import dataclass, field
from pathlib import Path
import configparser

from pvs6_logger.services.scheduler import interval_seconds


@dataclass
class ScheduleConfig:
    period: int = 5
    unit: str = "m"
    offset_ms: int = 0

    @property
    def total_seconds(self) -> int:
        return interval_seconds(self.period, self.unit)


@dataclass
class PVS6Config:
    url: str
    timeout: float = 10.0
    verify_tls: bool = True
    schedule: ScheduleConfig = field(default_factory=lambda: ScheduleConfig(period=5, unit="m", offset_ms=-250))


@dataclass
class WeatherConfig:
    enabled: bool = False
    provider: str = "open-meteo"
    latitude: float | None = None
    longitude: float | None = None
    timeout: float = 10.0
    schedule: ScheduleConfig = field(default_factory=lambda: ScheduleConfig(period=15, unit="m", offset_ms=0))


@dataclass
class StoreConfig:
    path: str = "~/.pvs6_logger.db"
    pool_size: int = 2


@dataclass
class HealthchecksConfig:
    ping_url: str | None = None
    enabled: bool = False


@dataclass
class RetentionConfig:
    heartbeat_days: int = 30
    vacuum_after_prune: bool = True


@dataclass
class LoggingConfig:
    console_level: str = "INFO"
    console_quiet: bool = False
    debug_modules: list[str] = field(default_factory=list)
    structured_enabled: bool = False
    structured_path: str | None = None


@dataclass
class AppConfig:
    pvs6: PVS6Config
    weather: WeatherConfig
    store: StoreConfig
    healthchecks: HealthchecksConfig
    retention: RetentionConfig
    logging: LoggingConfig


class Config:
    def __init__(self, path: str):
        self.path = Path(path)
        self.parser = configparser.ConfigParser(inline_comment_prefixes=("#",))
        read = self.parser.read(self.path)
        if not read:
            raise FileNotFoundError(f"Config file not found: {self.path}")

    @classmethod
    def load(cls, path: str) -> AppConfig:
        cfg = cls(path)

        p = cfg.parser

        def _as_bool(value: str) -> bool:
            return value.strip().lower() == "true"

        def _maybe_float(raw: str | None) -> float | None:
            if raw is None:
                return None
            raw = raw.strip()
            if not raw:
                return None
            return float(raw)

        def _schedule(sec, default: ScheduleConfig) -> ScheduleConfig:
            schedule = ScheduleConfig(
                period=int(sec["period"]) if "period" in sec else default.period,
                unit=sec["unit"].strip() if "unit" in sec else default.unit,
                offset_ms=int(sec["offset_ms"]) if "offset_ms" in sec else default.offset_ms,
            )
            # Raises ValueError on a bad unit/period so startup aborts here.
            interval_seconds(schedule.period, schedule.unit)
            return schedule

        # --- PVS6 ---
        if "pvs6" not in p:
            raise ValueError("[pvs6] section missing from config")
        pvs6_sec = p["pvs6"]
        url = (pvs6_sec.get("url") or "").strip()
        if not url:
            raise ValueError("[pvs6] url is required")

        pvs6_kwargs = {"url": url}
        if "timeout" in pvs6_sec:
            pvs6_kwargs["timeout"] = float(pvs6_sec["timeout"])
        if "verify_tls" in pvs6_sec:
            pvs6_kwargs["verify_tls"] = _as_bool(pvs6_sec["verify_tls"])
        pvs6_kwargs["schedule"] = _schedule(pvs6_sec, PVS6Config(url=url).schedule)
        pvs6_cfg = PVS6Config(**pvs6_kwargs)

        # --- Weather ---
        weather_kwargs = {}
        weather_defaults = WeatherConfig()
        if "weather" in p:
            weather_sec = p["weather"]
            if "enabled" in weather_sec:
                weather_kwargs["enabled"] = _as_bool(weather_sec["enabled"])
            if "provider" in weather_sec:
                weather_kwargs["provider"] = weather_sec["provider"]
            if (latitude := _maybe_float(weather_sec.get("latitude"))) is not None:
                weather_kwargs["latitude"] = latitude
            if (longitude := _maybe_float(weather_sec.get("longitude"))) is not None:
                weather_kwargs["longitude"] = longitude
            if "timeout" in weather_sec:
                weather_kwargs["timeout"] = float(weather_sec["timeout"])
            weather_kwargs["schedule"] = _schedule(weather_sec, weather_defaults.schedule)
        weather_cfg = WeatherConfig(**weather_kwargs)
        if weather_cfg.enabled and (weather_cfg.latitude is None or weather_cfg.longitude is None):
            raise ValueError("[weather] enabled but latitude/longitude not configured")

        # --- Store ---
        store_kwargs = {}
        if "store" in p:
            store_sec = p["store"]
            if "path" in store_sec:
                store_kwargs["path"] = store_sec["path"]
            if "pool_size" in store_sec:
                store_kwargs["pool_size"] = int(store_sec["pool_size"])
        store_cfg = StoreConfig(**store_kwargs)
        if store_cfg.pool_size < 2:
            raise ValueError("[store] pool_size must be at least 2 (one per polling family)")

        # --- Healthchecks ---
        healthchecks_kwargs = {}
        if "healthchecks" in p:
            hc_sec = p["healthchecks"]
            if "ping_url" in hc_sec:
                healthchecks_kwargs["ping_url"] = hc_sec["ping_url"]
            if "enabled" in hc_sec:
                healthchecks_kwargs["enabled"] = _as_bool(hc_sec["enabled"])
        healthchecks = HealthchecksConfig(**healthchecks_kwargs)

        if "retention" in p:
            retention_sec = p["retention"]
        else:
            retention_sec = {}

        retention_cfg = RetentionConfig(
            heartbeat_days=int(retention_sec.get("heartbeat_days", 30) or 30),
            vacuum_after_prune=(retention_sec.get("vacuum_after_prune", "true").strip().lower() == "true")
            if retention_sec
            else True,
        )

        logging_kwargs = {}
        if "logging" in p:
            logging_sec = p["logging"]
            if "console_level" in logging_sec:
                logging_kwargs["console_level"] = logging_sec["console_level"]
            if "console_quiet" in logging_sec:
                logging_kwargs["console_quiet"] = _as_bool(logging_sec["console_quiet"])
            if "debug_modules" in logging_sec:
                raw = logging_sec["debug_modules"]
                logging_kwargs["debug_modules"] = [x.strip() for x in raw.split(",") if x.strip()]
            if "structured_enabled" in logging_sec:
                logging_kwargs["structured_enabled"] = _as_bool(logging_sec["structured_enabled"])
            if "structured_path" in logging_sec:
                logging_kwargs["structured_path"] = logging_sec["structured_path"]
        logging_cfg = LoggingConfig(**logging_kwargs)

        return AppConfig(
            pvs6=pvs6_cfg,
            weather=weather_cfg,
            store=store_cfg,
            healthchecks=healthchecks,
            retention=retention_cfg,
            logging=logging_cfg,
        )
