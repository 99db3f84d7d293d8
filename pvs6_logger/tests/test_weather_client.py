# pvs6_logger/tests/test_weather_client.py

from datetime import datetime, timezone

import requests

from pvs6_logger.config import WeatherConfig
from pvs6_logger.services.weather_client import WeatherClient
from pvs6_logger.tests.fakes import FakeResponse
from pvs6_logger.util.logging import get_logger, setup_logging


setup_logging(debug=False)
LOG = get_logger("weather-test")


class FakeSession:
    def __init__(self, payload=None, status_code=200, error=None):
        self.payload = payload
        self.status_code = status_code
        self.error = error
        self.calls = []
        self.closed = False

    def close(self):
        self.closed = True

    def get(self, url, params=None, timeout=None):
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        if self.error:
            raise self.error
        return FakeResponse(self.status_code, payload=self.payload)


CFG = WeatherConfig(enabled=True, latitude=37.4, longitude=-122.1, timeout=5.0)


def test_weather_client_parses_current_conditions():
    payload = {
        "timezone": "UTC",
        "current": {
            "time": "2024-06-01T12:00",
            "temperature_2m": 18.4,
            "cloud_cover": 25,
            "wind_speed_10m": 3.2,
            "weather_code": 2,
            "shortwave_radiation": 812.0,
            "direct_normal_irradiance": 690.0,
            "diffuse_radiation": 110.0,
        },
    }
    session = FakeSession(payload)
    obs = WeatherClient(CFG, LOG, session=session).fetch()

    assert obs.observed_at == datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
    assert obs.temp_c == 18.4
    assert obs.cloud_cover_pct == 25.0
    assert obs.ghi_wm2 == 812.0
    assert obs.weather_code == 2
    assert obs.latitude == 37.4
    params = session.calls[0]["params"]
    assert params["latitude"] == 37.4
    assert "shortwave_radiation" in params["current"]
    assert session.calls[0]["timeout"] == 5.0


def test_missing_time_is_skipped(caplog):
    obs = WeatherClient(CFG, LOG, session=FakeSession({"current": {"temperature_2m": 10}})).fetch()
    assert obs is None
    assert "no usable current.time" in caplog.text


def test_http_error_returns_none(caplog):
    assert WeatherClient(CFG, LOG, session=FakeSession({}, status_code=500)).fetch() is None
    assert "Weather fetch failed" in caplog.text


def test_network_error_returns_none():
    session = FakeSession(error=requests.Timeout("slow"))
    assert WeatherClient(CFG, LOG, session=session).fetch() is None


def test_weather_disabled_short_circuits():
    session = FakeSession({})
    client = WeatherClient(WeatherConfig(enabled=False), LOG, session=session)
    assert not client.enabled
    assert client.fetch() is None
    assert session.calls == []


def test_close_leaves_injected_session_open():
    session = FakeSession()
    client = WeatherClient(CFG, LOG, session=session)
    client.close()
    assert session.closed is False
    assert client.session is session


def test_close_releases_own_session(monkeypatch):
    monkeypatch.setattr(requests, "Session", FakeSession)
    client = WeatherClient(CFG, LOG)
    session = client.session
    assert isinstance(session, FakeSession)
    client.close()
    assert session.closed is True
    assert client.session is None
