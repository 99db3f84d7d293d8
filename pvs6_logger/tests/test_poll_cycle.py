import json

from pvs6_logger.logging import StructuredLog
from pvs6_logger.models.weather import WeatherObservation
from pvs6_logger.services.payload_decoder import PayloadDecoder
from pvs6_logger.services.poll_cycle import DeviceCycle, WeatherCycle
from pvs6_logger.tests.fakes import (
    FailingStore,
    RecordingNotifier,
    StaticPoller,
    device_list,
    make_store,
    ts,
)
from pvs6_logger.util.logging import get_logger, setup_logging


setup_logging(debug=False)
LOG = get_logger("cycle-test")


def _cycle(store, *bodies, **kwargs):
    return DeviceCycle(StaticPoller(*bodies), PayloadDecoder(LOG), store, LOG, **kwargs)


def test_first_cycle_stores_measurements_then_heartbeats(tmp_path):
    store = make_store(tmp_path)
    notifier = RecordingNotifier()
    body = device_list(ts(12, 5))
    cycle = _cycle(store, body, body, notifier=notifier)

    first = cycle.run_once()
    assert first.ok
    assert not any(r.heartbeat for r in first.snapshot.observed())
    assert all(r.inserted for r in first.report.results)

    second = cycle.run_once()
    assert second.ok
    assert all(r.heartbeat for r in second.snapshot.observed())
    # The heartbeat lands on the same instant as the echoed reading.
    assert not any(r.inserted for r in second.report.results)

    assert [kind for kind, _ in notifier.events] == ["success", "success"]


def test_new_reading_after_heartbeat(tmp_path):
    store = make_store(tmp_path)
    cycle = _cycle(
        store,
        device_list(ts(12, 0)),
        device_list(ts(12, 0), inverter_times={"E002": ts(12, 5)}),
    )
    cycle.run_once()
    result = cycle.run_once()

    assert result.snapshot.inverter_by_serial("E002").heartbeat is False
    assert result.snapshot.inverter_by_serial("E001").heartbeat is True
    assert result.snapshot.supervisor.timestamp == ts(12, 5)
    assert [r.timestamp for r in store.query_latest("inverter")] == [ts(12, 5), ts(12, 0)]


def test_poll_failure_pings_failure_and_stores_nothing(tmp_path):
    store = make_store(tmp_path)
    notifier = RecordingNotifier()
    result = _cycle(store, notifier=notifier).run_once()

    assert not result.polled
    assert not result.ok
    assert notifier.events == [("fail", "PVS6 poll failed")]
    assert store.query_latest("supervisor") == []


def test_undecodable_payload_is_a_failed_cycle(tmp_path):
    notifier = RecordingNotifier()
    result = _cycle(make_store(tmp_path), device_list(ts(12, 0), result="fail"), notifier=notifier).run_once()
    assert result.polled
    assert result.snapshot is None
    assert notifier.events == [("fail", "PVS6 payload unusable")]


def test_partial_write_failure_is_reported_not_raised(tmp_path, caplog):
    store = FailingStore(make_store(tmp_path), failing_serials={"ZT01"})
    notifier = RecordingNotifier()
    result = _cycle(store, device_list(ts(12, 0)), notifier=notifier).run_once()

    assert result.polled
    assert not result.ok
    assert notifier.events[0][0] == "fail"
    assert "supervisor:ZT01" in notifier.events[0][1]
    assert "Some devices not stored" in caplog.text


def test_dry_run_does_not_write_or_ping(tmp_path):
    store = make_store(tmp_path)
    notifier = RecordingNotifier()
    result = _cycle(store, device_list(ts(12, 0)), notifier=notifier, dry_run=True).run_once()

    assert result.ok
    assert result.report.results == []
    assert notifier.events == []
    assert store.query_latest("inverter") == []


def test_structured_log_entry_per_cycle(tmp_path):
    path = tmp_path / "cycles.jsonl"
    cycle = _cycle(
        make_store(tmp_path),
        device_list(ts(12, 0), inverters=("E001",)),
        structured_log=StructuredLog(str(path), enabled=True),
    )
    cycle.run_once(ts(12, 0))
    cycle.run_once(ts(12, 5))

    lines = [json.loads(line) for line in path.read_text().splitlines()]
    assert len(lines) == 2
    assert lines[0]["family"] == "devices"
    assert lines[0]["scheduled_for"] == "2024-06-01T12:00:00+00:00"
    assert lines[0]["ok"] is True
    assert {d["serial"] for d in lines[0]["devices"]} == {"ZT01", "PVS6M001p", "PVS6M001c", "E001"}
    assert lines[0]["writes"][0]["inserted"] is True
    assert lines[1]["polled"] is False
    assert lines[1]["summary"] == "PVS6 poll failed"


class StaticWeatherClient:
    def __init__(self, obs):
        self.obs = obs

    def fetch(self):
        return self.obs


def _obs():
    return WeatherObservation(
        observed_at=ts(12, 0),
        latitude=37.4,
        longitude=-122.1,
        provider="open-meteo",
        temp_c=18.0,
        cloud_cover_pct=10.0,
        wind_mps=2.0,
        ghi_wm2=700.0,
        dni_wm2=600.0,
        diffuse_wm2=90.0,
        weather_code=0,
    )


def test_weather_cycle_stores_once(tmp_path):
    store = make_store(tmp_path)
    cycle = WeatherCycle(StaticWeatherClient(_obs()), store, LOG)
    first = cycle.run_once()
    second = cycle.run_once()
    assert first.ok and first.inserted
    assert second.ok and not second.inserted
    assert store.latest_weather() == _obs()


def test_weather_cycle_without_observation(tmp_path):
    result = WeatherCycle(StaticWeatherClient(None), make_store(tmp_path), LOG).run_once()
    assert not result.ok
    assert result.observation is None
