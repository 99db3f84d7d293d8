import logging

from pvs6_logger.models.readings import Snapshot, Supervisor
from pvs6_logger.services.latest_state import read_latest
from pvs6_logger.services.reconciler import reconcile
from pvs6_logger.services.telemetry_writer import write_snapshot
from pvs6_logger.tests.fakes import FailingStore, make_store, snapshot_at, ts
from pvs6_logger.util.logging import get_logger, setup_logging


setup_logging(debug=False)
LOG = get_logger("writer-test")


def test_all_categories_stored(tmp_path, caplog):
    store = make_store(tmp_path)
    with caplog.at_level(logging.INFO):
        report = write_snapshot(store, snapshot_at(ts(12, 0)), LOG)

    assert report.ok
    assert len(report.results) == 5
    assert all(r.inserted for r in report.results)
    assert "All devices stored" in caplog.text


def test_partial_failure_does_not_block_siblings(tmp_path, caplog):
    store = FailingStore(make_store(tmp_path), failing_serials={"ZT01"})
    report = write_snapshot(store, snapshot_at(ts(12, 0)), LOG)

    assert not report.ok
    assert [(f.category, f.serial) for f in report.failures] == [("supervisor", "ZT01")]
    assert {r.serial for r in report.results if r.ok} == {"PVS6M001p", "PVS6M001c", "E001", "E002"}

    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert "ZT01" in errors[0].getMessage()
    assert "Some devices not stored" in caplog.text


def test_sentinels_are_not_written(tmp_path):
    store = make_store(tmp_path)
    snapshot = Snapshot(supervisor=Supervisor(serial="ZT01", timestamp=ts(12, 0)))
    report = write_snapshot(store, snapshot, LOG)
    assert [r.category for r in report.results] == ["supervisor"]
    assert store.query_latest("production_meter") == []


def test_heartbeat_without_timestamp_is_a_failure(tmp_path):
    store = make_store(tmp_path)
    snapshot = Snapshot(supervisor=Supervisor(serial="ZT01").as_heartbeat(None))
    report = write_snapshot(store, snapshot, LOG)
    assert not report.ok
    assert report.failures[0].error == "missing timestamp"


def test_empty_snapshot_warns(tmp_path, caplog):
    report = write_snapshot(make_store(tmp_path), Snapshot(), LOG)
    assert report.results == []
    assert "nothing stored" in caplog.text


def test_repeated_cycles_store_one_measurement_row_then_heartbeats(tmp_path):
    store = make_store(tmp_path)

    for _ in range(3):
        latest = read_latest(store, LOG)
        reconciled = reconcile(snapshot_at(ts(12, 0), inverter_times={"E002": ts(12, 1)}), latest, LOG)
        assert write_snapshot(store, reconciled, LOG).ok

    with store.pool.connection() as conn:
        rows = conn.execute(
            "SELECT data_time, heartbeat, p_3phsum_kw FROM inverter_readings WHERE serial = 'E001' ORDER BY data_time"
        ).fetchall()
    assert [(r[0], r[1], r[2]) for r in rows] == [
        ("2024-06-01 12:00:00", 0, 0.28),
        ("2024-06-01 12:01:00", 1, None),
    ]


def test_lagging_inverter_reading_replaces_its_heartbeat(tmp_path):
    store = make_store(tmp_path)
    cycles = [
        snapshot_at(ts(12, 0), inverters=("E001",), inverter_times={"E001": ts(11, 55)}),
        # E001 still echoes 11:55, so it is a heartbeat at the supervisor's 12:05.
        snapshot_at(ts(12, 5), inverters=("E001",), inverter_times={"E001": ts(11, 55)}),
        # E001's real 12:05 reading lands on that heartbeat's key.
        snapshot_at(ts(12, 10), inverters=("E001",), inverter_times={"E001": ts(12, 5)}),
    ]
    reports = []
    for current in cycles:
        reconciled = reconcile(current, read_latest(store, LOG), LOG)
        reports.append(write_snapshot(store, reconciled, LOG))

    assert all(report.ok for report in reports)
    last = [r for r in reports[-1].results if r.serial == "E001"][0]
    assert last.inserted and not last.heartbeat

    with store.pool.connection() as conn:
        rows = conn.execute(
            "SELECT data_time, heartbeat, p_3phsum_kw FROM inverter_readings WHERE serial = 'E001' ORDER BY data_time"
        ).fetchall()
    assert [(r[0], r[1], r[2]) for r in rows] == [
        ("2024-06-01 11:55:00", 0, 0.28),
        ("2024-06-01 12:05:00", 0, 0.28),
    ]
    assert [(r.serial, r.timestamp) for r in store.query_latest("inverter")] == [("E001", ts(12, 5))]

    # The next echo of 12:05 is recognised as a repeat again.
    reconciled = reconcile(
        snapshot_at(ts(12, 15), inverters=("E001",), inverter_times={"E001": ts(12, 5)}),
        read_latest(store, LOG),
        LOG,
    )
    assert reconciled.inverters[0].heartbeat
    assert reconciled.inverters[0].timestamp == ts(12, 15)
