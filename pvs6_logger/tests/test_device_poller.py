import requests

from pvs6_logger.config import PVS6Config
from pvs6_logger.services.device_poller import FilePoller, PVS6Poller
from pvs6_logger.tests.fakes import FakeGet, FakeResponse, device_list, ts
from pvs6_logger.util.logging import get_logger, setup_logging


setup_logging(debug=False)
LOG = get_logger("poller-test")

CFG = PVS6Config(url="http://172.27.153.1/cgi-bin/dl_cgi?Command=DeviceList", timeout=7.5, verify_tls=False)


def test_poll_returns_body_and_passes_timeout():
    body = device_list(ts(12, 5))
    get = FakeGet(FakeResponse(200, text=body))
    assert PVS6Poller(CFG, LOG, get=get).poll() == body
    assert get.calls == [{"url": CFG.url, "timeout": 7.5, "verify": False}]


def test_each_poll_is_a_fresh_request():
    get = FakeGet(FakeResponse(200, text="{}"), FakeResponse(200, text="{}"))
    poller = PVS6Poller(CFG, LOG, get=get)
    poller.poll()
    poller.poll()
    assert len(get.calls) == 2


def test_network_error_returns_none(caplog):
    get = FakeGet(requests.ConnectionError("no route to host"))
    assert PVS6Poller(CFG, LOG, get=get).poll() is None
    assert "did not respond" in caplog.text


def test_non_200_returns_none(caplog):
    get = FakeGet(FakeResponse(503, text="busy"))
    assert PVS6Poller(CFG, LOG, get=get).poll() is None
    assert "HTTP 503" in caplog.text


def test_empty_body_returns_none(caplog):
    get = FakeGet(FakeResponse(200, text="  "))
    assert PVS6Poller(CFG, LOG, get=get).poll() is None
    assert "body was empty" in caplog.text


def test_file_poller(tmp_path):
    path = tmp_path / "devicelist.json"
    path.write_text(device_list(ts(12, 5)))
    assert FilePoller(str(path), LOG).poll() == path.read_text()
    assert FilePoller(str(tmp_path / "missing.json"), LOG).poll() is None
