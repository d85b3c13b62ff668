# tests/services/test_adapters.py
import pytest
import requests

from ride_coord.config.models import CoordinatorModel
from ride_coord.domain.entities.geography import Position
from ride_coord.domain.errors import ChannelError, RoutingError
from ride_coord.runtime.services_factory import make_routing, make_store, make_uplink
from ride_coord.services.loopback import LoopbackChannel, LoopbackServer
from ride_coord.services.routing import OsrmRouting, StraightLineRouting
from ride_coord.services.storage import JsonFileStore, MemoryStore
from ride_coord.services.uplink import HttpLocationUplink


class FakeResponse:
    def __init__(self, payload=None, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status}")

    def json(self):
        if self.payload is None:
            raise ValueError("no json")
        return self.payload


class FakeSession:
    def __init__(self, response=None, exc=None):
        self.response, self.exc = response, exc
        self.calls = []

    def get(self, url, **kw):
        self.calls.append(("GET", url, kw))
        if self.exc:
            raise self.exc
        return self.response

    def post(self, url, **kw):
        self.calls.append(("POST", url, kw))
        if self.exc:
            raise self.exc
        return self.response


A, B = Position(12.97, 77.59), Position(12.99, 77.61)


def test_osrm_converts_lon_lat_geometry():
    body = {"code": "Ok", "routes": [{"geometry": {"coordinates": [[77.59, 12.97], [77.60, 12.98], [77.61, 12.99]]}}]}
    session = FakeSession(FakeResponse(body))
    pts = OsrmRouting("http://osrm.local/", session=session).route(A, B)
    assert pts == [A, Position(12.98, 77.60), B]
    _, url, kw = session.calls[0]
    assert url == "http://osrm.local/route/v1/driving/77.59,12.97;77.61,12.99"
    assert kw["params"] == {"overview": "full", "geometries": "geojson"}


@pytest.mark.parametrize(
    "session",
    [
        FakeSession(exc=requests.ConnectionError("down")),
        FakeSession(FakeResponse({"code": "NoRoute", "routes": []})),
        FakeSession(FakeResponse({"code": "Ok", "routes": [{"geometry": {"coordinates": []}}]})),
        FakeSession(FakeResponse(status=502)),
    ],
)
def test_osrm_failures_raise_routing_error(session):
    with pytest.raises(RoutingError):
        OsrmRouting("http://osrm.local", session=session).route(A, B)


def test_straight_line_routing():
    assert StraightLineRouting().route(A, B) == [A, B]


def test_http_uplink_sends_bearer():
    session = FakeSession(FakeResponse({}))
    HttpLocationUplink("http://api.local", token=lambda: "tok", session=session).publish({"driverId": "D1"})
    method, url, kw = session.calls[0]
    assert (method, url) == ("POST", "http://api.local/driver-location/update")
    assert kw["headers"]["Authorization"] == "Bearer tok"
    assert kw["json"] == {"driverId": "D1"}


def test_json_file_store_round_trip(tmp_path):
    path = tmp_path / "nested" / "store.json"
    store = JsonFileStore(str(path))
    assert store.get("rideState") is None
    store.set("rideState", '{"a": 1}')
    store.set("driverId", "D1")
    store.remove("driverId")
    store.remove("missing")
    reopened = JsonFileStore(str(path))
    assert reopened.get("rideState") == '{"a": 1}'
    assert reopened.get("driverId") is None


def test_json_file_store_survives_corrupt_file(tmp_path, caplog):
    path = tmp_path / "store.json"
    path.write_text("{not json", encoding="utf-8")
    with caplog.at_level("ERROR", logger="ride_coord.services.storage"):
        assert JsonFileStore(str(path)).get("x") is None
    [rec] = caplog.records
    assert rec.msg == "failed to read store %s: %s"
    assert rec.args[0] == str(path)


def test_factories_follow_config(tmp_path):
    cfg = CoordinatorModel.model_validate(
        {
            "routing": {"kind": "osrm", "base_url": "http://osrm.local"},
            "storage": {"kind": "json_file", "path": str(tmp_path / "s.json")},
            "uplink": {"base_url": "http://api.local"},
        }
    )
    assert isinstance(make_routing(cfg.routing), OsrmRouting)
    assert isinstance(make_store(cfg.storage), JsonFileStore)
    assert isinstance(make_uplink(cfg.uplink, token=lambda: None), HttpLocationUplink)
    default = CoordinatorModel()
    assert isinstance(make_routing(default.routing), StraightLineRouting)
    assert isinstance(make_store(default.storage), MemoryStore)
    assert make_uplink(default.uplink, token=lambda: None) is None


def test_config_rejects_unknown_keys():
    with pytest.raises(ValueError):
        CoordinatorModel.model_validate({"offers": {"dedup_window_s": 0}})
    with pytest.raises(ValueError):
        CoordinatorModel.model_validate({"nope": 1})


def test_loopback_server_first_accept_wins():
    server = LoopbackServer()
    a, b = LoopbackChannel(), LoopbackChannel()
    server.attach(a)
    server.attach(b)
    a.connect()
    b.connect()
    got_b: list = []
    b.subscribe(lambda name, payload: got_b.append((name, payload)))
    acks: list = []
    a.emit("acceptRide", {"rideId": "R1", "driverId": "A"}, ack=acks.append)
    b.emit("acceptRide", {"rideId": "R1", "driverId": "B"}, ack=acks.append)
    assert acks[0]["success"] is True
    assert acks[1]["conflict"] is True and acks[1]["currentDriver"] == "A"
    assert ("rideTakenByOther", {"rideId": "R1", "takenBy": "A"}) in got_b


def test_loopback_channel_refuses_when_disconnected():
    ch = LoopbackChannel()
    with pytest.raises(ChannelError):
        ch.emit("acceptRide", {})
