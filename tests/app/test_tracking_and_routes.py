# tests/app/test_tracking_and_routes.py
import pytest

from ride_coord.domain.entities.geography import Position
from ride_coord.domain.errors import RoutingError
from ride_coord.domain.state import RideState
from ride_coord.services.executor import InlineExecutor


class CountingRouting:
    def __init__(self, fail: bool = False):
        self.calls: list[tuple[Position, Position]] = []
        self.fail = fail

    def route(self, origin, destination):
        self.calls.append((origin, destination))
        if self.fail:
            raise RoutingError("backend down")
        mid = Position((origin.latitude + destination.latitude) / 2, (origin.longitude + destination.longitude) / 2)
        return [origin, mid, destination]


def slow(kernel):
    return InlineExecutor(kernel, latency_s=1.0)


def test_idle_samples_do_not_accumulate_distance(rig):
    rig.online()
    rig.drive(rig.START, rig.PICKUP, 3)
    assert rig.state.ledger.total_travelled_km == 0.0
    assert rig.state.last_position is not None


def test_every_third_sample_is_uplinked(rig):
    rig.online()
    rig.drive(rig.START, rig.PICKUP, 5)
    assert len(rig.uplink.published) == 2
    assert len(rig.sent("driverLocationUpdate")) == 2
    assert rig.uplink.published[0]["status"] == "Live"
    assert rig.uplink.published[0]["rideId"] is None


def test_uplink_failure_is_logged_only(make_rig):
    rig = make_rig()

    def broken(payload):
        raise ConnectionError("no network")

    rig.uplink.publish = broken
    rig.online()
    rig.drive(rig.START, rig.PICKUP, 3)
    assert "UplinkFailed" in rig.hooks.names()
    assert rig.state.last_position is not None


def test_position_errors_do_not_touch_state(rig):
    rig.online()
    rig.offer()
    rig.accept()
    rig.positions.fail("gps lost")
    rig.advance()
    assert rig.state.ride_state is RideState.ACCEPTED
    assert "PositionFailed" in rig.hooks.names()


def test_live_location_heartbeat_only_while_on_ride(rig):
    rig.online()
    rig.offer()
    rig.accept()
    rig.advance(9.5)
    assert len(rig.sent("driverLiveLocation")) == 3
    rig.push.deliver("rideTakenByOther", {"rideId": "R1"})
    rig.advance(10)
    assert len(rig.sent("driverLiveLocation")) == 3


def test_pickup_route_debounces_samples(make_rig):
    routing = CountingRouting()
    rig = make_rig(routing=routing)
    rig.online()
    rig.offer()
    rig.accept()
    assert len(routing.calls) == 1
    assert rig.state.trace.leg == "pickup"
    assert len(rig.state.trace.full) == 3

    here = rig.START
    for _ in range(4):
        here = rig.north_of(here, 20)
        rig.at(here, then=0.5)
    assert len(routing.calls) == 1
    rig.advance(2.0)
    assert len(routing.calls) == 2
    assert routing.calls[-1][0] == here


def test_routing_failure_degrades_to_straight_line(make_rig):
    rig = make_rig(routing=CountingRouting(fail=True))
    rig.online()
    rig.offer()
    rig.accept()
    assert rig.state.trace.full == (rig.START, rig.PICKUP)
    assert rig.state.ride_state is RideState.ACCEPTED


def test_overlapping_requests_coalesce(make_rig):
    routing = CountingRouting()
    rig = make_rig(routing=routing, executor=slow)
    rig.online()
    rig.offer()
    rig.accept()  # first request in flight for 1s
    rig.app.routes.request("pickup", rig.START)
    rig.app.routes.request("pickup", rig.START)
    assert len(routing.calls) == 1
    rig.advance(1.0)
    assert len(routing.calls) == 2  # one follow-up for both triggers
    rig.advance(1.0)
    assert len(routing.calls) == 2


def test_stale_pickup_route_is_dropped_after_otp(make_rig):
    routing = CountingRouting()
    rig = make_rig(routing=routing, executor=slow)
    rig.online(rig.PICKUP)
    rig.offer()
    rig.accept()  # pickup reply lands in 1s
    rig.c.enter_otp("4321")
    rig.advance(1.0)
    assert rig.state.ride_state is RideState.IN_PROGRESS
    assert rig.state.trace.leg == "drop"
    assert rig.state.trace.full[-1] == rig.DROP


def test_drop_route_refreshes_periodically(make_rig):
    routing = CountingRouting()
    rig = make_rig(routing=routing)
    rig.online(rig.PICKUP)
    rig.offer()
    rig.accept()
    rig.c.enter_otp("4321")
    rig.advance()
    n = len(routing.calls)
    rig.advance(25)
    assert len(routing.calls) == n + 2


def test_trim_keeps_visible_a_suffix_of_full(make_rig):
    rig = make_rig(routing=CountingRouting())
    rig.online(rig.PICKUP)
    rig.offer()
    rig.accept()
    rig.c.enter_otp("4321")
    rig.advance()
    mid = rig.state.trace.full[1]
    rig.at(mid, then=0.5)
    trace = rig.state.trace
    assert trace.nearest_index == 1
    assert trace.visible[0] == mid
    assert trace.visible[1:] == trace.full[trace.nearest_index :]


def test_trim_fires_while_samples_arrive_faster_than_throttle(make_rig):
    rig = make_rig(routing=CountingRouting())
    rig.online(rig.PICKUP)
    rig.offer()
    rig.accept()
    rig.c.enter_otp("4321")
    rig.advance()
    full = rig.state.trace.full
    rig.drive(rig.PICKUP, full[1], 10, every=0.2)
    assert rig.state.trace.full == full
    assert rig.state.trace.nearest_index == 1
    assert rig.state.trace.visible[1:] == full[1:]


@pytest.mark.parametrize("vehicle, rate", [("bike", 8.0), ("taxi", 15.0)])
def test_rate_follows_vehicle_class(make_rig, vehicle, rate):
    rig = make_rig(vehicle_type=vehicle, cfg={"fare": {"rates_per_km": {"bike": 8.0}}})
    rig.online(rig.PICKUP)
    rig.offer(vehicleType=vehicle)
    rig.accept()
    rig.c.enter_otp("4321")
    rig.advance()
    rig.at(rig.DROP)
    rig.c.complete()
    rig.advance()
    assert rig.presenter.bills[0].rate_per_km == rate
