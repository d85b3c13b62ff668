# tests/app/test_ride_lifecycle.py
import pytest

from ride_coord.app.build import build
from ride_coord.app.controllers.persistence import SNAPSHOT_KEY, load_snapshot
from ride_coord.domain.entities.geography import PositionSample
from ride_coord.domain.state import DriverStatus, RideState
from ride_coord.services.loopback import LoopbackChannel, LoopbackPush, LoopbackServer, ManualPositionProvider
from ride_coord.services.storage import MemoryStore


def test_full_ride_with_otp_reset(rig):
    S, P, D = rig.START, rig.PICKUP, rig.DROP
    rig.online()
    assert rig.state.driver_status is DriverStatus.ONLINE
    reg = rig.sent("registerDriver")
    assert reg and reg[0]["latitude"] == S.latitude and reg[0]["vehicleType"] == "taxi"

    rig.offer()
    assert rig.state.ride_state is RideState.OFFERED
    assert len(rig.presenter.offers) == 1

    rig.accept()
    assert rig.state.ride_state is RideState.ACCEPTED
    assert rig.state.driver_status is DriverStatus.ON_RIDE
    assert rig.sent("acceptRide")[0] == {"driverId": "D1", "rideId": "R1", "driverName": "Driver D1", "vehicleType": "taxi"}
    assert rig.state.trace.leg == "pickup"
    assert rig.store.get(SNAPSHOT_KEY)

    rig.drive(S, P, 4)
    travelled = rig.state.ledger.total_travelled_km
    assert travelled == pytest.approx(0.4, abs=1e-6)
    assert rig.state.ledger.since_verified_km == 0.0

    rig.c.enter_otp("0000")
    rig.advance()
    assert rig.state.ride_state is RideState.ACCEPTED
    assert rig.presenter.titles()[-1] == "Invalid OTP"

    rig.c.enter_otp(" 4321 ")
    rig.advance()
    assert rig.state.ride_state is RideState.IN_PROGRESS
    assert rig.state.ledger.since_verified_km == 0.0
    assert rig.state.ledger.total_travelled_km == travelled
    assert rig.state.verification_position == rig.state.last_position
    assert rig.sent("otpVerified")[0]["rideId"] == "R1"
    assert rig.sent("rideStarted")
    assert rig.sent("updateRideStatus")[0]["otpVerified"] is True
    assert rig.state.trace.leg == "drop"

    rig.drive(P, D, 6)
    ledger = rig.state.ledger
    assert ledger.since_verified_km == pytest.approx(3.0, abs=1e-6)
    assert ledger.since_verified_km <= ledger.total_travelled_km

    rig.c.complete()
    rig.advance()
    assert rig.state.ride_state is RideState.COMPLETED
    bill = rig.presenter.bills[0]
    assert (bill.distance_km, bill.fare, bill.rate_per_km) == (3.0, 50, 15)
    assert bill.travel_time_min == 30
    assert rig.sent("rideCompleted")[0]["fare"] == 50
    assert rig.store.get(SNAPSHOT_KEY)  # still recoverable until the bill is seen

    rig.c.acknowledge_bill()
    rig.advance()
    assert rig.state.ride_state is RideState.IDLE
    assert rig.state.offer is None
    assert rig.state.driver_status is DriverStatus.ONLINE
    assert rig.store.get(SNAPSHOT_KEY) is None
    assert [r.name for r in rig.hooks.records] == [
        "OfferSurfaced",
        "AcceptResolved",
        "RideStarted",
        "RideCompleted",
        "RideCleared",
    ]


def test_long_ride_bills_straight_leg(rig):
    P = rig.PICKUP
    far = rig.north_of(P, 20000)
    rig.online(P)
    rig.offer(drop={"lat": far.latitude, "lng": far.longitude})
    rig.accept()
    rig.c.enter_otp("4321")
    rig.advance()
    rig.drive(P, far, 10)
    rig.c.complete()
    rig.advance()
    bill = rig.presenter.bills[0]
    assert (bill.distance_km, bill.fare) == (20.0, 300)


def test_otp_needs_code_from_server(make_rig):
    rig = make_rig(arbitrate=False)
    rig.online()
    rig.offer(otp="")
    rig.accept()
    rig.channel.answer({"success": True})
    rig.advance()
    assert rig.state.ride_state is RideState.ACCEPTED
    rig.c.enter_otp("4321")
    rig.advance()
    assert rig.state.ride_state is RideState.ACCEPTED
    assert rig.presenter.titles()[-1] == "OTP not yet received"


def test_otp_from_accept_ack_is_merged(make_rig):
    rig = make_rig(arbitrate=False)
    rig.online()
    rig.offer(otp="")
    rig.accept()
    rig.channel.answer({"success": True, "rideDetails": {"otp": "9876", "userName": "Ravi K"}})
    rig.advance()
    assert rig.state.offer.otp == "9876"
    assert rig.state.offer.rider_name == "Ravi K"
    rig.c.enter_otp("9876")
    rig.advance()
    assert rig.state.ride_state is RideState.IN_PROGRESS


def test_reject_sends_reject_and_clears(rig):
    rig.online()
    rig.offer()
    rig.c.reject()
    rig.advance()
    assert rig.state.ride_state is RideState.IDLE
    assert rig.sent("rejectRide") == [{"rideId": "R1", "driverId": "D1"}]
    assert "RideCleared" in rig.hooks.names()


def test_offer_times_out(rig):
    rig.online()
    rig.offer()
    rig.advance(29.9)
    assert rig.state.ride_state is RideState.OFFERED
    rig.advance(0.2)
    assert rig.state.ride_state is RideState.IDLE
    assert rig.sent("rejectRide")[0]["reason"] == "timeout"


def test_snapshot_round_trips_through_store(rig):
    rig.online()
    rig.offer()
    rig.accept()
    snap = load_snapshot(rig.store.get(SNAPSHOT_KEY))
    assert snap.ride == rig.state.offer
    assert snap.ride_state is RideState.ACCEPTED
    assert snap.last_position == rig.START
    assert snap.saved_at.startswith("2024-01-01T09:00")


def test_headless_build_runs_a_ride_without_presenter(make_rig):
    server, channel, push = LoopbackServer(), LoopbackChannel(), LoopbackPush()
    server.attach(channel, push)
    positions = ManualPositionProvider()
    app = build(
        channel=channel,
        push=push,
        positions=positions,
        store=MemoryStore({"driverId": "D1", "driverVehicleType": "taxi"}),
        use_logging=False,
    )
    app.coordinator.start()
    app.coordinator.go_online()
    app.advance()
    positions.push(PositionSample(make_rig.START))
    app.advance()
    server.publish_offer(make_rig.payload("R9"))
    app.advance()
    app.coordinator.accept()
    app.advance()
    assert app.state.ride_state is RideState.ACCEPTED
