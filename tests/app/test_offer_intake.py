# tests/app/test_offer_intake.py
from ride_coord.domain.state import RideState


def test_same_ride_on_both_transports_alerts_once(rig):
    rig.online()
    rig.offer()
    assert len(rig.presenter.offers) == 1
    assert rig.hooks.names().count("OfferPresented") == 1
    assert rig.hooks.names().count("OfferReceived") == 2


def test_dedup_window_expires_after_thirty_seconds(rig):
    rig.online()
    rig.offer()
    rig.c.reject()
    rig.advance(29.0)
    rig.offer()
    assert len(rig.presenter.offers) == 1
    rig.advance(1.5)
    rig.offer()
    assert len(rig.presenter.offers) == 2
    assert rig.state.ride_state is RideState.OFFERED


def test_vehicle_mismatch_is_dropped_silently(rig):
    rig.online()
    rig.offer(vehicleType="BIKE")
    assert rig.presenter.offers == []
    assert rig.presenter.alerts == []
    assert rig.state.ride_state is RideState.IDLE


def test_vehicle_class_compare_ignores_case(rig):
    rig.online()
    rig.offer(vehicleType="TAXI")
    assert rig.state.ride_state is RideState.OFFERED


def test_offline_driver_gets_no_offers(rig):
    rig.c.start()
    rig.advance()
    rig.offer()
    assert rig.presenter.offers == []


def test_malformed_offers_are_dropped(rig):
    rig.online()
    rig.offer("R1", pickup={"lat": "north"})
    rig.channel.deliver("newRideRequest", {"pickup": {}})
    rig.advance()
    assert rig.presenter.offers == []
    assert rig.state.ride_state is RideState.IDLE


def test_second_offer_while_busy_is_dropped(rig):
    rig.online()
    rig.offer("R1")
    rig.offer("R2")
    assert [o.ride_id for o in rig.presenter.offers] == ["R1"]
    assert rig.state.offer.ride_id == "R1"
    # R2 was still seen, so a redelivery inside the window stays quiet
    rig.c.reject()
    rig.offer("R2")
    assert rig.state.ride_state is RideState.IDLE
