# ride_coord/app/controllers/rides.py
import logging

from ride_coord.app.controllers.arbiter import AcceptanceArbiter
from ride_coord.app.events import (
    AcceptResolved,
    BillAcknowledged,
    CompleteRequested,
    OfferPresented,
    OfferTimedOut,
    OtpEntered,
    RejectRequested,
    RideAccepted,
    RideCleared,
    RideCompleted,
    RideStarted,
    RideTakenByOther,
)
from ride_coord.app.session import Session
from ride_coord.config.models import FareModel, OffersModel
from ride_coord.domain.entities.bill import Bill
from ride_coord.domain.entities.offer import RideOffer, merge_ack
from ride_coord.domain.errors import InvalidOtpError
from ride_coord.domain.machine import Trigger, next_state
from ride_coord.domain.state import RideState
from ride_coord.io.business_events import RideClearedBiz, RideCompletedBiz, RideStartedBiz
from ride_coord.policy.pricing import StraightLegFarePolicy

logger = logging.getLogger(__name__)


def verify_otp(offer: RideOffer, code: str) -> None:
    if not offer.otp:
        raise InvalidOtpError("OTP not yet received", "Ask the rider to wait a moment.")
    if code.strip() != offer.otp:
        raise InvalidOtpError("Invalid OTP", "The code does not match this ride.")


class RideHandler:
    def __init__(
        self,
        session: Session,
        arbiter: AcceptanceArbiter,
        offers: OffersModel,
        fare: FareModel,
        pricing: StraightLegFarePolicy | None = None,
    ):
        self.session = session
        self.arbiter = arbiter
        self.offers = offers
        self.fare = fare
        self.pricing = pricing or StraightLegFarePolicy(minimum_fare=fare.minimum_fare)
        self._offer_token = 0  # bumps on every Offered exit; stale timeouts no-op
        self._offer_deadline = 0.0
        self._timeout_deferred = False

    @property
    def state(self):
        return self.session.state

    def _ride_status(self, ride_id: str, status: str, t: float, **extra) -> dict:
        return {
            "rideId": ride_id,
            "driverId": self.state.driver_id,
            "status": status,
            "timestamp": self.session.clock.iso(t),
            **extra,
        }

    def enter_idle(self, t: float, trigger: Trigger, reason: str):
        """Force Idle. Safe to call twice; only the first exit emits RideCleared."""
        s = self.state
        if s.ride_state is RideState.IDLE and s.offer is None:
            return []
        next_state(s.ride_state, trigger)
        ride_id = s.ride_id
        self._offer_token += 1
        s.clear_ride()
        self.session.touch()
        self.session.record(RideClearedBiz(t=t, name="RideCleared", ride_id=ride_id, reason=reason))
        return [RideCleared(t=t, ride_id=ride_id, reason=reason)]

    # ------------ offers --------------

    def on_offer_presented(self, ev: OfferPresented):
        self._offer_token += 1
        self._offer_deadline = ev.t + self.offers.offer_timeout_s
        self._timeout_deferred = False
        return [OfferTimedOut(t=self._offer_deadline, ride_id=ev.ride_id, token=self._offer_token)]

    def on_offer_timed_out(self, ev: OfferTimedOut):
        if ev.token != self._offer_token or not self.state.is_current(ev.ride_id):
            return []
        if self.state.ride_state is not RideState.OFFERED:
            return []
        if self.arbiter.in_flight(ev.ride_id):
            self._timeout_deferred = True  # re-armed if the accept fails
            return []
        self.session.send(
            "rejectRide", {"rideId": ev.ride_id, "driverId": self.state.driver_id, "reason": "timeout"}
        )
        return self.enter_idle(ev.t, Trigger.TIMEOUT, "timeout")

    def on_reject_requested(self, ev: RejectRequested):
        ride_id = ev.ride_id or self.state.ride_id
        if self.state.ride_state is not RideState.OFFERED or not self.state.is_current(ride_id):
            return []
        if self.arbiter.in_flight(ride_id):
            self.session.presenter.alert("Please wait", "Your acceptance is being confirmed.")
            return []
        self.session.send("rejectRide", {"rideId": ride_id, "driverId": self.state.driver_id})
        return self.enter_idle(ev.t, Trigger.REJECT, "rejected")

    # ------------ acceptance --------------

    def on_accept_resolved(self, ev: AcceptResolved):
        s = self.state
        if ev.outcome == "accepted":
            # a taken-by-other or timeout may have landed first
            if s.ride_state is not RideState.OFFERED or not s.is_current(ev.ride_id):
                logger.info("late accept for %s ignored in %s", ev.ride_id, s.ride_state.value)
                return []
            s.ride_state = next_state(s.ride_state, Trigger.ACCEPT_CONFIRMED)
            s.offer = merge_ack(s.offer, ev.response.get("rideDetails") or ev.response)
            self._offer_token += 1
            self.session.touch()
            self.session.presenter.alert("Ride Accepted", "Head to the pickup location.")
            return [RideAccepted(t=ev.t, ride_id=ev.ride_id)]

        if ev.outcome == "conflict":
            self.session.send(
                "rideTakenNotificationCleared", {"rideId": ev.ride_id, "driverId": s.driver_id}
            )
            if not s.is_current(ev.ride_id):
                return []
            self.session.presenter.alert(
                "Ride Already Taken", f"This ride was accepted by {ev.winner or 'another driver'}."
            )
            trigger = Trigger.ACCEPT_CONFLICT if s.ride_state is RideState.OFFERED else Trigger.TAKEN_BY_OTHER
            return self.enter_idle(ev.t, trigger, "conflict")

        # network error: the offer stays up so the driver can try again
        if s.is_current(ev.ride_id):
            msg = ev.response.get("message") or "Could not reach the server."
            self.session.presenter.alert("Accept Failed", str(msg))
            if s.ride_state is RideState.OFFERED and self._timeout_deferred:
                self._timeout_deferred = False
                return [
                    OfferTimedOut(t=max(ev.t, self._offer_deadline), ride_id=ev.ride_id, token=self._offer_token)
                ]
        return []

    def on_ride_taken_by_other(self, ev: RideTakenByOther):
        s = self.state
        if not s.is_current(ev.ride_id):
            return []
        self.session.presenter.alert(
            "Ride Already Taken", f"This ride was accepted by {ev.taken_by or 'another driver'}."
        )
        return self.enter_idle(ev.t, Trigger.TAKEN_BY_OTHER, "taken")

    # ------------ trip --------------

    def on_otp_entered(self, ev: OtpEntered):
        s = self.state
        if s.ride_state is not RideState.ACCEPTED:
            logger.info("otp ignored in %s", s.ride_state.value)
            return []
        try:
            verify_otp(s.offer, ev.code)
        except InvalidOtpError as exc:
            self.session.presenter.alert(exc.title, str(exc))
            return []
        if s.last_position is None:
            self.session.presenter.alert("Location Required", "Waiting for a GPS fix before starting.")
            return []

        ride_id = s.ride_id
        s.ride_state = next_state(s.ride_state, Trigger.OTP_VERIFIED)
        s.verification_position = s.last_position
        since_accept = s.ledger.total_travelled_km
        s.ledger.reset_since_verified()
        self.session.touch()

        self.session.send(
            "otpVerified",
            {
                "rideId": ride_id,
                "driverId": s.driver_id,
                "userId": s.offer.rider_id,
                "timestamp": self.session.clock.iso(ev.t),
                "driverLocation": s.last_position.as_payload(),
            },
        )
        self.session.send(
            "rideStarted",
            {"rideId": ride_id, "driverId": s.driver_id, "userId": s.offer.rider_id},
        )
        self.session.send("updateRideStatus", self._ride_status(ride_id, "started", ev.t, otpVerified=True))
        self.session.presenter.alert("OTP Verified", "Ride started. Drive safely.")
        self.session.record(
            RideStartedBiz(t=ev.t, name="RideStarted", ride_id=ride_id, since_accept_km=since_accept)
        )
        return [RideStarted(t=ev.t, ride_id=ride_id)]

    def on_complete_requested(self, ev: CompleteRequested):
        s = self.state
        if s.ride_state is not RideState.IN_PROGRESS:
            logger.info("complete ignored in %s", s.ride_state.value)
            return []
        if s.verification_position is None or s.last_position is None:
            self.session.presenter.alert("Cannot Complete", "Missing pickup or current location.")
            return []

        rate = self.fare.rate_for(s.vehicle_type or s.offer.vehicle_type)
        fare = self.pricing.finalize(s.verification_position, s.last_position, rate)
        bill = Bill(
            ride_id=s.ride_id,
            distance_km=fare.distance_km,
            fare=fare.fare,
            rate_per_km=fare.rate_per_km,
            travel_time_min=round(fare.distance_km * 10),
            travelled_km=round(s.ledger.since_verified_km, 2),
            rider_name=s.offer.rider_name,
            vehicle_type=s.offer.vehicle_type or s.vehicle_type,
            actual_pickup=s.verification_position,
            actual_drop=s.last_position,
        )
        s.ride_state = next_state(s.ride_state, Trigger.COMPLETE)
        s.bill = bill
        self.session.touch()

        self.session.send(
            "rideCompleted",
            {
                "rideId": bill.ride_id,
                "driverId": s.driver_id,
                "userId": s.offer.rider_id,
                "distance": bill.distance_km,
                "fare": bill.fare,
                "actualPickup": bill.actual_pickup.as_payload(),
                "actualDrop": bill.actual_drop.as_payload(),
            },
        )
        self.session.presenter.show_bill(bill)
        self.session.record(
            RideCompletedBiz(
                t=ev.t,
                name="RideCompleted",
                ride_id=bill.ride_id,
                distance_km=bill.distance_km,
                fare=bill.fare,
                travelled_km=bill.travelled_km,
            )
        )
        return [RideCompleted(t=ev.t, ride_id=bill.ride_id, fare=bill.fare)]

    def on_bill_acknowledged(self, ev: BillAcknowledged):
        if self.state.ride_state is not RideState.COMPLETED:
            return []
        self.session.presenter.alert("Ride Completed", "You are available for new rides.")
        return self.enter_idle(ev.t, Trigger.BILL_ACKNOWLEDGED, "completed")
