# ride_coord/app/controllers/arbiter.py
import logging
from typing import Any

from ride_coord.app.events import (
    AcceptDeadline,
    AcceptRequested,
    AcceptResolved,
    AcceptResponded,
)
from ride_coord.app.session import Session
from ride_coord.config.models import OffersModel
from ride_coord.domain.errors import ChannelError
from ride_coord.domain.state import RideState
from ride_coord.io.business_events import AcceptResolvedBiz

logger = logging.getLogger(__name__)


def classify(response: dict[str, Any]) -> tuple[str, str | None]:
    """Map an acceptRide ack onto (outcome, winner)."""
    if response.get("success"):
        return "accepted", None
    message = str(response.get("message") or "")
    if response.get("conflict") or "already" in message.lower():
        return "conflict", response.get("currentDriver")
    return "network_error", None


class AcceptanceArbiter:
    """
    Turns an accept intent into exactly one outcome per attempt. The server
    is the arbiter; this side only guarantees a single attempt in flight per
    ride and that a missing ack still resolves after `accept_timeout_s`.
    """

    def __init__(self, session: Session, offers: OffersModel):
        self.session = session
        self.offers = offers
        self._attempt = 0
        self._in_flight: dict[str, int] = {}  # ride_id -> attempt
        self.outcomes: dict[str, str] = {}

    def in_flight(self, ride_id: str | None) -> bool:
        return ride_id in self._in_flight

    def _resolve(self, t: float, ride_id: str, attempt: int, outcome: str, winner=None, response=None):
        self.outcomes[ride_id] = outcome
        self.session.record(
            AcceptResolvedBiz(
                t=t, name="AcceptResolved", ride_id=ride_id, outcome=outcome, attempt=attempt, winner=winner
            )
        )
        return [
            AcceptResolved(t=t, ride_id=ride_id, outcome=outcome, winner=winner, response=response or {})
        ]

    def on_accept_requested(self, ev: AcceptRequested):
        state = self.session.state
        ride_id = ev.ride_id or state.ride_id
        if state.ride_state is not RideState.OFFERED or not state.is_current(ride_id):
            logger.info("accept ignored", extra={"extra": {"ride_id": ride_id, "state": state.ride_state.value}})
            return []
        if ride_id in self._in_flight:
            return []  # double tap

        self._attempt += 1
        attempt = self._attempt
        self._in_flight[ride_id] = attempt
        payload = {
            "driverId": state.driver_id,
            "rideId": ride_id,
            "driverName": state.driver_name,
            "vehicleType": state.vehicle_type,
        }

        def _ack(response):
            self.session.post(AcceptResponded(t=ev.t, ride_id=ride_id, attempt=attempt, response=dict(response or {})))

        try:
            self.session.channel.emit("acceptRide", payload, ack=_ack)
        except ChannelError as exc:
            self._in_flight.pop(ride_id, None)
            return self._resolve(ev.t, ride_id, attempt, "network_error", response={"message": str(exc)})
        return [AcceptDeadline(t=ev.t + self.offers.accept_timeout_s, ride_id=ride_id, attempt=attempt)]

    def on_accept_responded(self, ev: AcceptResponded):
        if self._in_flight.get(ev.ride_id) != ev.attempt:
            logger.debug("late accept ack for %s dropped", ev.ride_id)
            return []
        del self._in_flight[ev.ride_id]
        outcome, winner = classify(ev.response)
        return self._resolve(ev.t, ev.ride_id, ev.attempt, outcome, winner, ev.response)

    def on_accept_deadline(self, ev: AcceptDeadline):
        if self._in_flight.get(ev.ride_id) != ev.attempt:
            return []
        del self._in_flight[ev.ride_id]
        logger.warning("accept ack timed out", extra={"extra": {"ride_id": ev.ride_id, "attempt": ev.attempt}})
        return self._resolve(ev.t, ev.ride_id, ev.attempt, "network_error", response={"message": "no response"})
