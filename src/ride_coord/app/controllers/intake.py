# ride_coord/app/controllers/intake.py
import logging
from collections.abc import Mapping

from ride_coord.app.events import DedupExpired, OfferPresented, OfferReceived
from ride_coord.app.session import Session
from ride_coord.config.models import DriverModel, OffersModel
from ride_coord.domain.entities.offer import parse_offer
from ride_coord.domain.errors import OfferValidationError
from ride_coord.domain.machine import Trigger, next_state
from ride_coord.domain.state import RideState
from ride_coord.io.business_events import OfferSurfacedBiz

logger = logging.getLogger(__name__)


class OfferIntake:
    """
    Both transports feed this one handler. The dedup set is keyed purely by
    rideId and each entry evicts itself `dedup_window_s` after first sight.
    """

    def __init__(self, session: Session, offers: OffersModel, driver: DriverModel):
        self.session = session
        self.offers = offers
        self.driver = driver
        self.seen: set[str] = set()

    def _drop(self, ride_id, reason: str, source: str) -> None:
        logger.info("offer dropped", extra={"extra": {"ride_id": ride_id, "reason": reason, "source": source}})

    def on_offer_received(self, ev: OfferReceived):
        raw = ev.payload
        ride_id = raw.get("rideId") if isinstance(raw, Mapping) else None
        if ride_id is None or str(ride_id).strip() == "":
            self._drop(None, "missing_ride_id", ev.source)
            return []
        ride_id = str(ride_id)
        if ride_id in self.seen:
            self._drop(ride_id, "duplicate", ev.source)
            return []

        self.seen.add(ride_id)
        out: list[object] = [DedupExpired(t=ev.t + self.offers.dedup_window_s, ride_id=ride_id)]

        state = self.session.state
        if not state.online:
            self._drop(ride_id, "offline", ev.source)
            return out

        offered = str(raw.get("vehicleType") or "")
        if offered and state.vehicle_type and offered.lower() != state.vehicle_type.lower():
            self._drop(ride_id, "vehicle_mismatch", ev.source)
            return out

        try:
            offer = parse_offer(raw, fallback_vehicle_type=state.vehicle_type)
        except OfferValidationError as exc:
            logger.warning("malformed offer %s: %s", ride_id, exc)
            return out

        # re-read: the driver may have taken another offer since this one was queued
        if state.ride_state is not RideState.IDLE:
            self._drop(ride_id, f"busy_{state.ride_state.value}", ev.source)
            return out

        state.ride_state = next_state(state.ride_state, Trigger.OFFER)
        state.offer = offer
        self.session.presenter.show_offer(offer)
        self.session.touch()
        self.session.record(OfferSurfacedBiz(t=ev.t, name="OfferSurfaced", ride_id=ride_id, source=ev.source))
        out.append(OfferPresented(t=ev.t, ride_id=ride_id))
        return out

    def on_dedup_expired(self, ev: DedupExpired):
        self.seen.discard(ev.ride_id)
        return []
