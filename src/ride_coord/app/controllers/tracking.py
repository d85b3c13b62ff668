# ride_coord/app/controllers/tracking.py
import logging

from ride_coord.app.events import (
    LiveLocationDue,
    PositionFailed,
    PositionSampled,
    RideAccepted,
    RideCleared,
    RideCompleted,
    RideRestored,
    UplinkFailed,
)
from ride_coord.app.protocols import IoExecutor, LocationUplink, PositionProvider, Subscription
from ride_coord.app.session import Session
from ride_coord.config.models import TrackingModel
from ride_coord.domain.geo import haversine_km
from ride_coord.domain.state import ACTIVE_RIDE_STATES, RideState

logger = logging.getLogger(__name__)


class LocationTracker:
    """
    Owns the position subscription. Every sample moves lastPosition and, while
    a ride is active, the distance ledger; only every Nth sample is uplinked.
    """

    def __init__(
        self,
        session: Session,
        positions: PositionProvider,
        executor: IoExecutor,
        cfg: TrackingModel,
        uplink: LocationUplink | None = None,
    ):
        self.session = session
        self.positions = positions
        self.executor = executor
        self.cfg = cfg
        self.uplink = uplink
        self._sub: Subscription | None = None
        self._samples = 0
        self._live_token = 0

    @property
    def active(self) -> bool:
        return self._sub is not None

    def start(self) -> None:
        """Raises LocationUnavailableError; the caller decides what the driver sees."""
        if self._sub is not None:
            return
        post = self.session.post
        self._sub = self.positions.subscribe(
            lambda sample: post(PositionSampled(t=0.0, sample=sample)),
            lambda reason: post(PositionFailed(t=0.0, reason=str(reason))),
            distance_filter_m=self.cfg.distance_filter_m,
            interval_ms=self.cfg.interval_ms,
            fastest_interval_ms=self.cfg.fastest_interval_ms,
            high_accuracy=self.cfg.high_accuracy,
        )
        logger.info("position tracking started")

    def stop(self) -> None:
        self._live_token += 1
        if self._sub is not None:
            self._sub.close()
            self._sub = None
            logger.info("position tracking stopped")

    # ------------ samples --------------

    def on_position_sampled(self, ev: PositionSampled):
        s = self.session.state
        if ev.sample is None or not s.online:
            return []  # a sample that raced going offline
        cur = ev.sample.position
        prev = s.last_position
        if prev is not None and s.ride_state in ACTIVE_RIDE_STATES:
            s.ledger.add(haversine_km(prev, cur), in_progress=s.ride_state is RideState.IN_PROGRESS)
        s.last_position = cur
        s.last_speed_mps = ev.sample.speed_mps
        self._samples += 1
        if self._samples % self.cfg.uplink_every == 0:
            self._publish(ev.t)
        self.session.touch()
        return []

    def _publish(self, t: float, status: str | None = None) -> None:
        s = self.session.state
        if status is None:
            status = "onRide" if s.ride_state in ACTIVE_RIDE_STATES else "Live"
        payload = {
            "driverId": s.driver_id,
            "driverName": s.driver_name,
            "latitude": s.last_position.latitude,
            "longitude": s.last_position.longitude,
            "vehicleType": s.vehicle_type,
            "speed": s.last_speed_mps,
            "status": status,
            "rideId": s.ride_id,
            "timestamp": self.session.clock.iso(t),
        }
        if self.uplink is not None:
            self.executor.submit(
                lambda: self.uplink.publish(payload),
                on_error=lambda exc, at: UplinkFailed(t=at, reason=str(exc)),
            )
        if self.session.channel.connected:
            self.session.send("driverLocationUpdate", payload)

    def publish_offline(self, t: float) -> None:
        """Last uplink before the subscription goes away."""
        if self.session.state.last_position is not None:
            self._publish(t, status="offline")

    def on_position_failed(self, ev: PositionFailed):
        logger.error("position provider error: %s", ev.reason)
        return []

    def on_uplink_failed(self, ev: UplinkFailed):
        logger.warning("location uplink failed: %s", ev.reason)
        return []

    # ------------ live location while on a ride --------------

    def _start_live(self, t: float):
        self._live_token += 1
        return [LiveLocationDue(t=t + self.cfg.live_location_every_s, token=self._live_token)]

    def on_ride_accepted(self, ev: RideAccepted):
        return self._start_live(ev.t)

    def on_ride_restored(self, ev: RideRestored):
        return self._start_live(ev.t)

    def on_ride_ended(self, ev: RideCleared | RideCompleted):
        self._live_token += 1
        return []

    def on_live_location_due(self, ev: LiveLocationDue):
        s = self.session.state
        if ev.token != self._live_token or s.ride_state not in ACTIVE_RIDE_STATES:
            return []
        if s.last_position is not None and self.session.channel.connected:
            self.session.send(
                "driverLiveLocation",
                {
                    "driverId": s.driver_id,
                    "rideId": s.ride_id,
                    "userId": s.offer.rider_id,
                    "latitude": s.last_position.latitude,
                    "longitude": s.last_position.longitude,
                    "speed": s.last_speed_mps,
                    "timestamp": self.session.clock.iso(ev.t),
                },
            )
        return [LiveLocationDue(t=ev.t + self.cfg.live_location_every_s, token=ev.token)]
