# ride_coord/app/controllers/presence.py
import logging

from ride_coord.app.controllers.persistence import (
    AUTH_TOKEN_KEY,
    DRIVER_ID_KEY,
    DRIVER_NAME_KEY,
    ONLINE_KEY,
    VEHICLE_TYPE_KEY,
    SnapshotKeeper,
)
from ride_coord.app.controllers.routes import RouteComputer
from ride_coord.app.controllers.tracking import LocationTracker
from ride_coord.app.events import (
    AppForegrounded,
    AppStarted,
    ChannelConnected,
    ChannelMessage,
    GoOfflineRequested,
    GoOnlineRequested,
    OfferReceived,
    PositionSampled,
    RejectRequested,
    RideTakenByOther,
)
from ride_coord.app.protocols import KeyValueStore, PushRelay, Subscription
from ride_coord.app.session import Session
from ride_coord.config.models import DriverModel
from ride_coord.domain.errors import LocationUnavailableError, SessionError
from ride_coord.domain.state import ACTIVE_RIDE_STATES, RideState

logger = logging.getLogger(__name__)


class PresenceHandler:
    """
    Driver session and transports: identity, online/offline, channel and
    push subscriptions, and translating inbound traffic into kernel events.
    """

    def __init__(
        self,
        session: Session,
        store: KeyValueStore,
        push: PushRelay,
        tracker: LocationTracker,
        routes: RouteComputer,
        keeper: SnapshotKeeper,
        driver: DriverModel,
    ):
        self.session = session
        self.store = store
        self.push = push
        self.tracker = tracker
        self.routes = routes
        self.keeper = keeper
        self.driver = driver
        self._channel_sub: Subscription | None = None
        self._push_sub: Subscription | None = None
        self._registered = False

    @property
    def auth_token(self) -> str | None:
        return self.store.get(AUTH_TOKEN_KEY)

    # ------------ inbound translation --------------

    def _on_channel(self, name: str, payload: dict) -> None:
        post = self.session.post
        payload = payload or {}
        if name == "connect":
            post(ChannelConnected(t=0.0))
        elif name == "newRideRequest":
            post(OfferReceived(t=0.0, payload=payload, source="socket"))
        elif name == "rideTakenByOther":
            post(RideTakenByOther(t=0.0, ride_id=str(payload.get("rideId", "")), taken_by=payload.get("takenBy"), source="socket"))
        else:
            post(ChannelMessage(t=0.0, name=name, payload=payload))

    def _on_push(self, name: str, payload: dict) -> None:
        post = self.session.post
        payload = payload or {}
        if name == "rideRequest":
            post(OfferReceived(t=0.0, payload=payload, source="push"))
        elif name == "rideTakenByOther":
            post(RideTakenByOther(t=0.0, ride_id=str(payload.get("rideId", "")), taken_by=payload.get("takenBy"), source="push"))
        else:
            logger.debug("push %s ignored", name)

    # ------------ identity --------------

    def load_identity(self) -> None:
        s = self.session.state
        driver_id = self.store.get(DRIVER_ID_KEY)
        if not driver_id:
            raise SessionError("no driver id stored")
        s.driver_id = driver_id
        s.driver_name = self.store.get(DRIVER_NAME_KEY) or "Driver"
        stored = self.store.get(VEHICLE_TYPE_KEY)
        s.vehicle_type = self.driver.normalize_vehicle_type(stored) if stored else ""

    def _register(self) -> None:
        s = self.session.state
        if self._registered or s.last_position is None or not self.session.channel.connected:
            return
        sent = self.session.send(
            "registerDriver",
            {
                "driverId": s.driver_id,
                "driverName": s.driver_name,
                "latitude": s.last_position.latitude,
                "longitude": s.last_position.longitude,
                "vehicleType": s.vehicle_type,
            },
        )
        self._registered = sent

    # ------------ lifecycle --------------

    def on_app_started(self, ev: AppStarted):
        try:
            self.load_identity()
        except SessionError as exc:
            logger.warning("session invalid: %s", exc)
            self.session.presenter.require_reauth(str(exc))
            return []
        if self._push_sub is None:
            self._push_sub = self.push.subscribe(self._on_push)
        out = self.keeper.restore(ev.t)
        if self.store.get(ONLINE_KEY) == "online" or self.session.state.ride_state in ACTIVE_RIDE_STATES:
            out.extend(self.go_online(ev.t))
        return out

    def on_app_foregrounded(self, ev: AppForegrounded):
        # the keeper restores first; a restored ride needs its subscriptions back
        if self.session.state.online and not self.tracker.active:
            return self.go_online(ev.t)
        return []

    def on_go_online(self, ev: GoOnlineRequested):
        return self.go_online(ev.t)

    def go_online(self, t: float):
        s = self.session.state
        if s.online and self.tracker.active:
            return []
        if not s.driver_id or not s.vehicle_type:
            self.session.presenter.require_reauth("vehicle class missing")
            logger.warning("go online refused: no identity or vehicle class")
            return []
        try:
            self.tracker.start()
        except LocationUnavailableError as exc:
            s.online = False
            self.session.presenter.alert("Location Required", f"{exc}. Enable location and try again.")
            self.session.touch()
            return []
        s.online = True
        self.store.set(ONLINE_KEY, "online")
        if self._channel_sub is None:
            self._channel_sub = self.session.channel.subscribe(self._on_channel)
        if self.session.channel.connected:
            self._register()
        else:
            self.session.channel.connect()
        self.session.touch()
        logger.info("driver online", extra={"extra": {"driver_id": s.driver_id}})
        return []

    def on_go_offline(self, ev: GoOfflineRequested):
        s = self.session.state
        if not s.online:
            return []
        if s.ride_state in ACTIVE_RIDE_STATES or s.ride_state is RideState.COMPLETED:
            self.session.presenter.alert("Ride in progress", "Finish the current ride before going offline.")
            return []
        if s.ride_state is RideState.OFFERED:
            if ev.after_reject:
                return []  # the reject was refused; stay online
            # reject first, then come back here
            return [RejectRequested(t=ev.t, ride_id=s.ride_id), GoOfflineRequested(t=ev.t, after_reject=True)]

        self.tracker.publish_offline(ev.t)
        self.session.send("driverOffline", {"driverId": s.driver_id})
        self.tracker.stop()
        self.routes.stop()
        self.release_channel()
        s.online = False
        self.store.set(ONLINE_KEY, "offline")
        self.session.touch()
        logger.info("driver offline", extra={"extra": {"driver_id": s.driver_id}})
        return []

    # ------------ channel --------------

    def on_channel_connected(self, ev: ChannelConnected):
        self._registered = False  # every connect registers again
        if self.session.state.online:
            self._register()
        return []

    def on_position_sampled(self, ev: PositionSampled):
        if self.session.state.online and not self._registered:
            self._register()
        return []

    def on_channel_message(self, ev: ChannelMessage):
        logger.debug("channel %s", ev.name, extra={"extra": {"payload": ev.payload}})
        return []

    def release_channel(self) -> None:
        if self._channel_sub is not None:
            self._channel_sub.close()
            self._channel_sub = None
        self.session.channel.disconnect()
        self._registered = False

    def shutdown(self) -> None:
        """Release every subscription; safe to call on any exit path."""
        self.tracker.stop()
        self.routes.stop()
        if self._push_sub is not None:
            self._push_sub.close()
            self._push_sub = None
        self.release_channel()
