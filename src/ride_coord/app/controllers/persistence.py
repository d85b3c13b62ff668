# ride_coord/app/controllers/persistence.py
import logging

from pydantic import TypeAdapter, ValidationError

from ride_coord.app.events import AppBackgrounded, AppForegrounded, RideCleared, RideRestored
from ride_coord.app.protocols import KeyValueStore
from ride_coord.app.session import Session
from ride_coord.domain.state import ACTIVE_RIDE_STATES, CoordinatorState, RideSnapshot, RideState

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "rideState"
DRIVER_ID_KEY = "driverId"
DRIVER_NAME_KEY = "driverName"
VEHICLE_TYPE_KEY = "driverVehicleType"
AUTH_TOKEN_KEY = "authToken"
ONLINE_KEY = "driverOnlineStatus"

SNAPSHOT = TypeAdapter(RideSnapshot)


def dump_snapshot(snap: RideSnapshot) -> str:
    return SNAPSHOT.dump_json(snap).decode("utf-8")


def load_snapshot(raw: str) -> RideSnapshot:
    return SNAPSHOT.validate_json(raw)


class SnapshotKeeper:
    """
    Mirrors an in-flight ride into the store on every state change while the
    ride is Accepted or InProgress. The key is only removed once a completed
    ride's bill has been acknowledged; any other exit leaves an Idle
    tombstone so a restart cannot resurrect a lost ride.
    """

    def __init__(self, session: Session, store: KeyValueStore, now=lambda: 0.0):
        self.session = session
        self.store = store
        self.now = now
        session.listen(self.on_state_changed)

    def on_state_changed(self, state: CoordinatorState) -> None:
        if state.ride_state in ACTIVE_RIDE_STATES:
            self.save(state)

    def save(self, state: CoordinatorState) -> None:
        snap = state.snapshot(saved_at=self.session.clock.iso(self.now()))
        try:
            self.store.set(SNAPSHOT_KEY, dump_snapshot(snap))
        except OSError as exc:
            logger.error("snapshot write failed: %s", exc)

    def load(self) -> RideSnapshot | None:
        raw = self.store.get(SNAPSHOT_KEY)
        if not raw:
            return None
        try:
            return load_snapshot(raw)
        except ValidationError as exc:
            logger.error("unreadable snapshot ignored: %s", exc.errors()[:1])
            return None

    def restore(self, t: float):
        s = self.session.state
        if s.ride_state is not RideState.IDLE:
            return []
        snap = self.load()
        if snap is None or snap.ride is None or snap.ride_state not in ACTIVE_RIDE_STATES:
            return []
        s.restore(snap)
        logger.info("ride restored", extra={"extra": {"ride_id": snap.ride.ride_id, "state": snap.ride_state.value}})
        self.session.touch()
        return [RideRestored(t=t, ride_id=snap.ride.ride_id)]

    # ------------ handlers --------------

    def on_app_backgrounded(self, ev: AppBackgrounded):
        if self.session.state.ride_state in ACTIVE_RIDE_STATES:
            self.save(self.session.state)
        return []

    def on_app_foregrounded(self, ev: AppForegrounded):
        return self.restore(ev.t)

    def on_ride_cleared(self, ev: RideCleared):
        if ev.reason == "completed":
            self.store.remove(SNAPSHOT_KEY)
        elif self.store.get(SNAPSHOT_KEY):
            self.save(self.session.state)  # idle tombstone
        return []
