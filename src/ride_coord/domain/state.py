# ride_coord/domain/state.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from ride_coord.domain.entities.bill import Bill
from ride_coord.domain.entities.geography import Polyline, Position
from ride_coord.domain.entities.offer import RideOffer
from ride_coord.domain.geo import nearest_index

Leg = Literal["pickup", "drop"]


class RideState(Enum):
    IDLE = "idle"
    OFFERED = "offered"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class DriverStatus(Enum):
    OFFLINE = "offline"
    ONLINE = "online"
    ON_RIDE = "on_ride"


ACTIVE_RIDE_STATES = frozenset({RideState.ACCEPTED, RideState.IN_PROGRESS})


@dataclass
class DistanceLedger:
    total_travelled_km: float = 0.0
    since_verified_km: float = 0.0

    def add(self, km: float, *, in_progress: bool) -> None:
        self.total_travelled_km += km
        if in_progress:
            self.since_verified_km += km

    def reset_since_verified(self) -> None:
        self.since_verified_km = 0.0


@dataclass
class RouteTrace:
    leg: Leg | None = None
    full: Polyline = ()
    visible: Polyline = ()
    nearest_index: int = 0

    def replace_full(self, leg: Leg, polyline: Polyline, current: Position | None) -> None:
        # last write wins; trimming restarts against the new polyline
        self.leg = leg
        self.full = tuple(polyline)
        self.nearest_index = 0
        self.visible = self.full
        if current is not None:
            self.trim(current)

    def trim(self, current: Position) -> bool:
        idx = nearest_index(current, self.full)
        if idx is None:
            return False
        self.nearest_index = idx
        self.visible = (current, *self.full[idx:])
        return True

    def clear(self) -> None:
        self.leg, self.full, self.visible, self.nearest_index = None, (), (), 0


@dataclass(frozen=True)
class CoordinatorView:
    """Read-only picture handed to the presentation layer."""

    ride_state: RideState
    driver_status: DriverStatus
    offer: RideOffer | None
    total_travelled_km: float
    since_verified_km: float
    route_leg: Leg | None
    full_route: Polyline
    visible_route: Polyline
    nearest_index: int
    last_position: Position | None
    bill: Bill | None


@dataclass(frozen=True)
class RideSnapshot:
    ride: RideOffer | None
    ride_state: RideState
    driver_status: DriverStatus
    total_travelled_km: float
    since_verified_km: float
    route_leg: Leg | None
    full_route: Polyline
    visible_route: Polyline
    nearest_index: int
    last_position: Position | None
    verification_position: Position | None
    saved_at: str = ""


@dataclass
class CoordinatorState:
    driver_id: str = ""
    driver_name: str = ""
    vehicle_type: str = ""
    online: bool = False
    ride_state: RideState = RideState.IDLE
    offer: RideOffer | None = None
    ledger: DistanceLedger = field(default_factory=DistanceLedger)
    trace: RouteTrace = field(default_factory=RouteTrace)
    last_position: Position | None = None
    last_speed_mps: float | None = None
    verification_position: Position | None = None
    bill: Bill | None = None

    @property
    def driver_status(self) -> DriverStatus:
        if self.ride_state in ACTIVE_RIDE_STATES:
            return DriverStatus.ON_RIDE
        return DriverStatus.ONLINE if self.online else DriverStatus.OFFLINE

    @property
    def ride_id(self) -> str | None:
        return self.offer.ride_id if self.offer else None

    def is_current(self, ride_id: str | None) -> bool:
        return ride_id is not None and self.ride_id == ride_id

    def clear_ride(self) -> None:
        self.ride_state = RideState.IDLE
        self.offer = None
        self.ledger = DistanceLedger()
        self.trace.clear()
        self.verification_position = None
        self.bill = None

    def view(self) -> CoordinatorView:
        return CoordinatorView(
            ride_state=self.ride_state,
            driver_status=self.driver_status,
            offer=self.offer,
            total_travelled_km=self.ledger.total_travelled_km,
            since_verified_km=self.ledger.since_verified_km,
            route_leg=self.trace.leg,
            full_route=self.trace.full,
            visible_route=self.trace.visible,
            nearest_index=self.trace.nearest_index,
            last_position=self.last_position,
            bill=self.bill,
        )

    def snapshot(self, saved_at: str = "") -> RideSnapshot:
        return RideSnapshot(
            ride=self.offer,
            ride_state=self.ride_state,
            driver_status=self.driver_status,
            total_travelled_km=self.ledger.total_travelled_km,
            since_verified_km=self.ledger.since_verified_km,
            route_leg=self.trace.leg,
            full_route=self.trace.full,
            visible_route=self.trace.visible,
            nearest_index=self.trace.nearest_index,
            last_position=self.last_position,
            verification_position=self.verification_position,
            saved_at=saved_at,
        )

    def restore(self, snap: RideSnapshot) -> None:
        self.offer = snap.ride
        self.ride_state = snap.ride_state
        self.online = snap.driver_status is not DriverStatus.OFFLINE
        self.ledger = DistanceLedger(snap.total_travelled_km, snap.since_verified_km)
        self.trace = RouteTrace(
            leg=snap.route_leg,
            full=tuple(snap.full_route),
            visible=tuple(snap.visible_route),
            nearest_index=snap.nearest_index,
        )
        self.last_position = snap.last_position
        self.verification_position = snap.verification_position
        self.bill = None
