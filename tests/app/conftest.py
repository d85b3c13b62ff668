# tests/app/conftest.py
import math

import pytest

from ride_coord.app.build import build
from ride_coord.config.models import CoordinatorModel
from ride_coord.domain.entities.geography import Position, PositionSample
from ride_coord.domain.geo import EARTH_RADIUS_M
from ride_coord.services.loopback import LoopbackChannel, LoopbackPush, LoopbackServer, ManualPositionProvider
from ride_coord.services.routing import StraightLineRouting
from ride_coord.services.storage import MemoryStore
from ride_coord.services.uplink import MemoryUplink
from ride_coord.sim.clock import SimClock
from ride_coord.sim.hooks import NoopHooks
from ride_coord.sim.kernel import Kernel

START = Position(12.9716, 77.5946)


def north_of(p: Position, metres: float) -> Position:
    return Position(p.latitude + math.degrees(metres / EARTH_RADIUS_M), p.longitude)


PICKUP = north_of(START, 400)
DROP = north_of(PICKUP, 3000)


def offer_payload(ride_id="R1", **overrides):
    payload = {
        "rideId": ride_id,
        "pickup": {"lat": PICKUP.latitude, "lng": PICKUP.longitude, "address": "Pickup"},
        "drop": {"lat": DROP.latitude, "lng": DROP.longitude, "address": "Drop"},
        "otp": "4321",
        "fare": 90,
        "distance": "3 km",
        "vehicleType": "taxi",
        "userName": "Ravi",
        "userMobile": "98",
        "userId": "U1",
    }
    payload.update(overrides)
    return payload


class RecordingPresenter:
    def __init__(self):
        self.renders = 0
        self.offers = []
        self.bills = []
        self.alerts: list[tuple[str, str]] = []
        self.reauth: list[str] = []

    def render(self, view):
        self.renders += 1

    def show_offer(self, offer):
        self.offers.append(offer)

    def show_bill(self, bill):
        self.bills.append(bill)

    def alert(self, title, message):
        self.alerts.append((title, message))

    def require_reauth(self, reason):
        self.reauth.append(reason)

    def titles(self) -> list[str]:
        return [t for t, _ in self.alerts]


# --- test hook that records dispatch order & business records ---
class TraceHooks(NoopHooks):
    def __init__(self):
        self.trace: list[tuple[float, str]] = []
        self.records = []

    def dispatch_start(self, ev, *, seq, qsize, handlers):
        self.trace.append((ev.t, type(ev).__name__))

    def biz(self, rec):
        self.records.append(rec)

    def names(self) -> list[str]:
        return [n for _, n in self.trace]


class Rig:
    """One driver device wired to in-memory collaborators."""

    START, PICKUP, DROP = START, PICKUP, DROP
    payload = staticmethod(offer_payload)
    north_of = staticmethod(north_of)

    def __init__(
        self,
        *,
        server: LoopbackServer | None = None,
        arbitrate: bool = True,
        driver_id: str = "D1",
        vehicle_type: str = "taxi",
        store: MemoryStore | None = None,
        routing=None,
        executor=None,
        positions_available: bool = True,
        cfg: dict | None = None,
    ):
        self.server = server or (LoopbackServer() if arbitrate else None)
        self.channel, self.push = LoopbackChannel(), LoopbackPush()
        if self.server is not None:
            self.server.attach(self.channel, self.push)
        self.positions = ManualPositionProvider(available=positions_available)
        self.presenter = RecordingPresenter()
        if store is None:
            store = MemoryStore({"driverId": driver_id, "driverName": f"Driver {driver_id}"})
            if vehicle_type:
                store.set("driverVehicleType", vehicle_type)
        self.store = store
        self.uplink = MemoryUplink()
        self.hooks = TraceHooks()
        self.kernel = Kernel(hooks=self.hooks)
        self.app = build(
            CoordinatorModel.model_validate(cfg or {}),
            channel=self.channel,
            push=self.push,
            positions=self.positions,
            presenter=self.presenter,
            store=self.store,
            routing=routing or StraightLineRouting(),
            uplink=self.uplink,
            executor=executor(self.kernel) if executor else None,
            kernel=self.kernel,
            clock=SimClock.utc_epoch(2024, 1, 1, 9),
        )
        self.c = self.app.coordinator

    @property
    def state(self):
        return self.app.state

    def advance(self, seconds: float = 0.0) -> int:
        return self.app.advance(seconds)

    def at(self, pos: Position, then: float = 0.0) -> None:
        self.positions.push(PositionSample(pos, speed_mps=8.0))
        self.advance(then)

    def online(self, pos: Position = START) -> "Rig":
        self.c.start()
        self.c.go_online()
        self.advance()
        self.at(pos)
        return self

    def offer(self, ride_id="R1", *, via_push=True, via_socket=True, **overrides) -> None:
        payload = offer_payload(ride_id, **overrides)
        if self.server is not None:
            self.server.publish_offer(payload, via_push=via_push, via_socket=via_socket)
        else:
            if via_socket:
                self.channel.deliver("newRideRequest", dict(payload))
            if via_push:
                self.push.deliver("rideRequest", dict(payload))
        self.advance()

    def accept(self) -> None:
        self.c.accept()
        self.advance()

    def drive(self, a: Position, b: Position, steps: int, every: float = 3.0) -> None:
        for i in range(1, steps + 1):
            f = i / steps
            self.at(
                Position(a.latitude + (b.latitude - a.latitude) * f, a.longitude + (b.longitude - a.longitude) * f),
                then=every,
            )

    def sent(self, name: str) -> list[dict]:
        return self.channel.sent(name)


@pytest.fixture
def rig():
    return Rig()


@pytest.fixture
def make_rig():
    return Rig
