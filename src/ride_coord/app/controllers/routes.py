# ride_coord/app/controllers/routes.py
import logging

from ride_coord.app.events import (
    PositionSampled,
    RideAccepted,
    RideCleared,
    RideCompleted,
    RideRestored,
    RideStarted,
    RouteComputed,
    RouteRefreshDue,
    TrimDue,
)
from ride_coord.app.protocols import IoExecutor, RoutingService
from ride_coord.app.session import Session
from ride_coord.config.models import RoutesModel
from ride_coord.domain.entities.geography import Polyline, Position
from ride_coord.domain.errors import RoutingError
from ride_coord.domain.state import Leg, RideState

logger = logging.getLogger(__name__)


def compute_route(routing: RoutingService, origin: Position, destination: Position) -> tuple[Polyline, bool]:
    """Returns (polyline, degraded). A failed route degrades to the straight pair."""
    try:
        pts = tuple(routing.route(origin, destination))
    except RoutingError as exc:
        logger.warning("routing failed, using straight line: %s", exc)
        return (origin, destination), True
    if len(pts) < 2:
        return (origin, destination), True
    return pts, False


def active_leg(state: RideState) -> Leg | None:
    if state is RideState.ACCEPTED:
        return "pickup"
    if state is RideState.IN_PROGRESS:
        return "drop"
    return None


class RouteComputer:
    """
    Keeps one route per active leg. Requests for a leg never overlap: a
    trigger that lands while one is in flight is folded into a single
    follow-up. Replies for a leg that is no longer active are dropped.
    """

    def __init__(self, session: Session, routing: RoutingService, executor: IoExecutor, cfg: RoutesModel):
        self.session = session
        self.routing = routing
        self.executor = executor
        self.cfg = cfg
        self._seq = 0
        self._in_flight: dict[Leg, int | None] = {"pickup": None, "drop": None}
        self._dirty: dict[Leg, bool] = {"pickup": False, "drop": False}
        self._debounce: dict[Leg, int] = {"pickup": 0, "drop": 0}
        self._full_token = 0
        self._trim_token = 0
        self._trim_pending = False

    def _destination(self, leg: Leg) -> Position:
        offer = self.session.state.offer
        return offer.pickup.position if leg == "pickup" else offer.drop.position

    def request(self, leg: Leg, origin: Position | None) -> None:
        if origin is None or self.session.state.offer is None:
            return  # the next sample will trigger it
        if self._in_flight[leg] is not None:
            self._dirty[leg] = True
            return
        self._seq += 1
        request_id = self._seq
        self._in_flight[leg] = request_id
        dest = self._destination(leg)

        def _done(result, t):
            polyline, degraded = result
            return RouteComputed(t=t, leg=leg, request_id=request_id, polyline=polyline, degraded=degraded)

        def _failed(exc, t):
            logger.error("routing raised %r, using straight line", exc)
            return RouteComputed(t=t, leg=leg, request_id=request_id, polyline=(origin, dest), degraded=True)

        self.executor.submit(lambda: compute_route(self.routing, origin, dest), _done, _failed)

    def stop(self) -> None:
        """Invalidate every pending timer and in-flight reply."""
        for leg in ("pickup", "drop"):
            self._in_flight[leg] = None
            self._dirty[leg] = False
            self._debounce[leg] += 1
        self._full_token += 1
        self._trim_token += 1
        self._trim_pending = False

    def _start_full_refresh(self, t: float):
        self._full_token += 1
        return [RouteRefreshDue(t=t + self.cfg.full_refresh_s, leg="drop", kind="full", token=self._full_token)]

    # ------------ lifecycle --------------

    def on_ride_accepted(self, ev: RideAccepted):
        self.stop()
        self.session.state.trace.clear()
        self.request("pickup", self.session.state.last_position)
        return []

    def on_ride_started(self, ev: RideStarted):
        s = self.session.state
        self.stop()  # pickup replies still in flight are now stale
        s.trace.clear()
        self.request("drop", s.verification_position or s.last_position)
        return self._start_full_refresh(ev.t)

    def on_ride_restored(self, ev: RideRestored):
        s = self.session.state
        leg = active_leg(s.ride_state)
        if leg is None:
            return []
        self.stop()
        self.request(leg, s.last_position)
        return self._start_full_refresh(ev.t) if leg == "drop" else []

    def on_ride_ended(self, ev: RideCleared | RideCompleted):
        self.stop()
        return []

    # ------------ triggers --------------

    def on_position_sampled(self, ev: PositionSampled):
        s = self.session.state
        leg = active_leg(s.ride_state)
        if leg is None:
            return []
        self._debounce[leg] += 1
        delay = self.cfg.pickup_refresh_s if leg == "pickup" else self.cfg.drop_refresh_s
        out: list[object] = [RouteRefreshDue(t=ev.t + delay, leg=leg, kind="debounce", token=self._debounce[leg])]
        if s.trace.full and not self._trim_pending:
            # leading edge: later samples ride along with the pending trim
            self._trim_pending = True
            self._trim_token += 1
            out.append(TrimDue(t=ev.t + self.cfg.trim_throttle_s, token=self._trim_token))
        return out

    def on_route_refresh_due(self, ev: RouteRefreshDue):
        s = self.session.state
        if ev.kind == "full":
            if ev.token != self._full_token or active_leg(s.ride_state) != "drop":
                return []
            self.request("drop", s.last_position)
            return [RouteRefreshDue(t=ev.t + self.cfg.full_refresh_s, leg="drop", kind="full", token=ev.token)]
        if ev.token != self._debounce[ev.leg] or active_leg(s.ride_state) != ev.leg:
            return []
        self.request(ev.leg, s.last_position)
        return []

    def on_route_computed(self, ev: RouteComputed):
        if self._in_flight[ev.leg] != ev.request_id:
            return []
        self._in_flight[ev.leg] = None
        s = self.session.state
        if active_leg(s.ride_state) != ev.leg:
            return []
        if ev.degraded:
            logger.info("route degraded", extra={"extra": {"leg": ev.leg, "ride_id": s.ride_id}})
        s.trace.replace_full(ev.leg, ev.polyline, s.last_position)
        self.session.touch()
        if self._dirty[ev.leg]:
            self._dirty[ev.leg] = False
            self.request(ev.leg, s.last_position)
        return []

    def on_trim_due(self, ev: TrimDue):
        s = self.session.state
        if ev.token != self._trim_token:
            return []
        self._trim_pending = False
        if s.last_position is None:
            return []
        if s.trace.leg is None or s.trace.leg != active_leg(s.ride_state):
            return []
        if s.trace.trim(s.last_position):
            self.session.touch()
        return []
