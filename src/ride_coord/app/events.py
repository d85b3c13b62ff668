# app/events.py
from dataclasses import dataclass, field
from typing import Any, Literal

from ride_coord.domain.entities.geography import Polyline, PositionSample
from ride_coord.domain.state import Leg
from ride_coord.sim.event import BaseEvent

OfferSource = Literal["push", "socket"]
AcceptOutcome = Literal["accepted", "conflict", "network_error"]
RefreshKind = Literal["debounce", "full"]


# Inbound from transports
@dataclass(order=True)
class OfferReceived(BaseEvent):
    payload: dict[str, Any] = field(default_factory=dict)
    source: OfferSource = "socket"


@dataclass(order=True)
class AcceptResponded(BaseEvent):
    ride_id: str = ""
    attempt: int = 0  # versioning to make late acks harmless
    response: dict[str, Any] = field(default_factory=dict)


@dataclass(order=True)
class RideTakenByOther(BaseEvent):
    ride_id: str = ""
    taken_by: str | None = None
    source: OfferSource = "socket"


@dataclass(order=True)
class ChannelConnected(BaseEvent):
    pass


@dataclass(order=True)
class ChannelMessage(BaseEvent):
    """Inbound channel traffic that does not drive the state machine."""

    name: str = ""
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(order=True)
class PositionSampled(BaseEvent):
    sample: PositionSample | None = None


@dataclass(order=True)
class PositionFailed(BaseEvent):
    reason: str = ""


# Driver intents
@dataclass(order=True)
class GoOnlineRequested(BaseEvent):
    pass


@dataclass(order=True)
class GoOfflineRequested(BaseEvent):
    after_reject: bool = False


@dataclass(order=True)
class AcceptRequested(BaseEvent):
    ride_id: str = ""


@dataclass(order=True)
class RejectRequested(BaseEvent):
    ride_id: str = ""


@dataclass(order=True)
class OtpEntered(BaseEvent):
    code: str = ""


@dataclass(order=True)
class CompleteRequested(BaseEvent):
    pass


@dataclass(order=True)
class BillAcknowledged(BaseEvent):
    pass


# App lifecycle
@dataclass(order=True)
class AppStarted(BaseEvent):
    pass


@dataclass(order=True)
class AppBackgrounded(BaseEvent):
    pass


@dataclass(order=True)
class AppForegrounded(BaseEvent):
    pass


# Ride lifecycle (emitted by controllers)
@dataclass(order=True)
class OfferPresented(BaseEvent):
    ride_id: str = ""


@dataclass(order=True)
class AcceptResolved(BaseEvent):
    ride_id: str = ""
    outcome: AcceptOutcome = "accepted"
    winner: str | None = None
    response: dict[str, Any] = field(default_factory=dict)


@dataclass(order=True)
class RideAccepted(BaseEvent):
    ride_id: str = ""


@dataclass(order=True)
class RideStarted(BaseEvent):
    ride_id: str = ""


@dataclass(order=True)
class RideCompleted(BaseEvent):
    ride_id: str = ""
    fare: int = 0


@dataclass(order=True)
class RideCleared(BaseEvent):
    ride_id: str | None = None
    reason: str = ""


@dataclass(order=True)
class RideRestored(BaseEvent):
    ride_id: str = ""


# Timers & guards (token = generation; stale tokens are ignored)
@dataclass(order=True)
class DedupExpired(BaseEvent):
    ride_id: str = ""


@dataclass(order=True)
class OfferTimedOut(BaseEvent):
    ride_id: str = ""
    token: int = 0


@dataclass(order=True)
class AcceptDeadline(BaseEvent):
    ride_id: str = ""
    attempt: int = 0


@dataclass(order=True)
class RouteRefreshDue(BaseEvent):
    leg: Leg = "pickup"
    kind: RefreshKind = "debounce"
    token: int = 0


@dataclass(order=True)
class RouteComputed(BaseEvent):
    leg: Leg = "pickup"
    request_id: int = 0
    polyline: Polyline = ()
    degraded: bool = False


@dataclass(order=True)
class TrimDue(BaseEvent):
    token: int = 0


@dataclass(order=True)
class LiveLocationDue(BaseEvent):
    token: int = 0


@dataclass(order=True)
class UplinkFailed(BaseEvent):
    reason: str = ""
