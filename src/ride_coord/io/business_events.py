# ride_coord/io/business_events.py

from dataclasses import dataclass
from typing import Literal


# Base type for analytics records (not scheduled in the kernel!)
@dataclass(kw_only=True)
class BizEvent:
    t: float  # kernel time
    name: str  # stable event name
    run_id: str = ""  # stamped by the hooks on the way out


@dataclass(kw_only=True)
class OfferSurfacedBiz(BizEvent):
    ride_id: str
    source: Literal["push", "socket"]


@dataclass(kw_only=True)
class AcceptResolvedBiz(BizEvent):
    ride_id: str
    outcome: Literal["accepted", "conflict", "network_error"]
    attempt: int
    winner: str | None = None


@dataclass(kw_only=True)
class RideStartedBiz(BizEvent):
    ride_id: str
    since_accept_km: float | None = None


@dataclass(kw_only=True)
class RideCompletedBiz(BizEvent):
    ride_id: str
    distance_km: float
    fare: int
    travelled_km: float | None = None


@dataclass(kw_only=True)
class RideClearedBiz(BizEvent):
    ride_id: str | None
    reason: Literal["rejected", "timeout", "conflict", "taken", "completed", "offline"]
