from dataclasses import dataclass

from ride_coord.domain.entities.geography import Position


@dataclass(frozen=True)
class Fare:
    distance_km: float  # straight leg, rounded to 2 decimals
    fare: int
    rate_per_km: float


@dataclass(frozen=True)
class Bill:
    ride_id: str
    distance_km: float
    fare: int
    rate_per_km: float
    travel_time_min: int
    travelled_km: float  # cumulative path, informational only
    rider_name: str
    vehicle_type: str
    actual_pickup: Position
    actual_drop: Position
