# ride_coord/policy/pricing.py
import math

from ride_coord.domain.entities.bill import Fare
from ride_coord.domain.entities.geography import Position
from ride_coord.domain.geo import haversine_m


def round_half_up(x: float) -> int:
    return math.floor(x + 0.5)


class StraightLegFarePolicy:
    """
    Bills the straight leg between the OTP-verification point and the
    completion point, not the accumulated path.
    """

    def __init__(self, minimum_fare: int = 50):
        self.minimum_fare = minimum_fare

    def finalize(self, verification: Position, completion: Position, rate_per_km: float) -> Fare:
        distance_km = haversine_m(verification, completion) / 1000
        fare = max(self.minimum_fare, round_half_up(distance_km * rate_per_km))
        return Fare(distance_km=round(distance_km, 2), fare=fare, rate_per_km=rate_per_km)
