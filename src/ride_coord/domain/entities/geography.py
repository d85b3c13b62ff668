from dataclasses import dataclass


# Core geometry types shared by tracking, routing and fares
@dataclass(frozen=True)
class Position:
    latitude: float  # degrees, WGS84
    longitude: float

    def as_payload(self) -> dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class Place:
    position: Position
    address: str = ""

    @property
    def latitude(self) -> float:
        return self.position.latitude

    @property
    def longitude(self) -> float:
        return self.position.longitude


@dataclass(frozen=True)
class PositionSample:
    position: Position
    speed_mps: float | None = None  # provider-reported, may be absent


Polyline = tuple[Position, ...]
