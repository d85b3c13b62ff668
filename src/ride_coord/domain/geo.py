# domain/geo.py
# Great-circle helpers. Pure functions, no project state.

import math
from collections.abc import Sequence

import numpy as np

from ride_coord.domain.entities.geography import Position

EARTH_RADIUS_KM = 6371.0
EARTH_RADIUS_M = EARTH_RADIUS_KM * 1000.0


def haversine_m(a: Position, b: Position) -> float:
    """
    Great-circle distance between two positions in metres.

    Symmetric, and exactly zero for identical positions.
    """
    d_lat = math.radians(b.latitude - a.latitude)
    d_lon = math.radians(b.longitude - a.longitude)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.latitude))
        * math.cos(math.radians(b.latitude))
        * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def haversine_km(a: Position, b: Position) -> float:
    return haversine_m(a, b) / 1000.0


def distances_m(origin: Position, points: Sequence[Position]) -> np.ndarray:
    """Vectorised haversine from one origin to every point, in metres."""
    lat = np.radians(np.fromiter((p.latitude for p in points), dtype=float, count=len(points)))
    lon = np.radians(np.fromiter((p.longitude for p in points), dtype=float, count=len(points)))
    lat0, lon0 = math.radians(origin.latitude), math.radians(origin.longitude)
    h = np.sin((lat - lat0) / 2) ** 2 + math.cos(lat0) * np.cos(lat) * np.sin((lon - lon0) / 2) ** 2
    h = np.clip(h, 0.0, 1.0)
    return EARTH_RADIUS_M * 2 * np.arctan2(np.sqrt(h), np.sqrt(1 - h))


def nearest_index(origin: Position, points: Sequence[Position]) -> int | None:
    """Index of the vertex closest to origin; ties resolve to the first one."""
    if not points:
        return None
    return int(np.argmin(distances_m(origin, points)))
