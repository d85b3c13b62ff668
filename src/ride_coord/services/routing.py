# services/routing.py
# Routing adapters.
# Sole responsibility: talk to the routing backend and return an ordered
# list of Positions. No ride rules here.

import logging

import requests

from ride_coord.domain.entities.geography import Position
from ride_coord.domain.errors import RoutingError

logger = logging.getLogger(__name__)


class StraightLineRouting:
    """Two-point route; also the degraded shape of any failed fetch."""

    def route(self, origin: Position, destination: Position) -> list[Position]:
        return [origin, destination]


class OsrmRouting:
    """
    OSRM /route client.

    - Converts internal (lat, lon) to OSRM "lon,lat;lon,lat"
    - Requests full GeoJSON geometry
    - Returns the first route's vertices as Positions
    """

    def __init__(
        self,
        base_url: str = "https://router.project-osrm.org",
        profile: str = "driving",
        timeout_s: float = 5.0,
        session: requests.Session | None = None,
    ):
        if not base_url:
            raise ValueError("OSRM base URL not set.")
        self.base_url = base_url.rstrip("/")
        self.profile = profile
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

    @staticmethod
    def format_coordinates(points: list[Position]) -> str:
        return ";".join(f"{p.longitude},{p.latitude}" for p in points)

    def route(self, origin: Position, destination: Position) -> list[Position]:
        coords = self.format_coordinates([origin, destination])
        url = f"{self.base_url}/route/v1/{self.profile}/{coords}"
        try:
            response = self.session.get(
                url,
                params={"overview": "full", "geometries": "geojson"},
                timeout=self.timeout_s,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise RoutingError(f"OSRM request failed: {exc}") from exc

        if data.get("code") != "Ok" or not data.get("routes"):
            raise RoutingError(f"OSRM error: {data.get('message', data.get('code', 'no route'))}")

        coordinates = data["routes"][0].get("geometry", {}).get("coordinates") or []
        points = [Position(float(lat), float(lon)) for lon, lat, *_ in coordinates]
        if not points:
            raise RoutingError("OSRM returned an empty geometry")
        logger.debug("route fetched", extra={"extra": {"points": len(points)}})
        return points
