# domain/entities/offer.py
import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

from ride_coord.domain.entities.geography import Place, Position
from ride_coord.domain.errors import OfferValidationError


@dataclass(frozen=True)
class RideOffer:
    ride_id: str
    pickup: Place
    drop: Place
    otp: str | None = None
    fare: float = 0.0  # quoted estimate, not the billed fare
    distance_label: str = ""
    vehicle_type: str = ""
    rider_name: str = "Customer"
    rider_phone: str = "N/A"
    rider_id: str | None = None


def _number(v: Any) -> float | None:
    if isinstance(v, bool) or v is None:
        return None
    try:
        x = float(v)
    except (TypeError, ValueError):
        return None
    return x if math.isfinite(x) else None


def _first(m: Mapping, *keys: str) -> Any:
    for k in keys:
        if m.get(k) is not None:
            return m[k]
    return None


def parse_place(value: Any) -> Place:
    """
    Accepts the shapes both transports use: a mapping or a JSON-encoded
    mapping, with lat/lng or latitude/longitude keys.
    """
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError as exc:
            raise OfferValidationError(f"location is not valid JSON: {exc}") from exc
    if not isinstance(value, Mapping):
        raise OfferValidationError(f"location must be an object, got {type(value).__name__}")
    lat = _number(_first(value, "lat", "latitude"))
    lon = _number(_first(value, "lng", "lon", "longitude"))
    if lat is None or lon is None:
        raise OfferValidationError("location is missing numeric coordinates")
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        raise OfferValidationError(f"location out of range: {lat}, {lon}")
    address = _first(value, "address", "addr") or ""
    return Place(Position(lat, lon), str(address))


def parse_offer(raw: Mapping[str, Any], *, fallback_vehicle_type: str = "") -> RideOffer:
    """Normalise a raw newRideRequest payload into a RideOffer."""
    if not isinstance(raw, Mapping):
        raise OfferValidationError("offer payload must be an object")
    ride_id = raw.get("rideId")
    if ride_id is None or str(ride_id).strip() == "":
        raise OfferValidationError("offer has no rideId")
    pickup = parse_place(raw.get("pickup"))
    drop = parse_place(raw.get("drop"))
    otp = raw.get("otp")
    return RideOffer(
        ride_id=str(ride_id),
        pickup=pickup,
        drop=drop,
        otp=str(otp) if otp not in (None, "") else None,
        fare=_number(raw.get("fare")) or 0.0,
        distance_label=str(raw.get("distance") or "0 km"),
        vehicle_type=str(raw.get("vehicleType") or fallback_vehicle_type),
        rider_name=str(raw.get("userName") or "Customer"),
        rider_phone=str(_first(raw, "userMobile", "userPhone") or "N/A"),
        rider_id=str(raw["userId"]) if raw.get("userId") is not None else None,
    )


def merge_ack(offer: RideOffer, ack: Mapping[str, Any]) -> RideOffer:
    """Overlay the authoritative details a successful accept ack carries."""
    changes: dict[str, Any] = {}
    for key, field in (("pickup", "pickup"), ("drop", "drop")):
        if ack.get(key) is not None:
            try:
                changes[field] = parse_place(ack[key])
            except OfferValidationError:
                pass  # keep the offer's own location
    if ack.get("otp"):
        changes["otp"] = str(ack["otp"])
    fare = _number(ack.get("fare"))
    if fare:
        changes["fare"] = fare
    if ack.get("distance"):
        changes["distance_label"] = str(ack["distance"])
    if ack.get("vehicleType"):
        changes["vehicle_type"] = str(ack["vehicleType"])
    if ack.get("userName"):
        changes["rider_name"] = str(ack["userName"])
    phone = _first(ack, "userMobile", "userPhone")
    if phone:
        changes["rider_phone"] = str(phone)
    if ack.get("userId") is not None:
        changes["rider_id"] = str(ack["userId"])
    return replace(offer, **changes) if changes else offer
