import json
import os
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

VEHICLE_CLASSES = ("bike", "taxi", "port", "sedan", "mini", "suv")


class LogModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    run_id: str = "local"
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False
    sample_every: int = 1


class DriverModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    vehicle_classes: tuple[str, ...] = VEHICLE_CLASSES
    default_vehicle_type: str = "taxi"

    def normalize_vehicle_type(self, value: str | None) -> str:
        """Unknown or empty classes fall back to the default class."""
        v = (value or "").strip().lower()
        return v if v in self.vehicle_classes else self.default_vehicle_type


class OffersModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    dedup_window_s: float = 30.0
    offer_timeout_s: float = 30.0
    accept_timeout_s: float = 20.0

    @field_validator("dedup_window_s", "offer_timeout_s", "accept_timeout_s")
    @classmethod
    def _positive(cls, v: float, info: ValidationInfo) -> float:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return v


class TrackingModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    distance_filter_m: float = 5.0
    interval_ms: int = 3000
    fastest_interval_ms: int = 2000
    high_accuracy: bool = True
    uplink_every: int = Field(default=3, ge=1)
    live_location_every_s: float = 3.0


class RoutesModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    pickup_refresh_s: float = 2.0
    drop_refresh_s: float = 3.0
    full_refresh_s: float = 10.0
    trim_throttle_s: float = 0.5


# ----------------- ROUTING ---------------------


class RoutingOsrmModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: Literal["osrm"] = "osrm"
    base_url: str = "https://router.project-osrm.org"
    profile: Literal["driving", "walking", "cycling"] = "driving"
    timeout_s: float = 5.0


class RoutingStraightModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: Literal["straight"] = "straight"


RoutingUnion = Annotated[RoutingOsrmModel | RoutingStraightModel, Field(discriminator="kind")]


# ----------------- STORAGE ---------------------


class StorageMemoryModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: Literal["memory"] = "memory"


class StorageJsonFileModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    kind: Literal["json_file"] = "json_file"
    path: str

    @field_validator("path")
    @classmethod
    def _expand(cls, v: str) -> str:
        return os.path.expandvars(os.path.expanduser(v))


StorageUnion = Annotated[StorageMemoryModel | StorageJsonFileModel, Field(discriminator="kind")]


# ----------------- FARE / UPLINK ---------------------


class FareModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    minimum_fare: int = 50
    default_rate_per_km: float = 15.0
    rates_per_km: dict[str, float] = Field(default_factory=dict)

    def rate_for(self, vehicle_type: str) -> float:
        return self.rates_per_km.get(vehicle_type.lower(), self.default_rate_per_km)


class UplinkModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    base_url: str | None = None
    timeout_s: float = 5.0


# ------------------------------------------------------------------


class CoordinatorModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    log: LogModel = LogModel()
    driver: DriverModel = DriverModel()
    offers: OffersModel = OffersModel()
    tracking: TrackingModel = TrackingModel()
    routes: RoutesModel = RoutesModel()
    routing: RoutingUnion = Field(default_factory=RoutingStraightModel)
    storage: StorageUnion = Field(default_factory=StorageMemoryModel)
    fare: FareModel = FareModel()
    uplink: UplinkModel = UplinkModel()

    @classmethod
    def from_file(cls, path: str) -> "CoordinatorModel":
        with open(os.path.expanduser(path), encoding="utf-8") as f:
            return cls.model_validate(json.load(f))
