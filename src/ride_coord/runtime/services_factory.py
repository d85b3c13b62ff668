# ride_coord/runtime/services_factory.py
from collections.abc import Callable

from ride_coord.app.protocols import KeyValueStore, LocationUplink, RoutingService
from ride_coord.config.models import (
    RoutingOsrmModel,
    RoutingStraightModel,
    RoutingUnion,
    StorageJsonFileModel,
    StorageMemoryModel,
    StorageUnion,
    UplinkModel,
)
from ride_coord.services.routing import OsrmRouting, StraightLineRouting
from ride_coord.services.storage import JsonFileStore, MemoryStore
from ride_coord.services.uplink import HttpLocationUplink


def make_routing(cfg: RoutingUnion) -> RoutingService:
    if isinstance(cfg, RoutingOsrmModel):
        return OsrmRouting(base_url=cfg.base_url, profile=cfg.profile, timeout_s=cfg.timeout_s)
    elif isinstance(cfg, RoutingStraightModel):
        return StraightLineRouting()
    else:
        raise TypeError(cfg)


def make_store(cfg: StorageUnion) -> KeyValueStore:
    if isinstance(cfg, StorageJsonFileModel):
        return JsonFileStore(cfg.path)
    elif isinstance(cfg, StorageMemoryModel):
        return MemoryStore()
    else:
        raise TypeError(cfg)


def make_uplink(cfg: UplinkModel, *, token: Callable[[], str | None]) -> LocationUplink | None:
    if not cfg.base_url:
        return None
    return HttpLocationUplink(cfg.base_url, token=token, timeout_s=cfg.timeout_s)
