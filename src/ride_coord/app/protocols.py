from collections.abc import Callable, Sequence
from typing import Any, Protocol, runtime_checkable

from ride_coord.domain.entities.bill import Bill
from ride_coord.domain.entities.geography import Position, PositionSample
from ride_coord.domain.entities.offer import RideOffer
from ride_coord.domain.state import CoordinatorView

Ack = Callable[[dict[str, Any]], None]
MessageHandler = Callable[[str, dict[str, Any]], None]


@runtime_checkable
class Subscription(Protocol):
    """Handle for a scoped resource; close() must be safe to call twice."""

    def close(self) -> None: ...


# ------------- Transports --------------------
@runtime_checkable
class RealtimeChannel(Protocol):
    """
    Bidirectional event channel to the backend.
    Outbound: registerDriver, acceptRide, rejectRide, otpVerified, rideStarted,
    updateRideStatus, driverLiveLocation, driverLocationUpdate, rideCompleted,
    rideTakenNotificationCleared, driverOffline.
    Inbound: connect, newRideRequest, rideAccepted, driverLiveLocation,
    rideStarted, rideTakenByOther.
    """

    @property
    def connected(self) -> bool: ...
    def connect(self) -> None: ...
    def disconnect(self) -> None: ...
    def emit(self, name: str, payload: dict[str, Any], ack: Ack | None = None) -> None:
        """Raise ChannelError when not connected."""
    def subscribe(self, handler: MessageHandler) -> Subscription: ...


@runtime_checkable
class PushRelay(Protocol):
    """Store-and-forward notifications: rideRequest and rideTakenByOther."""

    def subscribe(self, handler: MessageHandler) -> Subscription: ...


@runtime_checkable
class PositionProvider(Protocol):
    def subscribe(
        self,
        on_sample: Callable[[PositionSample], None],
        on_error: Callable[[str], None],
        *,
        distance_filter_m: float,
        interval_ms: int,
        fastest_interval_ms: int,
        high_accuracy: bool,
    ) -> Subscription:
        """Raise LocationUnavailableError without permission or fix."""


# ------------- Services ----------------------
@runtime_checkable
class RoutingService(Protocol):
    def route(self, origin: Position, destination: Position) -> Sequence[Position]:
        """Raise RoutingError on failure."""


@runtime_checkable
class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def remove(self, key: str) -> None: ...


@runtime_checkable
class LocationUplink(Protocol):
    def publish(self, payload: dict[str, Any]) -> None: ...


@runtime_checkable
class IoExecutor(Protocol):
    """Runs blocking collaborator calls and turns their results into events."""

    def submit(
        self,
        fn: Callable[[], Any],
        on_result: Callable[[Any, float], Any] | None = None,
        on_error: Callable[[BaseException, float], Any] | None = None,
    ) -> None: ...


# ------------- Presentation ------------------
@runtime_checkable
class Presenter(Protocol):
    def render(self, view: CoordinatorView) -> None: ...
    def show_offer(self, offer: RideOffer) -> None: ...
    def show_bill(self, bill: Bill) -> None: ...
    def alert(self, title: str, message: str) -> None: ...
    def require_reauth(self, reason: str) -> None: ...


class NullPresenter:
    def render(self, view):
        pass

    def show_offer(self, offer):
        pass

    def show_bill(self, bill):
        pass

    def alert(self, title, message):
        pass

    def require_reauth(self, reason):
        pass
