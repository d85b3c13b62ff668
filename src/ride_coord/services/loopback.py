# services/loopback.py
# In-process transports and a toy arbitration server. They stand in for the
# backend in replays, demos and tests; the server keeps the same contract as
# the real one (first accept wins, losers get a conflict and a fan-out).

import logging
from collections.abc import Callable
from typing import Any

from ride_coord.app.protocols import Ack, MessageHandler
from ride_coord.domain.entities.geography import PositionSample
from ride_coord.domain.errors import ChannelError, LocationUnavailableError

logger = logging.getLogger(__name__)


class Handle:
    def __init__(self, release: Callable[[], None]):
        self._release = release
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._release()


class _Fanout:
    def __init__(self):
        self.handlers: list[MessageHandler] = []

    def subscribe(self, handler: MessageHandler) -> Handle:
        self.handlers.append(handler)
        return Handle(lambda: self.handlers.remove(handler))

    def deliver(self, name: str, payload: dict[str, Any]) -> None:
        for h in list(self.handlers):
            h(name, payload)


class LoopbackChannel(_Fanout):
    def __init__(self, server: "LoopbackServer | None" = None):
        super().__init__()
        self.server = server
        self._connected = False
        self.outbox: list[tuple[str, dict[str, Any]]] = []
        self.pending_acks: list[tuple[str, dict[str, Any], Ack]] = []

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        if self._connected:
            return
        self._connected = True
        self.deliver("connect", {})

    def disconnect(self) -> None:
        self._connected = False

    def emit(self, name: str, payload: dict[str, Any], ack: Ack | None = None) -> None:
        if not self._connected:
            raise ChannelError(f"cannot emit {name}: channel disconnected")
        self.outbox.append((name, payload))
        response = self.server.handle(self, name, payload) if self.server else None
        if ack is None:
            return
        if response is not None:
            ack(response)
        else:
            self.pending_acks.append((name, payload, ack))

    def answer(self, response: dict[str, Any]) -> None:
        """Reply to the oldest unanswered ack."""
        _, _, ack = self.pending_acks.pop(0)
        ack(response)

    def sent(self, name: str) -> list[dict[str, Any]]:
        return [p for n, p in self.outbox if n == name]


class LoopbackPush(_Fanout):
    pass


class LoopbackServer:
    """First acceptRide for a rideId wins; everyone else is told it is taken."""

    def __init__(self):
        self.rides: dict[str, dict[str, Any]] = {}
        self.assigned: dict[str, str] = {}
        self.channels: list[LoopbackChannel] = []
        self.pushes: list[LoopbackPush] = []

    def attach(self, channel: LoopbackChannel, push: LoopbackPush | None = None) -> None:
        channel.server = self
        self.channels.append(channel)
        if push is not None:
            self.pushes.append(push)

    def publish_offer(self, payload: dict[str, Any], *, via_push: bool = True, via_socket: bool = True) -> None:
        self.rides[str(payload["rideId"])] = dict(payload)
        if via_socket:
            for ch in self.channels:
                if ch.connected:
                    ch.deliver("newRideRequest", dict(payload))
        if via_push:
            for p in self.pushes:
                p.deliver("rideRequest", dict(payload))

    def handle(self, channel: LoopbackChannel, name: str, payload: dict[str, Any]) -> dict[str, Any] | None:
        if name != "acceptRide":
            return None
        ride_id = str(payload.get("rideId"))
        driver_id = str(payload.get("driverId"))
        winner = self.assigned.get(ride_id)
        if winner is not None and winner != driver_id:
            return {
                "success": False,
                "conflict": True,
                "currentDriver": winner,
                "message": "Ride already accepted",
            }
        self.assigned[ride_id] = driver_id
        for other in self.channels:
            if other is not channel and other.connected:
                other.deliver("rideTakenByOther", {"rideId": ride_id, "takenBy": driver_id})
        ride = self.rides.get(ride_id, {})
        return {"success": True, "rideId": ride_id, **{k: v for k, v in ride.items() if k != "rideId"}}


class ManualPositionProvider:
    """Position source fed by hand (or by a replay loop)."""

    def __init__(self, available: bool = True):
        self.available = available
        self.subscriptions: list[dict[str, Any]] = []
        self._on_sample: Callable[[PositionSample], None] | None = None
        self._on_error: Callable[[str], None] | None = None

    @property
    def active(self) -> bool:
        return self._on_sample is not None

    def subscribe(self, on_sample, on_error, *, distance_filter_m, interval_ms, fastest_interval_ms, high_accuracy):
        if not self.available:
            raise LocationUnavailableError("location permission denied")
        self.subscriptions.append(
            {
                "distance_filter_m": distance_filter_m,
                "interval_ms": interval_ms,
                "fastest_interval_ms": fastest_interval_ms,
                "high_accuracy": high_accuracy,
            }
        )
        self._on_sample, self._on_error = on_sample, on_error
        return Handle(self._release)

    def _release(self) -> None:
        self._on_sample = self._on_error = None

    def push(self, sample: PositionSample) -> None:
        if self._on_sample is not None:
            self._on_sample(sample)

    def fail(self, reason: str) -> None:
        if self._on_error is not None:
            self._on_error(reason)


class ScriptedPositionProvider(ManualPositionProvider):
    """Replays a fixed trace, one sample per step()."""

    def __init__(self, trace: list[PositionSample], available: bool = True):
        super().__init__(available=available)
        self.trace = list(trace)
        self.cursor = 0

    @property
    def exhausted(self) -> bool:
        return self.cursor >= len(self.trace)

    def step(self) -> PositionSample | None:
        if self.exhausted or not self.active:
            return None
        sample = self.trace[self.cursor]
        self.cursor += 1
        self.push(sample)
        return sample
