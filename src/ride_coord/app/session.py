# ride_coord/app/session.py
import logging
from collections.abc import Callable
from typing import Any

from ride_coord.app.protocols import Presenter, RealtimeChannel
from ride_coord.domain.errors import ChannelError
from ride_coord.domain.state import CoordinatorState
from ride_coord.sim.clock import SimClock
from ride_coord.sim.event import BaseEvent
from ride_coord.sim.hooks import KernelHooks, NoopHooks

logger = logging.getLogger(__name__)

Listener = Callable[[CoordinatorState], None]


class Session:
    """
    The single owner of CoordinatorState. Handlers mutate state and then call
    touch(); the presenter and persistence observe through it.
    """

    def __init__(
        self,
        state: CoordinatorState,
        presenter: Presenter,
        channel: RealtimeChannel,
        clock: SimClock,
        post: Callable[[BaseEvent], None],
        hooks: KernelHooks | None = None,
    ):
        self.state = state
        self.presenter = presenter
        self.channel = channel
        self.clock = clock
        self.post = post
        self.hooks = hooks or NoopHooks()
        self._listeners: list[Listener] = []

    def listen(self, fn: Listener) -> None:
        self._listeners.append(fn)

    def touch(self) -> None:
        self.presenter.render(self.state.view())
        for fn in self._listeners:
            fn(self.state)

    def send(self, name: str, payload: dict[str, Any]) -> bool:
        """Best-effort outbound emit; a dropped channel is logged, not raised."""
        try:
            self.channel.emit(name, payload)
        except ChannelError as exc:
            logger.warning("outbound %s skipped: %s", name, exc)
            return False
        return True

    def record(self, rec) -> None:
        self.hooks.biz(rec)
