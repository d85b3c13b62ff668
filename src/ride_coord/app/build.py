# ride_coord/app/build.py
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from ride_coord.app.controllers.arbiter import AcceptanceArbiter
from ride_coord.app.controllers.intake import OfferIntake
from ride_coord.app.controllers.persistence import AUTH_TOKEN_KEY, SnapshotKeeper
from ride_coord.app.controllers.presence import PresenceHandler
from ride_coord.app.controllers.rides import RideHandler
from ride_coord.app.controllers.routes import RouteComputer
from ride_coord.app.controllers.tracking import LocationTracker
from ride_coord.app.events import (
    AcceptRequested,
    AppBackgrounded,
    AppForegrounded,
    AppStarted,
    BillAcknowledged,
    CompleteRequested,
    GoOfflineRequested,
    GoOnlineRequested,
    OtpEntered,
    RejectRequested,
)
from ride_coord.app.protocols import (
    IoExecutor,
    KeyValueStore,
    LocationUplink,
    NullPresenter,
    PositionProvider,
    Presenter,
    PushRelay,
    RealtimeChannel,
    RoutingService,
)
from ride_coord.app.session import Session
from ride_coord.app.wiring import wire
from ride_coord.config.models import CoordinatorModel
from ride_coord.domain.state import CoordinatorState, CoordinatorView
from ride_coord.io.kernel_logging import KernelLogging  # JSON logs
from ride_coord.io.recorder import JsonlSink, Recorder
from ride_coord.policy.pricing import StraightLegFarePolicy
from ride_coord.runtime.services_factory import make_routing, make_store, make_uplink
from ride_coord.services.executor import InlineExecutor
from ride_coord.sim.clock import SimClock
from ride_coord.sim.event import BaseEvent
from ride_coord.sim.hooks import KernelHooks, NoopHooks
from ride_coord.sim.kernel import Kernel


class Coordinator:
    """
    The presentation layer's only handle: driver intents go in as events,
    state comes back as an immutable view.
    """

    def __init__(self, session: Session, presence: PresenceHandler):
        self._session = session
        self._presence = presence

    def _submit(self, ev: BaseEvent) -> None:
        self._session.post(ev)

    def view(self) -> CoordinatorView:
        return self._session.state.view()

    def start(self) -> None:
        self._submit(AppStarted(t=0.0))

    def go_online(self) -> None:
        self._submit(GoOnlineRequested(t=0.0))

    def go_offline(self) -> None:
        self._submit(GoOfflineRequested(t=0.0))

    def accept(self, ride_id: str | None = None) -> None:
        self._submit(AcceptRequested(t=0.0, ride_id=ride_id or ""))

    def reject(self, ride_id: str | None = None) -> None:
        self._submit(RejectRequested(t=0.0, ride_id=ride_id or ""))

    def enter_otp(self, code: str) -> None:
        self._submit(OtpEntered(t=0.0, code=code))

    def complete(self) -> None:
        self._submit(CompleteRequested(t=0.0))

    def acknowledge_bill(self) -> None:
        self._submit(BillAcknowledged(t=0.0))

    def background(self) -> None:
        self._submit(AppBackgrounded(t=0.0))

    def foreground(self) -> None:
        self._submit(AppForegrounded(t=0.0))

    def shutdown(self) -> None:
        self._presence.shutdown()


@dataclass
class App:
    kernel: Kernel
    clock: SimClock
    session: Session
    store: KeyValueStore
    intake: OfferIntake
    arbiter: AcceptanceArbiter
    rides: RideHandler
    tracker: LocationTracker
    routes: RouteComputer
    keeper: SnapshotKeeper
    presence: PresenceHandler
    coordinator: Coordinator
    recorder: Recorder | None = None

    @property
    def state(self) -> CoordinatorState:
        return self.session.state

    def advance(self, seconds: float = 0.0) -> int:
        """Run everything due within the next `seconds` of kernel time."""
        return self.kernel.run(until=self.kernel.now + seconds)


def build(
    cfg: CoordinatorModel | Mapping | None = None,
    *,
    channel: RealtimeChannel,
    push: PushRelay,
    positions: PositionProvider,
    presenter: Presenter | None = None,
    store: KeyValueStore | None = None,
    routing: RoutingService | None = None,
    uplink: LocationUplink | None = None,
    executor: IoExecutor | None = None,
    kernel: Kernel | None = None,
    post: Callable[[BaseEvent], None] | None = None,
    clock: SimClock | None = None,
    recorder: Recorder | None = None,
    hooks: KernelHooks | None = None,
    use_logging: bool = True,
) -> App:
    # 0) Validate config
    if cfg is None:
        model = CoordinatorModel()
    else:
        model = cfg if isinstance(cfg, CoordinatorModel) else CoordinatorModel.model_validate(cfg)

    # 1) Clock
    clock = clock or SimClock.starting_now()

    # 2) Kernel (with hooks)
    if kernel is None:
        if hooks is None and use_logging:
            recorder = recorder or Recorder(JsonlSink())
            hooks = KernelLogging(
                run_id=model.log.run_id,
                recorder=recorder,
                clock=clock,
                level=model.log.level,
                debug=model.log.debug,
                sample_every=model.log.sample_every,
            )
        kernel = Kernel(hooks=hooks or NoopHooks())
    post = post or kernel.post
    executor = executor or InlineExecutor(kernel)

    # 3) Collaborators from config where the caller did not inject one
    store = store if store is not None else make_store(model.storage)
    routing = routing or make_routing(model.routing)
    if uplink is None:
        uplink = make_uplink(model.uplink, token=lambda: store.get(AUTH_TOKEN_KEY))

    # 4) Handlers (inject deps explicitly)
    session = Session(
        CoordinatorState(),
        presenter=presenter or NullPresenter(),
        channel=channel,
        clock=clock,
        post=post,
        hooks=kernel.hooks,
    )
    intake = OfferIntake(session, offers=model.offers, driver=model.driver)
    arbiter = AcceptanceArbiter(session, offers=model.offers)
    rides = RideHandler(
        session,
        arbiter=arbiter,
        offers=model.offers,
        fare=model.fare,
        pricing=StraightLegFarePolicy(minimum_fare=model.fare.minimum_fare),
    )
    tracker = LocationTracker(session, positions=positions, executor=executor, cfg=model.tracking, uplink=uplink)
    routes = RouteComputer(session, routing=routing, executor=executor, cfg=model.routes)
    keeper = SnapshotKeeper(session, store=store, now=lambda: kernel.now)
    presence = PresenceHandler(
        session,
        store=store,
        push=push,
        tracker=tracker,
        routes=routes,
        keeper=keeper,
        driver=model.driver,
    )

    # 5) Wiring
    wire(
        kernel,
        intake=intake,
        arbiter=arbiter,
        rides=rides,
        tracker=tracker,
        routes=routes,
        keeper=keeper,
        presence=presence,
    )

    coordinator = Coordinator(session, presence)
    return App(
        kernel=kernel,
        clock=clock,
        session=session,
        store=store,
        intake=intake,
        arbiter=arbiter,
        rides=rides,
        tracker=tracker,
        routes=routes,
        keeper=keeper,
        presence=presence,
        coordinator=coordinator,
        recorder=recorder,
    )
