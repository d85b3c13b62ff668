# ride_coord/app/wiring.py
from ride_coord.app.controllers.arbiter import AcceptanceArbiter
from ride_coord.app.controllers.intake import OfferIntake
from ride_coord.app.controllers.persistence import SnapshotKeeper
from ride_coord.app.controllers.presence import PresenceHandler
from ride_coord.app.controllers.rides import RideHandler
from ride_coord.app.controllers.routes import RouteComputer
from ride_coord.app.controllers.tracking import LocationTracker
from ride_coord.app.events import (
    AcceptDeadline,
    AcceptRequested,
    AcceptResolved,
    AcceptResponded,
    AppBackgrounded,
    AppForegrounded,
    AppStarted,
    BillAcknowledged,
    ChannelConnected,
    ChannelMessage,
    CompleteRequested,
    DedupExpired,
    GoOfflineRequested,
    GoOnlineRequested,
    LiveLocationDue,
    OfferPresented,
    OfferReceived,
    OfferTimedOut,
    OtpEntered,
    PositionFailed,
    PositionSampled,
    RejectRequested,
    RideAccepted,
    RideCleared,
    RideCompleted,
    RideRestored,
    RideStarted,
    RideTakenByOther,
    RouteComputed,
    RouteRefreshDue,
    TrimDue,
    UplinkFailed,
)
from ride_coord.sim.kernel import Kernel


def wire(
    kernel: Kernel,
    *,
    intake: OfferIntake,
    arbiter: AcceptanceArbiter,
    rides: RideHandler,
    tracker: LocationTracker,
    routes: RouteComputer,
    keeper: SnapshotKeeper,
    presence: PresenceHandler,
) -> None:
    k = kernel

    # app lifecycle; the keeper restores before presence re-subscribes
    k.on(AppStarted, presence.on_app_started)
    k.on(AppForegrounded, keeper.on_app_foregrounded)
    k.on(AppForegrounded, presence.on_app_foregrounded)
    k.on(AppBackgrounded, keeper.on_app_backgrounded)

    # session & transports
    k.on(GoOnlineRequested, presence.on_go_online)
    k.on(GoOfflineRequested, presence.on_go_offline)
    k.on(ChannelConnected, presence.on_channel_connected)
    k.on(ChannelMessage, presence.on_channel_message)

    # offers
    k.on(OfferReceived, intake.on_offer_received)
    k.on(DedupExpired, intake.on_dedup_expired)
    k.on(OfferPresented, rides.on_offer_presented)
    k.on(OfferTimedOut, rides.on_offer_timed_out)
    k.on(RejectRequested, rides.on_reject_requested)

    # acceptance
    k.on(AcceptRequested, arbiter.on_accept_requested)
    k.on(AcceptResponded, arbiter.on_accept_responded)
    k.on(AcceptDeadline, arbiter.on_accept_deadline)
    k.on(AcceptResolved, rides.on_accept_resolved)
    k.on(RideTakenByOther, rides.on_ride_taken_by_other)  # socket or push, idempotent

    # trip
    k.on(OtpEntered, rides.on_otp_entered)
    k.on(CompleteRequested, rides.on_complete_requested)
    k.on(BillAcknowledged, rides.on_bill_acknowledged)

    # positions: ledger first, then registration, then route triggers
    k.on(PositionSampled, tracker.on_position_sampled)
    k.on(PositionSampled, presence.on_position_sampled)
    k.on(PositionSampled, routes.on_position_sampled)
    k.on(PositionFailed, tracker.on_position_failed)
    k.on(UplinkFailed, tracker.on_uplink_failed)
    k.on(LiveLocationDue, tracker.on_live_location_due)

    # routes
    k.on(RouteRefreshDue, routes.on_route_refresh_due)
    k.on(RouteComputed, routes.on_route_computed)
    k.on(TrimDue, routes.on_trim_due)

    # ride lifecycle fan-out
    k.on(RideAccepted, tracker.on_ride_accepted)
    k.on(RideAccepted, routes.on_ride_accepted)
    k.on(RideStarted, routes.on_ride_started)
    k.on(RideRestored, tracker.on_ride_restored)
    k.on(RideRestored, routes.on_ride_restored)
    k.on(RideCompleted, tracker.on_ride_ended)
    k.on(RideCompleted, routes.on_ride_ended)
    k.on(RideCleared, tracker.on_ride_ended)
    k.on(RideCleared, routes.on_ride_ended)
    k.on(RideCleared, keeper.on_ride_cleared)
