# main.py
# Scripted end-to-end ride against in-process collaborators.
#   python main.py                       # kernel time, instant
#   python main.py --live --speedup 1    # wall clock on asyncio
import argparse
import asyncio
import logging

from ride_coord.app.build import App, build
from ride_coord.config.models import CoordinatorModel
from ride_coord.domain.entities.geography import Position, PositionSample
from ride_coord.io.kernel_logging import KernelLogging, default_json_logger
from ride_coord.io.recorder import AsyncSink, JsonlSink, Recorder
from ride_coord.services.executor import AsyncioExecutor
from ride_coord.services.loopback import (
    LoopbackChannel,
    LoopbackPush,
    LoopbackServer,
    ScriptedPositionProvider,
)
from ride_coord.services.storage import MemoryStore
from ride_coord.sim.clock import SimClock
from ride_coord.sim.kernel import Kernel
from ride_coord.sim.realtime import RealtimeRunner

logger = logging.getLogger("ride_coord.demo")

START = Position(12.9716, 77.5946)
PICKUP = Position(12.9756, 77.5986)
DROP = Position(12.9956, 77.6186)

OFFER = {
    "rideId": "R-1001",
    "pickup": {"lat": PICKUP.latitude, "lng": PICKUP.longitude, "address": "MG Road"},
    "drop": {"lat": DROP.latitude, "lng": DROP.longitude, "address": "Indiranagar"},
    "otp": "4321",
    "fare": 120,
    "distance": "3.1 km",
    "vehicleType": "taxi",
    "userName": "Ravi",
    "userMobile": "9800000000",
    "userId": "U-77",
}


def interpolate(a: Position, b: Position, steps: int) -> list[PositionSample]:
    return [
        PositionSample(
            Position(
                a.latitude + (b.latitude - a.latitude) * i / steps,
                a.longitude + (b.longitude - a.longitude) * i / steps,
            ),
            speed_mps=8.0,
        )
        for i in range(1, steps + 1)
    ]


class ConsolePresenter:
    def render(self, view):
        pass

    def show_offer(self, offer):
        logger.info("offer %s: %s -> %s", offer.ride_id, offer.pickup.address, offer.drop.address)

    def show_bill(self, bill):
        logger.info("bill %s: %.2f km, fare %d at %.1f/km", bill.ride_id, bill.distance_km, bill.fare, bill.rate_per_km)

    def alert(self, title, message):
        logger.info("%s: %s", title, message)

    def require_reauth(self, reason):
        logger.warning("sign in again: %s", reason)


def make_app(cfg: CoordinatorModel, **kw) -> tuple[App, LoopbackServer, ScriptedPositionProvider]:
    server = LoopbackServer()
    channel, push = LoopbackChannel(), LoopbackPush()
    server.attach(channel, push)
    positions = ScriptedPositionProvider(
        [PositionSample(START)] + interpolate(START, PICKUP, 5) + interpolate(PICKUP, DROP, 10)
    )
    store = MemoryStore({"driverId": "D-1", "driverName": "Asha", "driverVehicleType": "taxi"})
    app = build(
        cfg,
        channel=channel,
        push=push,
        positions=positions,
        presenter=ConsolePresenter(),
        store=store,
        **kw,
    )
    return app, server, positions


def run_scripted(cfg: CoordinatorModel, interval_s: float) -> App:
    app, server, positions = make_app(cfg, clock=SimClock.utc_epoch(2024, 1, 1, 9))
    c = app.coordinator

    def drive(n: int) -> None:
        for _ in range(n):
            positions.step()
            app.advance(interval_s)

    c.start()
    c.go_online()
    app.advance()
    drive(1)
    server.publish_offer(OFFER)
    app.advance()
    c.accept()
    app.advance()
    drive(5)
    c.enter_otp(OFFER["otp"])
    app.advance()
    drive(10)
    c.complete()
    app.advance()
    c.acknowledge_bill()
    app.advance()
    c.shutdown()
    return app


async def run_live(cfg: CoordinatorModel, interval_s: float) -> App:
    sink = AsyncSink(JsonlSink())  # keep file writes off the event loop
    kernel = Kernel(
        hooks=KernelLogging(
            run_id=cfg.log.run_id, level=cfg.log.level, debug=cfg.log.debug, recorder=Recorder(sink)
        )
    )
    runner = RealtimeRunner(kernel)
    app, server, positions = make_app(
        cfg, kernel=kernel, post=runner.post, executor=AsyncioExecutor(runner)
    )
    c = app.coordinator
    stop = asyncio.Event()
    task = asyncio.create_task(runner.run(stop))

    async def drive(n: int) -> None:
        for _ in range(n):
            positions.step()
            await asyncio.sleep(interval_s)

    try:
        c.start()
        c.go_online()
        await drive(1)
        server.publish_offer(OFFER)
        await asyncio.sleep(interval_s)
        c.accept()
        await drive(5)
        c.enter_otp(OFFER["otp"])
        await drive(10)
        c.complete()
        await asyncio.sleep(interval_s)
        c.acknowledge_bill()
        await asyncio.sleep(interval_s)
    finally:
        c.shutdown()
        stop.set()
        await task
        sink.stop()
    return app


def main() -> None:
    ap = argparse.ArgumentParser(description="Run a scripted ride through the coordinator.")
    ap.add_argument("--config", help="JSON config file")
    ap.add_argument("--live", action="store_true", help="run against the wall clock")
    ap.add_argument("--interval", type=float, default=3.0, help="seconds between position samples")
    ap.add_argument("--speedup", type=float, default=10.0, help="live mode only: divide the interval")
    args = ap.parse_args()

    cfg = CoordinatorModel.from_file(args.config) if args.config else CoordinatorModel()
    default_json_logger(level=cfg.log.level)
    if args.live:
        app = asyncio.run(run_live(cfg, args.interval / max(args.speedup, 1e-3)))
    else:
        app = run_scripted(cfg, args.interval)
    logger.info("final state %s", app.state.ride_state.value)


if __name__ == "__main__":
    main()
