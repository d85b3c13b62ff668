# sim/realtime.py
import asyncio
import logging

from ride_coord.sim.event import BaseEvent
from ride_coord.sim.kernel import Kernel

logger = logging.getLogger(__name__)


class RealtimeRunner:
    """
    Drives a Kernel against the wall clock on an asyncio loop.

    Kernel time 0 is the moment run() starts. Adapters running on other
    threads hand events in through post(); they are dispatched on the loop
    thread, so coordinator handlers never run concurrently.
    """

    def __init__(self, kernel: Kernel, tick_s: float = 0.05):
        self.kernel = kernel
        self.tick_s = tick_s
        self._loop: asyncio.AbstractEventLoop | None = None
        self._t0 = 0.0

    def elapsed(self) -> float:
        if self._loop is None:
            return self.kernel.now
        return self._loop.time() - self._t0

    def post(self, ev: BaseEvent) -> None:
        if self._loop is None:
            self.kernel.post(ev)
            return
        self._loop.call_soon_threadsafe(self.kernel.post, ev)

    async def run(self, stop: asyncio.Event) -> None:
        self._loop = asyncio.get_running_loop()
        self._t0 = self._loop.time() - self.kernel.now
        logger.info("realtime runner started")
        try:
            while not stop.is_set():
                self.kernel.run(until=self.elapsed())
                try:
                    await asyncio.wait_for(stop.wait(), timeout=self.tick_s)
                except TimeoutError:
                    pass
        finally:
            # drain anything already due so replies are not lost on shutdown
            self.kernel.run(until=self.elapsed())
            self._loop = None
            logger.info("realtime runner stopped")
