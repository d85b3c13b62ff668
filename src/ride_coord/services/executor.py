# services/executor.py
import asyncio
import logging
from collections.abc import Callable
from typing import Any

from ride_coord.sim.event import BaseEvent
from ride_coord.sim.kernel import Kernel
from ride_coord.sim.realtime import RealtimeRunner

logger = logging.getLogger(__name__)

ResultFn = Callable[[Any, float], BaseEvent | None]
ErrorFn = Callable[[BaseException, float], BaseEvent | None]


class InlineExecutor:
    """
    Runs the call immediately and schedules its reply event `latency_s`
    later on the kernel. Used for tests and replay.
    """

    def __init__(self, kernel: Kernel, latency_s: float = 0.0):
        self.kernel = kernel
        self.latency_s = latency_s

    def submit(self, fn: Callable[[], Any], on_result: ResultFn | None = None, on_error: ErrorFn | None = None):
        t = self.kernel.now + self.latency_s
        try:
            res = fn()
        except Exception as exc:
            if on_error is None:
                logger.warning("background call failed: %s", exc)
                return
            ev = on_error(exc, t)
        else:
            ev = on_result(res, t) if on_result else None
        if ev is not None:
            self.kernel.schedule(ev)


class AsyncioExecutor:
    """Runs blocking calls in the loop's thread pool; replies re-enter via the runner."""

    def __init__(self, runner: RealtimeRunner):
        self.runner = runner

    def submit(self, fn: Callable[[], Any], on_result: ResultFn | None = None, on_error: ErrorFn | None = None):
        loop = asyncio.get_running_loop()
        fut = loop.run_in_executor(None, fn)

        def _done(f: asyncio.Future) -> None:
            t = self.runner.elapsed()
            exc = f.exception()
            if exc is not None:
                if on_error is None:
                    logger.warning("background call failed: %s", exc)
                    return
                ev = on_error(exc, t)
            else:
                ev = on_result(f.result(), t) if on_result else None
            if ev is not None:
                self.runner.post(ev)

        fut.add_done_callback(_done)
