# ride_coord/io/recorder.py
import json
import logging
import queue
import sys
import threading
from dataclasses import asdict
from typing import Protocol

logger = logging.getLogger(__name__)


class Sink(Protocol):
    def write(self, ev) -> None: ...


class JsonlSink:
    def __init__(self, fp=sys.stdout):
        self.fp = fp

    def write(self, ev) -> None:
        self.fp.write(json.dumps(asdict(ev)) + "\n")


class MemorySink:
    def __init__(self):
        self.events: list = []

    def write(self, ev) -> None:
        self.events.append(ev)

    def names(self) -> list[str]:
        return [e.name for e in self.events]


class AsyncSink:
    """Hands records to a writer thread; drops on overflow, drains on stop."""

    def __init__(self, sink: Sink, maxsize: int = 10000):
        self.sink, self.q = sink, queue.Queue(maxsize=maxsize)
        self._stop = threading.Event()
        self._t = threading.Thread(target=self._run, daemon=True)
        self._t.start()
        self.dropped = 0

    def write(self, ev) -> None:
        try:
            self.q.put_nowait(ev)
        except queue.Full:
            self.dropped += 1  # never block the coordinator

    def _run(self):
        while not (self._stop.is_set() and self.q.empty()):
            try:
                ev = self.q.get(timeout=0.1)
            except queue.Empty:
                continue
            try:
                self.sink.write(ev)
            except Exception:
                logger.exception("async sink write failed")

    def stop(self):
        self._stop.set()
        self._t.join(timeout=1.0)


class Recorder:
    def __init__(self, *sinks: Sink):
        self.sinks = sinks or (JsonlSink(),)

    def emit(self, ev):
        for s in self.sinks:
            try:
                s.write(ev)
            except Exception:
                logger.exception("recorder sink %s failed", type(s).__name__)
