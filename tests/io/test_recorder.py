# tests/io/test_recorder.py
import io
import json
import threading

from ride_coord.io.business_events import OfferSurfacedBiz, RideClearedBiz
from ride_coord.io.recorder import AsyncSink, JsonlSink, MemorySink, Recorder


class BrokenSink:
    def write(self, ev):
        raise OSError("disk full")


class GateSink(MemorySink):
    """Blocks inside write() until released."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def write(self, ev):
        self.entered.set()
        self.release.wait(timeout=2.0)
        super().write(ev)


def cleared(ride_id="R1"):
    return RideClearedBiz(t=1.0, name="RideCleared", ride_id=ride_id, reason="completed")


def test_failing_sink_does_not_stop_the_others(caplog):
    mem, fp = MemorySink(), io.StringIO()
    rec = Recorder(BrokenSink(), mem, JsonlSink(fp))
    rec.emit(OfferSurfacedBiz(t=0.0, name="OfferSurfaced", ride_id="R1", source="push"))
    assert mem.names() == ["OfferSurfaced"]
    assert json.loads(fp.getvalue())["source"] == "push"
    assert "BrokenSink" in caplog.text


def test_async_sink_delivers_everything_before_stop():
    mem = MemorySink()
    sink = AsyncSink(mem)
    rec = Recorder(sink)
    for i in range(5):
        rec.emit(cleared(f"R{i}"))
    sink.stop()
    assert [e.ride_id for e in mem.events] == ["R0", "R1", "R2", "R3", "R4"]
    assert sink.dropped == 0


def test_async_sink_drops_when_full_without_blocking():
    gate = GateSink()
    sink = AsyncSink(gate, maxsize=1)
    sink.write(cleared("R1"))
    assert gate.entered.wait(timeout=2.0)  # writer thread is busy with R1
    sink.write(cleared("R2"))  # fills the queue
    sink.write(cleared("R3"))
    assert sink.dropped == 1
    gate.release.set()
    sink.stop()
    assert [e.ride_id for e in gate.events] == ["R1", "R2"]
