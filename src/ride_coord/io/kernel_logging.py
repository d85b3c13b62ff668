# ride_coord/io/kernel_logging.py
import json
import logging
import sys
from dataclasses import asdict, is_dataclass

from ride_coord.io.recorder import Recorder
from ride_coord.sim.hooks import NoopHooks


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "msg": record.getMessage(),
            "logger": record.name,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def default_json_logger(name="ride_coord", level="INFO"):
    """Module loggers under ride_coord.* propagate here."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(JsonFormatter())
        logger.addHandler(h)
        logger.setLevel(level)
    return logger


class KernelLogging(NoopHooks):
    """
    One place to shape and emit structured logs for both engine and business events.
    """

    BUSINESS = {
        "OfferPresented",
        "AcceptRequested",
        "AcceptResolved",
        "RideAccepted",
        "RideTakenByOther",
        "RideStarted",
        "RideCompleted",
        "RideCleared",
        "RideRestored",
        "GoOnlineRequested",
        "GoOfflineRequested",
    }

    def __init__(
        self,
        run_id: str = "local",
        clock=None,
        level: str = "INFO",
        debug: bool = False,
        sample_every: int = 1,
        logger: logging.Logger | None = None,
        recorder: Recorder | None = None,
    ):
        self.run_id, self.clock, self.debug, self.sample_every = (
            run_id,
            clock,
            debug,
            max(1, sample_every),
        )
        self.recorder = recorder
        self.log = logger or default_json_logger(level=level)
        self._processed = 0

    # --------------- Helpers -----------------------------

    def _emit(self, level: str, msg: str, **extra):
        t = extra.get("t")
        wall = self.clock.to_wall(t) if (self.clock and t is not None) else None
        payload = {"run_id": self.run_id}
        if wall:
            payload["wall"] = wall.isoformat()
        self.log.log(getattr(logging, level), msg, extra={"extra": {**payload, **extra}})

    def _shape_event(self, ev, want_name: bool = False):
        # keep the common ids top-level so logs stay greppable
        name = type(ev).__name__
        base = {"t": getattr(ev, "t", None)}
        for f in ("ride_id", "outcome", "reason", "source", "leg", "token", "attempt"):
            if hasattr(ev, f):
                base[f] = getattr(ev, f)
        if self.debug and is_dataclass(ev):
            evd = asdict(ev)
            for k in list(base.keys()):
                evd.pop(k, None)
            if evd:
                base["data"] = evd
        return (name, base) if want_name else base

    # --------------------------------------------------------

    # engine lifecycle

    def run_start(self, *, until, max_events, qsize):
        if self.debug:
            self._emit("DEBUG", "run_start", until=until, max_events=max_events, qsize=qsize)

    def run_end(self, *, processed: int, **extra):
        if self.debug and processed:
            self._emit("DEBUG", "run_end", processed=processed, **extra)

    def schedule(self, ev, *, now: float, qsize: int):
        if self.debug and (qsize % self.sample_every) == 0:
            self._emit("DEBUG", "schedule", **self._shape_event(ev), now=now, qsize=qsize)

    def dispatch_start(self, ev, *, seq: int, qsize: int, handlers: int):
        self._processed += 1
        name, extra = self._shape_event(ev, want_name=True)
        level = "INFO" if name in self.BUSINESS else ("DEBUG" if self.debug else None)
        if level:
            self._emit(level, name, **extra, seq=seq, qsize=qsize, handlers=handlers)

    def dispatch_end(self, ev, *, out_events: int, ms: float):
        if self.debug and (self._processed % self.sample_every) == 0:
            self._emit(
                "DEBUG", "dispatch_done", event=type(ev).__name__, out_events=out_events, ms=ms
            )

    def error(self, ev, *, reason: str, exc: BaseException | None = None, **extra):
        name, shaped = self._shape_event(ev, want_name=True)
        if exc is not None:
            shaped["error"] = repr(exc)
        self._emit("ERROR", "kernel_error", **{**shaped, **extra, "event": name, "reason": reason})

    # ------------- Business Event Reporting --------------------------

    def biz(self, rec):
        if not rec.run_id:
            rec.run_id = self.run_id
        if self.recorder:
            self.recorder.emit(rec)
