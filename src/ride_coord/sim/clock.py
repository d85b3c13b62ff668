# sim/clock.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

MS = 0.001


def millis(x: float) -> float:
    return x * MS


@dataclass(frozen=True)
class SimClock:
    epoch: datetime  # wall-time zero of t=0; tz-aware

    @classmethod
    def utc_epoch(cls, y: int, m: int, d: int, hh=0, mm=0, ss=0) -> SimClock:
        return cls(datetime(y, m, d, hh, mm, ss, tzinfo=UTC))

    @classmethod
    def starting_now(cls) -> SimClock:
        return cls(datetime.now(UTC))

    # kernel seconds -> wall
    def to_wall(self, t: float) -> datetime:
        return self.epoch + timedelta(seconds=t)

    def iso(self, t: float) -> str:
        """ISO-8601 timestamp for payloads sent to the backend."""
        return self.to_wall(t).isoformat()
