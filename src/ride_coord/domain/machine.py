# ride_coord/domain/machine.py
from enum import Enum

from ride_coord.domain.errors import IllegalTransitionError
from ride_coord.domain.state import RideState


class Trigger(Enum):
    OFFER = "offer"
    REJECT = "reject"
    TIMEOUT = "timeout"
    ACCEPT_CONFIRMED = "accept_confirmed"
    ACCEPT_CONFLICT = "accept_conflict"
    TAKEN_BY_OTHER = "taken_by_other"
    OTP_VERIFIED = "otp_verified"
    COMPLETE = "complete"
    BILL_ACKNOWLEDGED = "bill_acknowledged"


S, T = RideState, Trigger

TRANSITIONS: dict[tuple[RideState, Trigger], RideState] = {
    (S.IDLE, T.OFFER): S.OFFERED,
    (S.OFFERED, T.REJECT): S.IDLE,
    (S.OFFERED, T.TIMEOUT): S.IDLE,
    (S.OFFERED, T.ACCEPT_CONFLICT): S.IDLE,
    (S.OFFERED, T.ACCEPT_CONFIRMED): S.ACCEPTED,
    (S.ACCEPTED, T.OTP_VERIFIED): S.IN_PROGRESS,
    (S.IN_PROGRESS, T.COMPLETE): S.COMPLETED,
    (S.COMPLETED, T.BILL_ACKNOWLEDGED): S.IDLE,
}

# a lost race clears whatever the ride was doing
for _s in RideState:
    TRANSITIONS[(_s, T.TAKEN_BY_OTHER)] = S.IDLE

# entering Idle is idempotent
IDLE_ENTRY = frozenset(trig for (_, trig), dst in TRANSITIONS.items() if dst is S.IDLE)


def next_state(state: RideState, trigger: Trigger) -> RideState:
    dst = TRANSITIONS.get((state, trigger))
    if dst is not None:
        return dst
    if state is S.IDLE and trigger in IDLE_ENTRY:
        return S.IDLE
    raise IllegalTransitionError(state, trigger)


def allowed(state: RideState, trigger: Trigger) -> bool:
    try:
        next_state(state, trigger)
    except IllegalTransitionError:
        return False
    return True
