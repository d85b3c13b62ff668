# domain/errors.py
"""
Coordinator exception taxonomy.

Each class maps to one handling policy: validation errors are dropped or
shown to the driver, session errors force re-authentication, transient I/O
errors are logged and degraded.
"""


class CoordinatorError(Exception):
    """Base class for coordinator errors."""


class OfferValidationError(CoordinatorError):
    """An inbound offer could not be normalised."""


class InvalidOtpError(CoordinatorError):
    """Driver-entered OTP did not match or is not available yet."""

    def __init__(self, title: str, message: str):
        super().__init__(message)
        self.title = title


class IllegalTransitionError(CoordinatorError):
    """A trigger is not allowed from the current ride state."""

    def __init__(self, state, trigger):
        super().__init__(f"{trigger!s} not allowed from {state!s}")
        self.state = state
        self.trigger = trigger


class LocationUnavailableError(CoordinatorError):
    """No location permission or no position fix."""


class SessionError(CoordinatorError):
    """Identity or vehicle class missing; the driver must sign in again."""


class ChannelError(CoordinatorError):
    """The live channel is not connected."""


class RoutingError(CoordinatorError):
    """The routing service failed or returned no usable route."""
