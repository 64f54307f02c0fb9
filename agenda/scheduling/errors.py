"""Exceptions raised by the scheduling core.

Route handlers translate these into HTTP responses; nothing in this package
imports FastAPI.
"""


class SchedulingError(Exception):
    """Base class for scheduling failures."""


class InvalidInterval(SchedulingError, ValueError):
    """An interval whose start is not strictly before its end."""


class InvalidConfiguration(SchedulingError, ValueError):
    """Availability settings that cannot produce a working window."""


class ConflictError(SchedulingError):
    """The requested time collides with an active reservation."""

    def __init__(self, message: str = "This time slot is no longer available"):
        super().__init__(message)
        self.message = message


class CollaboratorUnavailable(SchedulingError):
    """The external calendar could not be reached or rejected the request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DispatchFailure(SchedulingError):
    """A reminder message could not be delivered."""


class InvalidStatusTransition(SchedulingError, ValueError):
    """A reservation status change that the lifecycle does not allow."""
