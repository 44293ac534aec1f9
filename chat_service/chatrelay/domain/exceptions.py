# chatrelay/domain/exceptions.py


class RelayError(Exception):
    """Base class for errors that reject an event or request."""

    code = "error"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.code)
        self.detail = detail or self.code


class Unauthorized(RelayError):
    """Acting user lacks the required membership or ownership."""

    code = "unauthorized"


class NotFound(RelayError):
    """Referenced user, room or message does not exist."""

    code = "not_found"


class Unavailable(RelayError):
    """The persistence layer failed while handling the event."""

    code = "unavailable"


class Invalid(RelayError):
    """Malformed payload or a request that would break a room invariant."""

    code = "invalid"


class Conflict(RelayError):
    """The request collides with existing state, such as a taken username."""

    code = "conflict"
