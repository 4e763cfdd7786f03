"""Error taxonomy shared by the stores, services and the HTTP layer."""


class BudMatchError(Exception):
    """Base class for every error the service reports to a caller."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BudMatchError):
    """Malformed or missing input; the caller can correct it."""

    status_code = 400
    code = "validation_error"


class Unauthenticated(BudMatchError):
    """No authenticated user was supplied."""

    status_code = 401
    code = "unauthenticated"


class Forbidden(BudMatchError):
    """Authenticated, but not allowed to touch this entity."""

    status_code = 403
    code = "forbidden"


class NotFound(BudMatchError):
    """An entity id did not resolve."""

    status_code = 404
    code = "not_found"


class Conflict(BudMatchError):
    """A precondition no longer holds, usually because of a concurrent write.

    Callers should re-fetch current state rather than resubmit.
    """

    status_code = 409
    code = "conflict"


class StaleVersion(Conflict):
    """An optimistic version check failed at the storage boundary."""

    code = "stale_version"


class Unavailable(BudMatchError):
    """A dependency such as the persistence layer cannot be reached."""

    status_code = 503
    code = "unavailable"
