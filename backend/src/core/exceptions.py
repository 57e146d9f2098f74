"""
Domain errors raised by the scheduling services.

Services raise these instead of HTTPException so they can be used from
scripts and tests without FastAPI. The application maps them to JSON
responses in main.py using ``status_code`` and ``error_type``.
"""


class SchedulingError(Exception):
    """Base class for all scheduling domain errors."""

    status_code = 400
    error_type = "scheduling_error"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SchedulingError):
    """Input is malformed or violates a business rule."""

    status_code = 400
    error_type = "validation_error"


class AuthorizationError(SchedulingError):
    """Caller is authenticated but may not act on this resource."""

    status_code = 403
    error_type = "forbidden"


class NotFoundError(SchedulingError):
    """Referenced doctor, patient, rule or appointment does not exist."""

    status_code = 404
    error_type = "not_found"


class CapacityExceededError(SchedulingError):
    """The session has no remaining seats."""

    status_code = 409
    error_type = "capacity_exceeded"


class ConflictError(SchedulingError):
    """Concurrent modification, duplicate booking or lock timeout. Safe to retry."""

    status_code = 409
    error_type = "conflict"
    retryable = True


class InternalError(SchedulingError):
    """Unexpected persistence failure."""

    status_code = 500
    error_type = "internal_error"
