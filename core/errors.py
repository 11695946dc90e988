"""
core/errors.py -- Typed service exceptions.

Services raise these; api/main.py translates them into the ErrorResponse
envelope with the matching HTTP status. Services never build HTTP responses
themselves and never embed stack traces in a message.

Layer rule: no imports outside the standard library.
"""


class ServiceError(Exception):
    """Base class for every error a service reports to its caller."""

    status_code: int = 500
    code: str = "service_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BadRequestError(ServiceError):
    """The request was malformed or failed validation."""

    status_code = 400
    code = "bad_request"


class ConflictError(BadRequestError):
    """The request collides with existing state (e.g. an email already in use)."""

    status_code = 409
    code = "conflict"


class NotFoundError(ServiceError):
    status_code = 404
    code = "not_found"


class InternalServerError(ServiceError):
    """An invariant the service relies on did not hold."""

    status_code = 500
    code = "internal_error"
