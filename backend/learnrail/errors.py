"""Error taxonomy shared by guards, handlers and services.

Every error carries the HTTP status and the user-visible message that
end up in the JSON error envelope. Services raise these; the dispatcher
converts them into responses.
"""

from typing import Dict, Optional


class ApiError(Exception):
    status_code = 400
    default_message = "Bad request"

    def __init__(self, message: Optional[str] = None, errors: Optional[Dict[str, str]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class BadRequest(ApiError):
    pass


class ValidationFailure(ApiError):
    status_code = 422
    default_message = "Validation failed"


class Unauthenticated(ApiError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(ApiError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(ApiError):
    status_code = 404
    default_message = "Resource not found"


class Conflict(ApiError):
    status_code = 409
    default_message = "Conflict"
