from __future__ import annotations


class ApiError(Exception):
    """Base for every failure a handler reports to the client on purpose."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidRequest(ApiError):
    status_code = 400
    default_message = "Invalid request"


class Unauthenticated(ApiError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(ApiError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(ApiError):
    status_code = 404
    default_message = "Not found"


class MethodNotSupported(ApiError):
    status_code = 405
    default_message = "Method Not Allowed"


class Conflict(ApiError):
    status_code = 409
    default_message = "Conflict"


class PayloadTooLarge(ApiError):
    status_code = 413
    default_message = "Payload too large"
