"""
Service-layer exceptions.

Services raise these; app.main turns them into JSON error responses with
the matching HTTP status code.
"""

from typing import Optional


class FoodOrderError(Exception):
    """Base class for errors raised by the service layer."""

    status_code = 500
    error = "Internal Server Error"

    def __init__(self, detail: str, error: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        if error is not None:
            self.error = error


class InvalidRequestError(FoodOrderError):
    status_code = 400
    error = "Bad Request"


class AuthenticationRequiredError(FoodOrderError):
    status_code = 401
    error = "Unauthorized"


class PermissionDeniedError(FoodOrderError):
    status_code = 403
    error = "Forbidden"


class NotFoundError(FoodOrderError):
    status_code = 404
    error = "Not Found"


class ConflictError(FoodOrderError):
    status_code = 409
    error = "Conflict"


class StorageError(FoodOrderError):
    """Object storage failed to store, read or remove an object."""

    status_code = 500
    error = "Storage Error"
