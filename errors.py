"""
Error taxonomy for the shop API.

Every error raised by the services derives from ShopError and carries the
HTTP status it maps to. The exception handlers in main.py turn them into
``{"detail": ...}`` responses.
"""


class ShopError(Exception):
    status_code = 500
    default_message = "Internal server error"
    retryable = False

    def __init__(self, message: str = ""):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ShopError):
    status_code = 400
    default_message = "Invalid input"


class DuplicateEmail(ShopError):
    status_code = 400
    default_message = "Email already registered"


class InvalidCredentials(ShopError):
    status_code = 400
    default_message = "Invalid email or password"


class NotFound(ShopError):
    status_code = 404
    default_message = "Not found"


class UserNotFound(NotFound):
    # login reports an unknown email as a bad request, not a missing resource
    status_code = 400
    default_message = "User not found"


class MissingToken(ShopError):
    status_code = 401
    default_message = "Not authenticated"


class InvalidToken(ShopError):
    status_code = 401
    default_message = "Could not validate credentials"


class Forbidden(ShopError):
    status_code = 403
    default_message = "Insufficient permissions"


class StorageTimeout(ShopError):
    default_message = "Storage timed out"
    retryable = True


class StorageUnavailable(ShopError):
    default_message = "Storage unavailable"
    retryable = True
