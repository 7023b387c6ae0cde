"""Exceptions for the gallery client core.

Unknown album, asset or person ids are not errors: lookups return None
or False instead of raising.
"""


class AppError(Exception):
    """Base exception for application errors."""
    pass


class ValidationError(AppError):
    """Raised when validation fails (e.g. an empty album name)."""
    pass


class InvalidActionError(ValidationError):
    """Raised when a bulk action cannot be started."""
    pass


class TransportFailure(AppError):
    """Raised when a network or server call fails."""
    pass


class ApiError(TransportFailure):
    """API error with status code and message."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"API Error {status_code}: {message}")


class PersistenceFailure(AppError):
    """Raised by a backing store when a read or write fails."""
    pass
