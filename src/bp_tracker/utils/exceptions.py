"""Custom exceptions for the blood pressure tracker."""


class BPTrackerError(Exception):
    """Base exception for all blood pressure tracker errors."""

    pass


class ConfigurationError(BPTrackerError):
    """Raised when there is a configuration error."""

    pass


class AuthenticationError(BPTrackerError):
    """Raised when calendar authentication fails or must be restarted."""

    pass


class CalendarClientError(BPTrackerError):
    """Raised when Calendar API operations fail."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class StorageError(BPTrackerError):
    """Raised when the reading or settings store cannot fulfil a request."""

    pass


class ParsingError(BPTrackerError):
    """Raised when file parsing fails."""

    pass


class ValidationError(BPTrackerError):
    """Raised when data validation fails."""

    pass
