class TimeTrackerError(Exception):
    """Base exception for business rule violations."""

    status_code = 500


class ValidationError(TimeTrackerError):
    """Raised when input data is missing, malformed or violates a rule."""

    status_code = 400


class NotFound(TimeTrackerError):
    """Raised when a referenced client, job, entry or invoice does not exist."""

    status_code = 404


class StoreFailure(TimeTrackerError):
    """Raised when the underlying store operation failed."""

    status_code = 500
