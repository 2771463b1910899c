from typing import Optional


class SchedulerError(Exception):
    """Base exception for scheduling-engine errors."""

    def __init__(
        self, message: str, original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.original_exception = original_exception


class ConfigurationError(SchedulerError):
    """Raised for a missing or invalid deck configuration field.

    The engine recovers from these locally by substituting the documented
    default, so callers normally only see them in log output.
    """

    pass


class InvalidStateError(SchedulerError):
    """Raised when a session operation is not valid in the current state."""

    pass
