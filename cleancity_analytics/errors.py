"""Exception taxonomy for the analytics engine."""


class AnalyticsError(Exception):
    """Base class for errors raised to callers of the engine."""


class InputValidationError(AnalyticsError, ValueError):
    """Caller supplied a malformed argument (date range, grain, ...)."""


class StoreFailure(AnalyticsError):
    """The Report Store collaborator failed to fetch records."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause
