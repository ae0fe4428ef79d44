"""Exception hierarchy for esview."""

from pathlib import Path


class EsviewError(Exception):
    """Base exception for all esview errors.

    All exceptions in this package inherit from this class,
    allowing callers to catch all esview errors with
    a single except clause.
    """

    pass


# Configuration Errors
class ConfigError(EsviewError):
    """Configuration-related errors."""

    pass


class ConfigParseError(ConfigError):
    """Configuration file has invalid syntax."""

    def __init__(self, path: Path, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Invalid config at {path}: {detail}")


class ConfigValidationError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: object, reason: str) -> None:
        self.key = key
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid config value for '{key}': {reason}")


# Filter Errors
class FilterParseError(EsviewError):
    """A filter expression could not be compiled.

    The string form is ``parse error on field '<field>': <message>`` so
    callers can match on the message substring.
    """

    message = "invalid filter"

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        if message is not None:
            self.message = message
        super().__init__(f"parse error on field '{field}': {self.message}")


class EmptyFilterError(FilterParseError):
    """Filter expression is empty or whitespace."""

    message = "empty filter"

    def __init__(self) -> None:
        super().__init__("")


class InvalidFilterFormatError(FilterParseError):
    """Filter expression has no comparison operator."""

    message = "invalid filter format, expected 'field=value' or range query"


class InvalidFieldNameError(FilterParseError):
    """Field name is not a valid dotted path."""

    message = "invalid field name"


class LeadingWildcardError(FilterParseError):
    """Wildcard value starts with an unescaped ``*``."""

    message = "wildcard query cannot start with *"


class MissingRangeValueError(FilterParseError):
    """Range operator without a value."""

    message = "missing value in range query"


class InvalidRangeNumberError(FilterParseError):
    """Range value is not a number."""

    def __init__(self, field: str, value: str) -> None:
        self.value = value
        super().__init__(field, f"invalid numeric value in range query: {value}")


# Query Errors
class QueryBuildError(EsviewError):
    """A query could not be assembled."""

    pass


class NegativeSizeError(QueryBuildError):
    """Requested result size is negative."""

    def __init__(self, size: int) -> None:
        self.size = size
        super().__init__(f"size must be non-negative, got {size}")


class TimeframeError(EsviewError):
    """Timeframe token is malformed or unsupported."""

    def __init__(self, timeframe: str, reason: str) -> None:
        self.timeframe = timeframe
        self.reason = reason
        super().__init__(reason)


# State Errors
class StateValidationError(EsviewError):
    """A state update would break an invariant and was discarded."""

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"state validation failed for {operation}: {reason}")


# Admission Errors
class AdmissionTimeoutError(EsviewError):
    """No backend slot became free before the timeout."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout:g}s waiting for a backend slot")


class OperationCancelledError(EsviewError):
    """The operation was superseded or cancelled by the caller."""

    def __init__(self, operation: str = "operation") -> None:
        self.operation = operation
        super().__init__(f"{operation} was cancelled")


# Backend Errors
class BackendError(EsviewError):
    """Search backend request failed.

    Attributes:
        status_code: HTTP status, when the backend answered at all.
        retryable: Whether repeating the request may succeed.
        retry_after: Backend-suggested wait in seconds, if any.
    """

    retryable = False

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(message)


class BackendAuthError(BackendError):
    """Backend rejected the credentials (HTTP 401/403)."""

    pass


class BackendUnavailableError(BackendError):
    """Backend is overloaded or temporarily down (HTTP 429/502/503/504)."""

    retryable = True


class BackendConnectionError(BackendError):
    """Backend could not be reached."""

    retryable = True
