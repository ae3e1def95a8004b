"""Custom exceptions for the tollgate application."""

from typing import Any


class TollgateException(Exception):
    """Base class for tollgate exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500

    def __init__(self, message: str = "Tollgate error"):
        self.message = message
        super().__init__(message)


class ConfigError(TollgateException, ValueError):
    """Raised when a rate limit policy or route table is invalid.

    Configuration errors are fatal at construction time: the offending
    policy must never become usable.
    """
    status_code = 500

    def __init__(self, message: str = "Invalid rate limit configuration", field: str | None = None):
        self.field = field
        super().__init__(message)


class StoreConnectionError(TollgateException):
    """Raised when the durable counter store cannot be reached.

    Consumed by the degrading store, which switches to the ephemeral
    backend. Never surfaced to HTTP clients.
    """
    status_code = 503

    def __init__(self, message: str = "Counter store unreachable", cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)


class StoreOperationError(TollgateException):
    """Raised when a single command fails on an otherwise connected store.

    Limiters convert this into a fail-open decision.
    """
    status_code = 503

    def __init__(
        self,
        operation: str,
        key: str | None = None,
        cause: Exception | None = None,
    ):
        self.operation = operation
        self.key = key
        self.cause = cause
        message = f"Counter store operation '{operation}' failed"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class RateLimitExceededError(TollgateException):
    """Raised by route-level rate limit dependencies when a request is denied.

    Maps to HTTP 429 Too Many Requests. The decision that caused the
    rejection is kept so the handler can render the standard headers.
    """
    status_code = 429

    def __init__(self, decision: Any, tier: str | None = None):
        self.decision = decision
        self.tier = tier
        retry_after = getattr(decision, "retry_after", None) or 0
        super().__init__(f"Too many requests. Try again in {retry_after} seconds.")
