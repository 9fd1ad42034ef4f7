"""
Typed exceptions for fetch_throttler.

Provides structured error handling with:
- ThrottlerError: Base exception for all throttler errors
- ThrottleConfigError: Configuration and validation errors
- InvalidURLError: Request targets or rule URLs that cannot be parsed
- DuplicatePoolError: A rule's routing key is already registered
- CapacityExceededError: A bounded pool is full
- RetriesExhaustedError: A non-success response survived every attempt

All exceptions include structured attributes for programmatic handling.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ThrottlerError(Exception):
    """Base exception for all fetch_throttler errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context as key-value pairs
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging or CLI output."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ThrottleConfigError(ThrottlerError, ValueError):
    """Configuration or validation error.

    Raised synchronously, never retried:
    - Malformed rules (none or several of scope/regex/match)
    - Invalid scope values
    - Negative limits or a non-callable should_retry
    - Invalid executor
    """

    pass


class InvalidURLError(ThrottleConfigError):
    """A request target or rule URL could not be resolved to an absolute URL."""

    def __init__(
        self,
        message: str,
        *,
        url: Any = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if url is not None:
            details["url"] = str(url)
        self.url = url
        super().__init__(message, code=code or "invalid_url", details=details)


class DuplicatePoolError(ThrottleConfigError):
    """A URL-component rule produced a routing key that already owns a pool."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(
            f"Pool for {key} already exists",
            code="duplicate_pool",
            details={"key": key},
        )


class CapacityExceededError(ThrottlerError):
    """Raised when a bounded pool cannot accept another request.

    The request is never sent. Attributes:
        capacity: The pool's configured capacity
    """

    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        super().__init__(
            "Request pool is full",
            code="capacity_exceeded",
            details={"capacity": capacity},
        )


class RetriesExhaustedError(ThrottlerError):
    """A request kept producing a non-success response until retries ran out.

    Transport errors are re-raised unchanged instead; this wraps result
    values so the caller still gets the last response.

    Attributes:
        response: The result of the final attempt
        attempts: Total number of attempts made (initial + retries)
    """

    def __init__(self, response: Any, attempts: int) -> None:
        self.response = response
        self.attempts = attempts
        details: Dict[str, Any] = {"attempts": attempts}
        status = getattr(response, "status_code", None)
        if isinstance(status, int):
            details["status_code"] = status
        super().__init__(
            f"Request failed after {attempts} attempt(s)",
            code="retries_exhausted",
            details=details,
        )

    @property
    def status_code(self) -> Optional[int]:
        """Status code of the final response, if it carries one."""
        status = getattr(self.response, "status_code", None)
        return status if isinstance(status, int) else None


__all__ = [
    "ThrottlerError",
    "ThrottleConfigError",
    "InvalidURLError",
    "DuplicatePoolError",
    "CapacityExceededError",
    "RetriesExhaustedError",
]
