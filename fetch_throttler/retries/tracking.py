"""
Per-caller retry accounting for throttled requests.

A tracker is bound to the current context with retry_tracking_context().
Requests queued while it is bound carry it with them, so pools report
retries and give-ups to the caller that issued the request, even when the
attempt settles on another task long after the block has exited.
"""

from __future__ import annotations

import contextvars
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import httpx


class RetryReason(str, Enum):
    """Why a pool re-enqueued an attempt. Values double as log and report keys."""

    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    CONNECTION_ERROR = "connection_error"
    FORCED = "forced"
    UNKNOWN = "unknown"


def _status_of(result: Any) -> Optional[int]:
    for attr in ("status_code", "status"):
        status = getattr(result, attr, None)
        if isinstance(status, int) and not isinstance(status, bool):
            return status
    return None


def classify_outcome(outcome: Any, succeeded: bool, *, non_success: bool = True) -> RetryReason:
    """
    Classify the outcome that triggered a retry.

    Args:
        outcome: The exception raised by the executor, or its result.
        succeeded: False when outcome is an exception.
        non_success: For results, whether the result itself signals failure.
            A retry of a successful-looking result was forced by should_retry.
    """
    if not succeeded:
        if isinstance(outcome, httpx.TimeoutException):
            return RetryReason.TIMEOUT
        if isinstance(outcome, httpx.TransportError):
            return RetryReason.CONNECTION_ERROR
        if isinstance(outcome, httpx.HTTPStatusError):
            outcome = outcome.response
        else:
            return RetryReason.UNKNOWN
    elif not non_success:
        return RetryReason.FORCED

    status = _status_of(outcome)
    if status is None:
        return RetryReason.UNKNOWN
    if status == 429:
        return RetryReason.RATE_LIMIT
    if status >= 500:
        return RetryReason.SERVER_ERROR
    if status >= 400:
        return RetryReason.CLIENT_ERROR
    return RetryReason.UNKNOWN


@dataclass
class RetryTracker:
    """
    Retry counts for the requests issued inside one tracking context.

    Attributes:
        total_retries: Re-enqueued attempts; first attempts are not counted.
        exhausted: Requests that failed because max_retry ran out.
        by_reason: Retries per RetryReason.
        by_pool: Retries per pool name (routing key or rule label).
        last_reason: Reason of the most recent retry.
    """

    total_retries: int = 0
    exhausted: int = 0
    by_reason: Counter = field(default_factory=Counter)
    by_pool: Counter = field(default_factory=Counter)
    last_reason: Optional[RetryReason] = None

    def record_retry(self, reason: RetryReason, pool: str = "") -> None:
        self.total_retries += 1
        self.by_reason[reason] += 1
        if pool:
            self.by_pool[pool] += 1
        self.last_reason = reason

    def record_exhausted(self) -> None:
        self.exhausted += 1

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready summary; reasons are keyed by their string value."""
        return {
            "total_retries": self.total_retries,
            "exhausted": self.exhausted,
            "by_reason": {reason.value: n for reason, n in self.by_reason.items()},
            "by_pool": dict(self.by_pool),
        }


_current_tracker: contextvars.ContextVar[Optional[RetryTracker]] = contextvars.ContextVar(
    "fetch_throttler_retry_tracker", default=None
)


def get_retry_tracker() -> Optional[RetryTracker]:
    """Tracker bound to the current context, or None."""
    return _current_tracker.get()


class retry_tracking_context:
    """
    Bind a RetryTracker to the current context; usable with `with` and `async with`.

    Pass an existing tracker to keep accumulating into it across blocks.

    Usage:
        with retry_tracking_context() as tracker:
            future = throttler("https://example.com")
        await future
        print(tracker.to_dict())
    """

    def __init__(self, tracker: Optional[RetryTracker] = None) -> None:
        self.tracker = tracker if tracker is not None else RetryTracker()
        self._tokens: list = []

    def __enter__(self) -> RetryTracker:
        self._tokens.append(_current_tracker.set(self.tracker))
        return self.tracker

    def __exit__(self, *exc_info: Any) -> None:
        _current_tracker.reset(self._tokens.pop())

    async def __aenter__(self) -> RetryTracker:
        return self.__enter__()

    async def __aexit__(self, *exc_info: Any) -> None:
        self.__exit__(*exc_info)
