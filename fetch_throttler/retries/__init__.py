"""
Retry tracking for throttled requests.

Counts the retries a pool schedules for requests issued inside a tracking
context, broken down by reason. Uses contextvars, so each task or caller
sees only its own tracker.

Usage:
    from fetch_throttler.retries import retry_tracking_context

    async with retry_tracking_context() as tracker:
        await throttler("https://api.example.com/items")
        print(f"Total retries: {tracker.total_retries}, gave up: {tracker.exhausted}")
        print(f"By pool: {dict(tracker.by_pool)}")
"""

from fetch_throttler.retries.tracking import (
    RetryReason,
    RetryTracker,
    classify_outcome,
    get_retry_tracker,
    retry_tracking_context,
)

__all__ = [
    "RetryReason",
    "RetryTracker",
    "classify_outcome",
    "get_retry_tracker",
    "retry_tracking_context",
]
