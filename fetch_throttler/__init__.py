"""
fetch_throttler - Concurrency, spacing, retry and capacity limits for async HTTP calls.

Wrap any async request function and keep calling it the same way:
    import fetch_throttler

    fetch = fetch_throttler.create_throttler({"max_concurrency": 4, "max_retry": 2})
    response = await fetch("https://api.example.com/items")

Per-destination rules:
    fetch.configure(scope="domain", url="https://api.example.com", max_concurrency=1)
    fetch.configure(scope="path", url="https://example.com/search", subpath=True, interval=1000)
    fetch.configure(regex=r"^https://images\\.", capacity=50)
    fetch.configure(match=lambda url: url.port == 8443, max_retry=0)

Custom executors:
    async def send(url, **kwargs):
        ...

    fetch = fetch_throttler.Throttler({"scope": "domain"}, send)

Advanced usage via submodules:
    from fetch_throttler.pool import RequestPool, PoolStats
    from fetch_throttler.config import fill_defaults, parse_rule
    from fetch_throttler.retries import retry_tracking_context
"""

# =============================================================================
# Core API
# =============================================================================
from fetch_throttler.throttler import Throttler, create_throttler  # noqa: F401
from fetch_throttler.executor import HttpxExecutor  # noqa: F401
from fetch_throttler.pool import PoolStats, RequestPool  # noqa: F401

# =============================================================================
# Configuration models
# =============================================================================
from fetch_throttler.config import (  # noqa: F401
    DefaultThrottleConfig,
    PatternRule,
    PredicateRule,
    ThrottleConfig,
    UrlComponentRule,
)

# =============================================================================
# Retry tracking
# =============================================================================
from fetch_throttler.retries import (  # noqa: F401
    RetryReason,
    RetryTracker,
    retry_tracking_context,
)

# =============================================================================
# Typed exceptions - For structured error handling
# =============================================================================
from fetch_throttler.exceptions import (  # noqa: F401
    CapacityExceededError,
    DuplicatePoolError,
    InvalidURLError,
    RetriesExhaustedError,
    ThrottleConfigError,
    ThrottlerError,
)

__all__ = [
    "Throttler",
    "create_throttler",
    "HttpxExecutor",
    "PoolStats",
    "RequestPool",
    "DefaultThrottleConfig",
    "PatternRule",
    "PredicateRule",
    "ThrottleConfig",
    "UrlComponentRule",
    "RetryReason",
    "RetryTracker",
    "retry_tracking_context",
    "CapacityExceededError",
    "DuplicatePoolError",
    "InvalidURLError",
    "RetriesExhaustedError",
    "ThrottleConfigError",
    "ThrottlerError",
]
