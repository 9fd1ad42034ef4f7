"""
Request pool: admission control, spacing and retries for one traffic scope.

Architecture:
    add() → queue (FIFO) → admission → executor task → outcome policy
                 ↑                                         │
                 └──────────── retry (re-enqueued at tail) ┘

    The queue is a fixed ring buffer when capacity > 0, else a deque.
    Head (index) and tail (end) cursors only ever advance; waiting = end - index.
    When both max_concurrency (N) and interval (I) are positive, a ring of the
    last N admission timestamps holds admission k + N back until at least
    I milliseconds after admission k.

Scheduling model:
    Everything runs on one asyncio event loop. State changes happen in plain
    callbacks, so no locks are needed. Suspension points are the executor
    call, an awaitable should_retry, and the spacing timer (loop.call_later).

Outcome policy:
    should_retry(outcome) -> True (retry), False (stop), None (default).
    Default: retry transport errors and non-success results.
    When retries run out, transport errors are delivered unchanged and
    result values are wrapped in RetriesExhaustedError.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set, Tuple

from fetch_throttler.config import ResolvedPoolConfig
from fetch_throttler.exceptions import CapacityExceededError, RetriesExhaustedError
from fetch_throttler.retries.tracking import RetryTracker, classify_outcome

logger = logging.getLogger(__name__)

Executor = Callable[..., Awaitable[Any]]


@dataclass
class QueueItem:
    """A request admitted to a pool, waiting or in flight."""
    args: Tuple[Any, ...]
    kwargs: Dict[str, Any]
    on_success: Callable[[Any], None]
    on_failure: Callable[[BaseException], None]
    retried: int = 0
    tracker: Optional[RetryTracker] = None


@dataclass
class PoolStats:
    """Pool statistics snapshot."""
    completed: int  # requests resolved (success or failure)
    active: int     # admitted, not yet resolved or re-queued
    waiting: int    # queued, not yet admitted

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def is_success_result(result: Any) -> bool:
    """
    Whether a completed call represents success.

    Understands httpx (is_success), requests / aiohttp (ok) and anything
    with an integer status_code / status. Other values count as success.
    """
    flag = getattr(result, "is_success", None)
    if isinstance(flag, bool):
        return flag
    flag = getattr(result, "ok", None)
    if isinstance(flag, bool):
        return flag
    for attr in ("status_code", "status"):
        status = getattr(result, attr, None)
        if isinstance(status, int) and not isinstance(status, bool):
            return 200 <= status < 300
    return True


class RequestPool:
    """
    FIFO queue and limiter for one routing scope.

    Created and owned by a Throttler; one pool per rule or default key.
    """

    def __init__(
        self,
        config: ResolvedPoolConfig,
        executor: Executor,
        *,
        name: str = "pool",
    ) -> None:
        """
        Args:
            config: Complete pool parameters (see config.fill_defaults).
            executor: Async callable that performs one request.
            name: Label used in log messages.
        """
        self.name = name
        self.max_concurrency = config.max_concurrency
        self.interval = config.interval
        self.max_retry = config.max_retry
        self.capacity = config.capacity
        self._should_retry = config.should_retry
        self._executor = executor

        # Bounded: ring of `capacity` slots addressed by cursor % capacity.
        self._ring: List[Optional[QueueItem]] = [None] * self.capacity
        self._backlog: Deque[QueueItem] = deque()
        self._timestamps: Optional[List[float]] = (
            [0.0] * self.max_concurrency
            if self.max_concurrency > 0 and self.interval > 0
            else None
        )

        self._index = 0
        self._end = 0
        self._active = 0
        self._settling = 0
        self._completed = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def waiting(self) -> int:
        return self._end - self._index

    @property
    def occupancy(self) -> int:
        """Items counted against capacity: waiting, in flight, or being classified."""
        return self.waiting + self._active + self._settling

    def stats(self) -> PoolStats:
        return PoolStats(
            completed=self._completed,
            active=self._active + self._settling,
            waiting=self.waiting,
        )

    def add(
        self,
        args: Tuple[Any, ...],
        kwargs: Dict[str, Any],
        on_success: Callable[[Any], None],
        on_failure: Callable[[BaseException], None],
        *,
        tracker: Optional[RetryTracker] = None,
    ) -> None:
        """
        Enqueue a request and try to admit it right away.

        Must be called from the event loop thread.

        Raises:
            CapacityExceededError: The pool is bounded and full. Nothing is
                enqueued and the executor is not called.
        """
        if self.capacity and self.occupancy >= self.capacity:
            logger.warning(
                "Pool %s is full (capacity=%d), rejecting request", self.name, self.capacity
            )
            raise CapacityExceededError(self.capacity)
        self._push(
            QueueItem(
                args=args,
                kwargs=kwargs,
                on_success=on_success,
                on_failure=on_failure,
                tracker=tracker,
            )
        )
        self._process()

    def _push(self, item: QueueItem) -> None:
        if self.capacity:
            self._ring[self._end % self.capacity] = item
        else:
            self._backlog.append(item)
        self._end += 1

    def _pop(self, now: float) -> QueueItem:
        if self.capacity:
            slot = self._index % self.capacity
            item = self._ring[slot]
            self._ring[slot] = None
        else:
            item = self._backlog.popleft()
        if self._timestamps is not None:
            self._timestamps[self._index % self.max_concurrency] = now
        self._index += 1
        assert item is not None
        return item

    def _next_admission_time(self) -> Optional[float]:
        """Earliest loop time the next admission may start, or None if unconstrained."""
        if self._timestamps is None or self._index < self.max_concurrency:
            return None
        return self._timestamps[self._index % self.max_concurrency] + self.interval / 1000

    def _on_timer(self) -> None:
        self._timer = None
        self._process()

    def _process(self) -> None:
        """Admit queued items until the queue, concurrency or spacing stops us."""
        loop = asyncio.get_running_loop()
        while self._index < self._end:
            if self.max_concurrency and self._active >= self.max_concurrency:
                return
            next_time = self._next_admission_time()
            if next_time is not None:
                delay = next_time - loop.time()
                if delay > 0:
                    if self._timer is None:
                        logger.debug("Pool %s deferring admission by %.3fs", self.name, delay)
                        self._timer = loop.call_later(delay, self._on_timer)
                    return
            item = self._pop(loop.time())
            self._active += 1
            logger.debug(
                "Pool %s admitted request (attempt %d, active=%d, waiting=%d)",
                self.name, item.retried + 1, self._active, self.waiting,
            )
            task = loop.create_task(self._run(item))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(self, item: QueueItem) -> None:
        try:
            try:
                result = await self._executor(*item.args, **item.kwargs)
            except Exception as exc:
                outcome: Any = exc
                succeeded = False
            except BaseException as exc:
                # Cancellation and the like: never retried.
                self._finish(item, exc, False)
                raise
            else:
                outcome = result
                succeeded = True
            finally:
                self._active -= 1

            self._settling += 1
            try:
                await self._settle(item, outcome, succeeded)
            finally:
                self._settling -= 1
        finally:
            self._process()

    async def _consult_should_retry(self, outcome: Any) -> Optional[bool]:
        if self._should_retry is None:
            return None
        try:
            decision = self._should_retry(outcome)
            if inspect.isawaitable(decision):
                decision = await decision
        except Exception:
            # Counts as no opinion.
            logger.warning(
                "should_retry raised in pool %s; using default retry policy",
                self.name,
                exc_info=True,
            )
            return None
        if decision is None:
            return None
        return bool(decision)

    async def _settle(self, item: QueueItem, outcome: Any, succeeded: bool) -> None:
        decision = await self._consult_should_retry(outcome)
        non_success = not succeeded or not is_success_result(outcome)
        if decision is None:
            decision = non_success

        if not decision:
            self._finish(item, outcome, succeeded)
            return

        if item.retried >= self.max_retry:
            attempts = item.retried + 1
            logger.info(
                "Pool %s giving up after %d attempt(s): %s",
                self.name, attempts, _describe(outcome),
            )
            if item.tracker is not None:
                item.tracker.record_exhausted()
            error = RetriesExhaustedError(outcome, attempts) if succeeded else outcome
            self._finish(item, error, False)
            return

        item.retried += 1
        reason = classify_outcome(outcome, succeeded, non_success=non_success)
        if item.tracker is not None:
            item.tracker.record_retry(reason, self.name)
        logger.warning(
            "Pool %s retrying request (%d/%d, reason=%s): %s",
            self.name, item.retried, self.max_retry, reason.value, _describe(outcome),
        )
        self._push(item)

    def _finish(self, item: QueueItem, value: Any, succeeded: bool) -> None:
        self._completed += 1
        if succeeded:
            item.on_success(value)
        else:
            item.on_failure(value)


def _describe(outcome: Any) -> str:
    if isinstance(outcome, BaseException):
        return f"{type(outcome).__name__}: {outcome}"
    status = getattr(outcome, "status_code", None)
    if isinstance(status, int):
        return f"status {status}"
    return type(outcome).__name__
