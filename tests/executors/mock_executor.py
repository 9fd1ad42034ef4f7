from __future__ import annotations

import asyncio
from typing import Any, Callable, List, Optional, Sequence

import httpx


class MockExecutor:
    """
    Fake request executor with fixed latency.

    Each call sleeps for `latency` seconds and returns an httpx.Response whose
    JSON body records the call id and its start/end loop times, so tests can
    check admission order and spacing.

    Args:
        latency: Seconds each call takes.
        statuses: Status code per call id; the last entry repeats.
        error: Called with the call id; a returned exception is raised
            instead of responding.
    """

    def __init__(
        self,
        latency: float = 0.1,
        *,
        statuses: Sequence[int] = (200,),
        error: Optional[Callable[[int], Optional[BaseException]]] = None,
    ) -> None:
        self.latency = latency
        self.statuses = list(statuses)
        self.error = error
        self.calls: List[Any] = []
        self.active = 0
        self.max_active = 0

    def _status(self, call_id: int) -> int:
        return self.statuses[min(call_id, len(self.statuses) - 1)]

    async def __call__(self, target: Any = None, *args: Any, url: Any = None, **kwargs: Any) -> httpx.Response:
        if target is None:
            target = url
        call_id = len(self.calls)
        self.calls.append(target)
        loop = asyncio.get_running_loop()
        start = loop.time()
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.latency)
        finally:
            self.active -= 1
        if self.error is not None:
            exc = self.error(call_id)
            if exc is not None:
                raise exc
        return httpx.Response(
            self._status(call_id),
            json={"id": call_id, "start": start, "end": loop.time(), "url": str(target)},
        )


def connect_error(message: str = "Network failure") -> httpx.ConnectError:
    return httpx.ConnectError(message, request=httpx.Request("GET", "https://mock.local/"))
