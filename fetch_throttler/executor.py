"""
Default request executor backed by one shared httpx.AsyncClient.

Every pool of a Throttler calls the same executor, so all throttled traffic
reuses a single connection pool instead of opening one client per request.

Usage:
    executor = HttpxExecutor(timeout=10.0)
    response = await executor("https://example.com/items", "POST", json={...})
    await executor.aclose()
"""
from __future__ import annotations

from typing import Any, Optional, Union

import httpx


class HttpxExecutor:
    """Async callable with a fetch-like signature: (target, method="GET", **kwargs) or (url=..., ...)."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, **client_kwargs: Any) -> None:
        """
        Args:
            client: Existing client to send on. It is not closed by aclose().
            **client_kwargs: Passed to httpx.AsyncClient when no client is given
                (base_url, timeout, headers, ...).
        """
        if client is not None and client_kwargs:
            raise ValueError("Pass either a client or client options, not both")
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient(**client_kwargs)

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def __call__(
        self,
        target: Union[str, httpx.URL, httpx.Request, None] = None,
        method: str = "GET",
        *,
        url: Union[str, httpx.URL, None] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        if target is None:
            target = url
        if isinstance(target, httpx.Request):
            return await self._client.send(target, **kwargs)
        return await self._client.request(method, target, **kwargs)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
