"""
Scope router: picks the RequestPool that handles each request.

Usage:
    from fetch_throttler import Throttler

    async with Throttler({"max_concurrency": 4}) as fetch:
        fetch.configure(scope="domain", url="https://api.example.com", max_concurrency=1)
        fetch.configure(regex=r"^https://images\\.", interval=200)
        fetch.configure(match=lambda url: url.host.startswith("cdn."), max_retry=3)

        response = await fetch("https://api.example.com/items")
        print(fetch.stats("https://api.example.com/items"))

Routing precedence (first hit wins):
    1. match= rules, most recently configured first
    2. regex= rules, most recently configured first
    3. scope= rules: exact path, then subpath folders deepest first, then domain
    4. default pool for the throttler's scope, created on first use
"""
from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

import httpx

from fetch_throttler.config import (
    DefaultThrottleConfig,
    PatternRule,
    PredicateRule,
    ThrottleConfig,
    UrlComponentRule,
    fill_defaults,
    parse_rule,
    resolve_default_config,
)
from fetch_throttler.exceptions import DuplicatePoolError, ThrottleConfigError
from fetch_throttler.executor import HttpxExecutor
from fetch_throttler.pool import Executor, PoolStats, RequestPool
from fetch_throttler.retries.tracking import get_retry_tracker
from fetch_throttler.settings import get_settings
from fetch_throttler.urls import extract_target, folder_key, folder_keys, routing_key, to_url

logger = logging.getLogger(__name__)

ConfigInput = Union[DefaultThrottleConfig, ThrottleConfig, Mapping[str, Any]]


def _resolve(future: asyncio.Future, value: Any) -> None:
    # The caller may have cancelled or timed out; the outcome is dropped then.
    if not future.done():
        future.set_result(value)


def _reject(future: asyncio.Future, error: BaseException) -> None:
    if not future.done():
        future.set_exception(error)


class Throttler:
    """
    Drop-in wrapper around an async request executor.

    Calling the throttler (or invoke()) takes the executor's arguments and
    returns a future of the executor's result. Configuration and capacity
    errors raise immediately instead of failing the future.
    """

    def __init__(
        self,
        config: Optional[ConfigInput] = None,
        executor: Optional[Executor] = None,
        *,
        base_url: Optional[str] = None,
    ) -> None:
        """
        Args:
            config: Base pool parameters plus default scope. Defaults come
                from FETCH_THROTTLER_* environment variables when omitted.
            executor: Async callable performing one request. Defaults to an
                HttpxExecutor owned (and closed) by this throttler.
            base_url: Origin that relative targets ("/items") resolve against.

        Raises:
            ThrottleConfigError: Invalid config or executor.
        """
        settings = get_settings()
        self.config: DefaultThrottleConfig = (
            resolve_default_config(config) if config is not None else settings.default_config()
        )
        self.scope = self.config.scope
        self.base_url = base_url if base_url is not None else settings.base_url
        self._pool_config = fill_defaults(self.config)

        self._owned_executor: Optional[HttpxExecutor] = None
        if executor is None:
            client_kwargs = {"base_url": self.base_url} if self.base_url else {}
            self._owned_executor = HttpxExecutor(**client_kwargs)
            executor = self._owned_executor
        elif not callable(executor):
            raise ThrottleConfigError(f"Invalid executor: {executor!r}", code="invalid_executor")
        self.executor: Executor = executor

        self._default_pools: Dict[str, RequestPool] = {}
        self._url_pools: Dict[str, RequestPool] = {}
        self._folder_pools: Dict[str, RequestPool] = {}
        self._pattern_pools: List[Tuple[re.Pattern[str], RequestPool]] = []
        self._predicate_pools: List[Tuple[Callable[[httpx.URL], bool], RequestPool]] = []

        logger.info(
            "Throttler created: scope=%s, max_concurrency=%d, interval=%dms, max_retry=%d, capacity=%d",
            self.scope,
            self._pool_config.max_concurrency,
            self._pool_config.interval,
            self._pool_config.max_retry,
            self._pool_config.capacity,
        )

    async def __aenter__(self) -> "Throttler":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the default executor's HTTP client, if this throttler created it."""
        if self._owned_executor is not None:
            await self._owned_executor.aclose()

    def _find_pool(self, url: httpx.URL) -> Optional[RequestPool]:
        for match, pool in reversed(self._predicate_pools):
            if match(url):
                return pool
        href = str(url)
        for regex, pool in reversed(self._pattern_pools):
            if regex.search(href):
                return pool

        pool = self._url_pools.get(routing_key(url, "path"))
        if pool is None and self._folder_pools:
            for key in folder_keys(url):
                pool = self._folder_pools.get(key)
                if pool is not None:
                    break
        if pool is None:
            pool = self._url_pools.get(routing_key(url, "domain"))
        if pool is not None:
            return pool

        return self._default_pools.get(routing_key(url, self.scope))

    def _get_or_create_pool(self, url: httpx.URL) -> RequestPool:
        pool = self._find_pool(url)
        if pool is None:
            key = routing_key(url, self.scope)
            pool = RequestPool(self._pool_config, self.executor, name=key or "global")
            self._default_pools[key] = pool
            logger.info("Created default pool %r (scope=%s)", key or "global", self.scope)
        return pool

    def invoke(self, *args: Any, **kwargs: Any) -> "asyncio.Future[Any]":
        """
        Queue a request and return a future of the executor's result.

        The first positional argument is the target, or ``url=`` when no
        positional argument is given: an httpx.URL, a string, or an object
        with a ``url`` attribute (e.g. httpx.Request). All arguments are
        passed to the executor unchanged.

        Must be called while an event loop is running.

        Raises:
            InvalidURLError: The target cannot be resolved to an absolute URL.
            CapacityExceededError: The owning pool is full.
        """
        loop = asyncio.get_running_loop()
        url = to_url(extract_target(args, kwargs), self.base_url)
        pool = self._get_or_create_pool(url)
        future: asyncio.Future[Any] = loop.create_future()
        pool.add(
            args,
            kwargs,
            lambda value: _resolve(future, value),
            lambda error: _reject(future, error),
            tracker=get_retry_tracker(),
        )
        return future

    __call__ = invoke

    def configure(self, rule: Any = None, **fields: Any) -> None:
        """
        Register a routing rule with its own pool.

        Pass a rule model, a mapping, or keyword fields. Exactly one of:
            scope="domain" | "path", url=... [, subpath=True]
            regex=<str or compiled pattern>
            match=<callable(httpx.URL) -> bool>
        plus any pool parameters (max_concurrency, interval, max_retry,
        capacity, should_retry). Unset parameters take the package defaults.

        Raises:
            ThrottleConfigError: Malformed rule or invalid values.
            InvalidURLError: A rule URL cannot be parsed.
            DuplicatePoolError: A URL rule key is already registered.
        """
        parsed = parse_rule(rule, **fields)
        pool_config = fill_defaults(parsed)

        if isinstance(parsed, UrlComponentRule):
            keys: List[str] = []
            for value in parsed.url:
                key = routing_key(to_url(value, self.base_url), parsed.scope)
                if key in self._url_pools or key in keys:
                    raise DuplicatePoolError(key)
                keys.append(key)
            pool = RequestPool(pool_config, self.executor, name=keys[0])
            for key in keys:
                self._url_pools[key] = pool
                if parsed.subpath:
                    self._folder_pools[folder_key(key)] = pool
            logger.info(
                "Configured %s rule for %s (subpath=%s)", parsed.scope, ", ".join(keys), parsed.subpath
            )
        elif isinstance(parsed, PatternRule):
            pool = RequestPool(pool_config, self.executor, name=f"regex:{parsed.regex.pattern}")
            self._pattern_pools.append((parsed.regex, pool))
            logger.info("Configured regex rule %r", parsed.regex.pattern)
        else:
            assert isinstance(parsed, PredicateRule)
            name = getattr(parsed.match, "__name__", "predicate")
            pool = RequestPool(pool_config, self.executor, name=f"match:{name}")
            self._predicate_pools.append((parsed.match, pool))
            logger.info("Configured match rule %s", name)

    def stats(self, *args: Any, **kwargs: Any) -> PoolStats:
        """
        Counts for the pool that would handle this target.

        Read-only: returns zeros instead of creating a default pool.

        Raises:
            InvalidURLError: The target cannot be resolved.
        """
        url = to_url(extract_target(args, kwargs), self.base_url)
        pool = self._find_pool(url)
        if pool is None:
            return PoolStats(completed=0, active=0, waiting=0)
        return pool.stats()


def create_throttler(
    config: Union[ConfigInput, Executor, None] = None,
    executor: Optional[Executor] = None,
    **kwargs: Any,
) -> Throttler:
    """
    Build a Throttler. The executor may be passed first when no config is needed:

        fetch = create_throttler(my_executor)
        fetch = create_throttler({"scope": "domain"}, my_executor)
    """
    if callable(config) and executor is None and not isinstance(config, (Mapping, ThrottleConfig)):
        config, executor = None, config
    return Throttler(config, executor, **kwargs)
