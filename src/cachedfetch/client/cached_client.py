"""Cache-first client composing :class:`ExpiringCache` and :class:`RequestExecutor`.

:class:`CachedClient` is the composition root of the package.  A call to
:meth:`CachedClient.fetch` walks a short, acyclic state machine::

    START -> CACHE_LOOKUP -> HIT -> DONE
                          -> MISS -> EXECUTE -> SUCCESS -> STORE -> DONE
                                             -> FAILURE -> DONE

Only successful results are stored, so a failure never poisons the cache
and the next call for the same key retries from scratch.

Concurrent misses on the same key each run their own execution unless the
client is created with ``dedupe_inflight=True``, in which case later callers
await the execution already in flight, each still bound by its own
cancellation token.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
from typing import Any, Optional

from cachedfetch.cache import ExpiringCache
from cachedfetch.cancellation import CancellationToken, run_until_cancelled
from cachedfetch.client.executor import RequestExecutor, SleepFunc
from cachedfetch.client.result import ExecutionResult
from cachedfetch.client.transport import HttpxTransport, Transport
from cachedfetch.clock import Clock
from cachedfetch.exceptions import CancelledError
from cachedfetch.models import ClientConfig, RequestSpec
from cachedfetch.output import get_output


# Methods whose responses fetch() caches when it derives the key itself.
CACHEABLE_METHODS = frozenset({"GET", "HEAD"})


def make_cache_key(spec: RequestSpec) -> str:
    """Derive a cache key from method, URL, sorted query params and headers.

    Identical requests always resolve to the same key regardless of
    parameter or header ordering, and requests sent with different
    credentials never share one.  The body is not part of the key, which is
    why :meth:`CachedClient.fetch` only derives keys for
    :data:`CACHEABLE_METHODS`.
    """
    parts = [spec.method, spec.url]
    if spec.params:
        parts.append(json.dumps(dict(spec.params), sort_keys=True, default=str))
    parts.append(json.dumps(dict(spec.headers), sort_keys=True))
    raw = "|".join(parts)
    return hashlib.sha256(raw.encode()).hexdigest()


class CachedClient:
    """Client that answers from an expiring cache before going remote.

    The client owns one :class:`~cachedfetch.cache.ExpiringCache` and one
    :class:`~cachedfetch.client.executor.RequestExecutor`, both built from
    *config*.  Use it as an async context manager so the transport is
    closed on exit.

    Args:
        config: Base URL, default headers, request and cache settings.
        transport: Transport for the executor.  Defaults to
            :class:`~cachedfetch.client.transport.HttpxTransport`.
        clock: Time source for cache expiry.
        sleep: Awaitable used for backoff waits.
        dedupe_inflight: Share one execution between concurrent misses on
            the same key.

    Example::

        async with CachedClient(ClientConfig(base_url="https://api.example.com")) as client:
            spec = client.build_spec("/users/1")
            result = await client.fetch("users:1", spec)
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        transport: Optional[Transport] = None,
        clock: Optional[Clock] = None,
        sleep: SleepFunc = asyncio.sleep,
        dedupe_inflight: bool = False,
    ) -> None:
        self._config = config or ClientConfig()
        if transport is None:
            transport = HttpxTransport(verify=self._config.request.verify_ssl)
        self._executor = RequestExecutor(transport, self._config.request, sleep=sleep)
        self._cache = ExpiringCache(
            default_ttl=self._config.cache.ttl_seconds,
            clock=clock,
            max_entries=self._config.cache.max_entries,
        )
        self._dedupe_inflight = dedupe_inflight
        self._inflight: dict[str, asyncio.Future[ExecutionResult]] = {}

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> CachedClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying transport."""
        await self._executor.transport.aclose()

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def cache(self) -> ExpiringCache:
        return self._cache

    @property
    def executor(self) -> RequestExecutor:
        return self._executor

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def build_spec(
        self,
        path: str,
        method: str = "GET",
        headers: Optional[dict[str, str]] = None,
        params: Optional[dict[str, Any]] = None,
        body: Any = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
    ) -> RequestSpec:
        """Build a :class:`~cachedfetch.models.RequestSpec` against the configured base URL.

        Per-call *headers* override the configured default headers.
        """
        return RequestSpec(
            base_url=self._config.base_url or "",
            path=path,
            method=method,
            headers={**self._config.headers, **(headers or {})},
            params=params or {},
            body=body,
            timeout=timeout,
            max_attempts=max_attempts,
        )

    async def fetch(
        self,
        key: Optional[str],
        spec: RequestSpec,
        ttl: Optional[float] = None,
        max_attempts: Optional[int] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> ExecutionResult:
        """Return the cached result for *key*, or execute *spec* and cache a success.

        Args:
            key: Cache key.  ``None`` derives one with :func:`make_cache_key`
                for GET and HEAD; other methods then bypass the cache.
            spec: Request to execute on a miss.
            ttl: Lifetime of a stored success.  Defaults to the configured
                cache TTL.
            max_attempts: Attempt budget for the executor on a miss.
            cancel: Optional cancellation token for the execution.

        Returns:
            The cached or freshly produced :class:`ExecutionResult`.
            Failures are returned, never cached.
        """
        if key is None:
            if spec.method not in CACHEABLE_METHODS:
                get_output().debug(f"Not caching {spec.method} {spec.url}")
                return await self._executor.execute(
                    spec, max_attempts=max_attempts, cancel=cancel
                )
            key = make_cache_key(spec)

        output = get_output()
        cached = self._cache.get(key)
        if cached is not None:
            output.debug(f"Cache hit for {spec.method} {spec.url} ({key})")
            return cached
        output.debug(f"Cache miss for {spec.method} {spec.url} ({key})")

        if not self._dedupe_inflight:
            return await self._execute_and_store(key, spec, ttl, max_attempts, cancel)
        return await self._execute_shared(key, spec, ttl, max_attempts, cancel)

    def invalidate(self, key: str) -> bool:
        """Drop the cached result for *key*.  Returns ``True`` if one was present."""
        return self._cache.delete(key)

    def cleanup(self) -> int:
        """Sweep expired cache entries.  Returns the number removed."""
        return self._cache.cleanup()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _execute_and_store(
        self,
        key: str,
        spec: RequestSpec,
        ttl: Optional[float],
        max_attempts: Optional[int],
        cancel: Optional[CancellationToken],
    ) -> ExecutionResult:
        result = await self._executor.execute(spec, max_attempts=max_attempts, cancel=cancel)
        if result.ok:
            self._cache.set(key, result, ttl)
        return result

    async def _execute_shared(
        self,
        key: str,
        spec: RequestSpec,
        ttl: Optional[float],
        max_attempts: Optional[int],
        cancel: Optional[CancellationToken],
    ) -> ExecutionResult:
        """Run or join the in-flight execution for *key*.

        The first caller starts the execution under its own token.  Later
        callers wait on it under theirs: their own cancellation ends their
        wait only, and a run cut short by another caller's token is started
        again rather than shared.
        """
        output = get_output()
        while True:
            pending = self._inflight.get(key)
            if pending is None or pending.done():
                task = asyncio.ensure_future(
                    self._execute_and_store(key, spec, ttl, max_attempts, cancel)
                )
                self._inflight[key] = task
                task.add_done_callback(lambda done, key=key: self._forget_inflight(key, done))
                return await asyncio.shield(task)

            output.debug(f"Joining in-flight request for {key}")
            try:
                result = await run_until_cancelled(asyncio.shield(pending), cancel)
            except CancelledError as exc:
                return ExecutionResult.failure(exc, attempts=0)
            if not isinstance(result.error, CancelledError):
                return result
            output.debug(f"In-flight request for {key} was cancelled by its owner, restarting")

    def _forget_inflight(self, key: str, task: asyncio.Future[ExecutionResult]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
