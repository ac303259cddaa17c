"""Resilient request pipeline for cachedfetch.

Classes:
    :class:`RequestExecutor` -- one logical request with timeout, retry with
    exponential backoff, and error classification.
    :class:`CachedClient` -- cache-first composition of an
    :class:`~cachedfetch.cache.ExpiringCache` and a :class:`RequestExecutor`.
    :class:`HttpxTransport` -- default transport backed by :mod:`httpx`.
    :class:`UserService` -- ``/users`` endpoint calls over a :class:`CachedClient`.

Example::

    from cachedfetch.client import CachedClient
    from cachedfetch.models import ClientConfig

    async with CachedClient(ClientConfig(base_url="https://api.example.com")) as client:
        result = await client.fetch(None, client.build_spec("/users"))
"""

from cachedfetch.client.cached_client import CachedClient, make_cache_key
from cachedfetch.client.executor import RequestExecutor
from cachedfetch.client.result import ExecutionResult
from cachedfetch.client.transport import HttpxTransport, Transport, TransportResponse
from cachedfetch.client.users import UserService

__all__ = [
    "CachedClient",
    "ExecutionResult",
    "HttpxTransport",
    "RequestExecutor",
    "Transport",
    "TransportResponse",
    "UserService",
    "make_cache_key",
]
