"""In-memory response caching for cachedfetch.

This package provides :class:`ExpiringCache`, a per-instance store with a
time-to-live on every entry.  It is consumed by
:class:`~cachedfetch.client.cached_client.CachedClient` and configured by
the ``cache`` section of :class:`~cachedfetch.models.ClientConfig`
(:class:`~cachedfetch.models.CacheConfig`).
"""

from cachedfetch.cache.cache import CacheEntry, ExpiringCache

__all__ = ["CacheEntry", "ExpiringCache"]
