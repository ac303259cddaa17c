"""In-memory expiring cache with per-entry TTL.

Each entry carries an absolute deadline read from an injectable
:class:`~cachedfetch.clock.Clock`.  An entry is live while
``ttl > 0 and now <= expires_at``; after that it is logically absent even
if it still sits in the store.  Expired entries are dropped lazily by
:meth:`ExpiringCache.get` or eagerly by :meth:`ExpiringCache.cleanup`; no
background scheduler is involved.

The store is unbounded unless ``max_entries`` is given, in which case the
least recently used entry is evicted to make room.

See Also:
    :class:`~cachedfetch.models.CacheConfig` -- the Pydantic model that
    carries ``ttl_seconds`` and ``max_entries``.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Optional

from cachedfetch.clock import Clock, MonotonicClock


@dataclass
class CacheEntry:
    """A stored value and the deadline after which it is no longer served."""

    value: Any
    expires_at: float
    ttl: float

    def is_live(self, now: float) -> bool:
        return self.ttl > 0 and now <= self.expires_at


class ExpiringCache:
    """Thread-safe map of string keys to values with per-entry expiry.

    Args:
        default_ttl: TTL in seconds used when :meth:`set` is called without
            one.
        clock: Time source.  Defaults to :class:`~cachedfetch.clock.MonotonicClock`.
        max_entries: Optional size bound.  When the store is full, inserting
            a new key sweeps expired entries and then evicts the least
            recently used one.

    Example::

        cache = ExpiringCache(default_ttl=60)
        cache.set("users:1", {"id": 1})
        cache.get("users:1")   # {"id": 1}
        cache.cleanup()        # 0
    """

    def __init__(
        self,
        default_ttl: float = 300.0,
        clock: Optional[Clock] = None,
        max_entries: Optional[int] = None,
    ) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._default_ttl = default_ttl
        self._clock: Clock = clock or MonotonicClock()
        self._max_entries = max_entries
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value stored under *key*, or *default*.

        An expired entry found here is removed before returning.  A stored
        ``None`` is indistinguishable from a miss unless the caller passes
        its own *default* sentinel.
        """
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return default
            if not entry.is_live(self._clock.now()):
                del self._store[key]
                self._misses += 1
                return default
            self._store.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store or overwrite *value* under *key*.

        Args:
            key: Cache key.
            value: Any value.  The cache keeps a reference; callers should
                treat what :meth:`get` returns as read-only.
            ttl: Seconds until expiry.  ``None`` uses the default TTL.  Zero
                or negative stores an entry that is already expired.
        """
        if ttl is None:
            ttl = self._default_ttl
        with self._lock:
            now = self._clock.now()
            if key in self._store:
                self._store.move_to_end(key)
            elif self._max_entries is not None and len(self._store) >= self._max_entries:
                self._make_room(now)
            self._store[key] = CacheEntry(value=value, expires_at=now + ttl, ttl=ttl)

    def delete(self, key: str) -> bool:
        """Remove *key*.  Returns ``True`` if an entry was physically present."""
        with self._lock:
            return self._store.pop(key, None) is not None

    def cleanup(self) -> int:
        """Remove every expired entry and return how many were removed."""
        with self._lock:
            return self._sweep(self._clock.now())

    def clear(self) -> None:
        """Remove all entries, live or not."""
        with self._lock:
            self._store.clear()

    def stats(self) -> dict[str, Any]:
        """Return counters and settings.

        Returns:
            A ``dict`` with ``size`` (physical entries, including expired
            ones not yet swept), ``hits``, ``misses``, ``evictions`` (size
            bound only), ``default_ttl`` and ``max_entries``.
        """
        with self._lock:
            return {
                "size": len(self._store),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "default_ttl": self._default_ttl,
                "max_entries": self._max_entries,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def __contains__(self, key: object) -> bool:
        """Live check.  Drops the entry if it has expired; hit and miss counters are untouched."""
        with self._lock:
            entry = self._store.get(key)  # type: ignore[arg-type]
            if entry is None:
                return False
            if not entry.is_live(self._clock.now()):
                del self._store[key]  # type: ignore[arg-type]
                return False
            return True

    # ------------------------------------------------------------------ #
    # Private helpers (caller holds the lock)
    # ------------------------------------------------------------------ #

    def _sweep(self, now: float) -> int:
        expired = [key for key, entry in self._store.items() if not entry.is_live(now)]
        for key in expired:
            del self._store[key]
        return len(expired)

    def _make_room(self, now: float) -> None:
        assert self._max_entries is not None
        self._sweep(now)
        while len(self._store) >= self._max_entries:
            self._store.popitem(last=False)
            self._evictions += 1
