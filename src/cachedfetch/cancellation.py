"""Caller-driven cancellation for in-flight requests.

A :class:`CancellationToken` is handed to
:meth:`~cachedfetch.client.executor.RequestExecutor.execute` (or
:meth:`~cachedfetch.client.cached_client.CachedClient.fetch`).  Once it is
cancelled -- explicitly or because its deadline passed -- the executor
abandons the attempt in flight, skips any remaining backoff, and returns a
:class:`~cachedfetch.exceptions.CancelledError` result.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Optional

from cachedfetch.exceptions import CancelledError


class CancellationToken:
    """One-shot cancellation signal with an optional deadline.

    Args:
        timeout: Seconds after which the token cancels itself.  The timer
            starts on the first :meth:`wait`, which must happen inside a
            running event loop.

    Example::

        token = CancellationToken(timeout=5)
        result = await client.fetch("users:1", spec, cancel=token)
    """

    def __init__(self, timeout: Optional[float] = None) -> None:
        self._event = asyncio.Event()
        self._timeout = timeout
        self._reason = "Request cancelled"
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "Request cancelled") -> None:
        """Cancel the token.  Later calls are ignored."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        if self._timeout is not None and self._timer is None and not self.cancelled:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(
                self._timeout,
                self.cancel,
                f"Deadline of {self._timeout}s exceeded",
            )
        await self._event.wait()


async def run_until_cancelled(aw: Awaitable[Any], cancel: Optional[CancellationToken]) -> Any:
    """Await *aw*, abandoning it if *cancel* fires first.

    When both finish in the same step the awaited work wins.  Wrap *aw* in
    :func:`asyncio.shield` to abandon the wait without cancelling the work.

    Raises:
        CancelledError: The token fired before *aw* completed.
    """
    if cancel is None:
        return await aw

    work = asyncio.ensure_future(aw)
    if cancel.cancelled:
        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        raise CancelledError(cancel.reason)

    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        waiter.cancel()

    if work in done:
        return work.result()

    work.cancel()
    await asyncio.gather(work, return_exceptions=True)
    raise CancelledError(cancel.reason)
