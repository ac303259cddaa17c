"""Transport collaborator used by the request executor.

A transport sends exactly one request and reports what came back.  It does
not retry, classify status codes, or decode bodies; that is the executor's
job.  Connectivity failures are signalled by raising
:class:`httpx.TransportError`, :class:`OSError` or
:class:`asyncio.TimeoutError`.

:class:`HttpxTransport` is the default implementation, wrapping
:class:`httpx.AsyncClient`.  Tests substitute either a scripted object
implementing :class:`Transport` or an :class:`httpx.MockTransport`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import httpx


@dataclass(frozen=True)
class TransportResponse:
    """Status code, raw body and headers of one response."""

    status_code: int
    content: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


class Transport(Protocol):
    """Contract between the executor and the network."""

    async def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Optional[bytes],
        timeout: float,
        params: Optional[dict[str, Any]] = None,
    ) -> TransportResponse: ...

    async def aclose(self) -> None: ...


class HttpxTransport:
    """Transport backed by a lazily created :class:`httpx.AsyncClient`.

    Args:
        transport: Optional low-level httpx transport, e.g.
            :class:`httpx.MockTransport` in tests.
        verify: Verify SSL certificates.
        follow_redirects: Follow 3xx redirects.

    Example::

        transport = HttpxTransport()
        response = await transport.send("GET", "https://api.example.com/users", {}, None, 10)
        await transport.aclose()
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        verify: bool = True,
        follow_redirects: bool = True,
    ) -> None:
        self._transport = transport
        self._verify = verify
        self._follow_redirects = follow_redirects
        self._client: Optional[httpx.AsyncClient] = None

    async def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Optional[bytes],
        timeout: float,
        params: Optional[dict[str, Any]] = None,
    ) -> TransportResponse:
        client = self._get_client()
        response = await client.request(
            method,
            url,
            headers=headers,
            params=params or None,
            content=body,
            timeout=timeout,
        )
        return TransportResponse(
            status_code=response.status_code,
            content=response.content,
            headers=dict(response.headers),
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            kwargs: dict[str, Any] = {
                "verify": self._verify,
                "follow_redirects": self._follow_redirects,
            }
            if self._transport is not None:
                kwargs["transport"] = self._transport
            self._client = httpx.AsyncClient(**kwargs)
        return self._client
