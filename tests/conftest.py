"""Shared test fixtures for cachedfetch.

Provides scripted transports, a recording backoff sleep, a manual clock,
and isolated output state.  These fixtures are automatically discovered by
pytest and available to all test modules without explicit imports.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional, Union

import httpx
import pytest

from cachedfetch.client.transport import TransportResponse
from cachedfetch.clock import ManualClock
from cachedfetch.output import OutputManager, reset_output, set_output


Outcome = Union[TransportResponse, BaseException]


def json_response(data: Any, status_code: int = 200) -> TransportResponse:
    """Build a TransportResponse with a JSON body."""
    return TransportResponse(
        status_code=status_code,
        content=json.dumps(data).encode(),
        headers={"content-type": "application/json"},
    )


class ScriptedTransport:
    """Transport that replays a fixed list of outcomes.

    Each ``send`` consumes the next outcome: a :class:`TransportResponse` is
    returned, an exception is raised.  Once the script runs out, the last
    outcome repeats.  Every call is recorded in :attr:`calls`.
    """

    def __init__(self, outcomes: list[Outcome], delay: float = 0.0) -> None:
        assert outcomes, "ScriptedTransport needs at least one outcome"
        self._outcomes = list(outcomes)
        self._delay = delay
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    async def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Optional[bytes],
        timeout: float,
        params: Optional[dict[str, Any]] = None,
    ) -> TransportResponse:
        self.calls.append(
            {
                "method": method,
                "url": url,
                "headers": headers,
                "body": body,
                "timeout": timeout,
                "params": params,
            }
        )
        index = min(len(self.calls) - 1, len(self._outcomes) - 1)
        outcome = self._outcomes[index]
        if self._delay:
            await asyncio.sleep(self._delay)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def aclose(self) -> None:
        self.closed = True


class RecordingSleep:
    """Backoff sleep that records requested delays and returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def connect_error(message: str = "Connection refused") -> httpx.ConnectError:
    return httpx.ConnectError(message, request=httpx.Request("GET", "https://api.example.com"))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _quiet_output() -> None:
    """Install a quiet, colourless OutputManager and reset it afterwards."""
    set_output(OutputManager(no_color=True, quiet=True))
    yield
    reset_output()


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock(start=1000.0)


@pytest.fixture()
def sleeps() -> RecordingSleep:
    return RecordingSleep()
