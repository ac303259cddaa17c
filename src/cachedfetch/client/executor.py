"""Request execution with timeout, exponential-backoff retry, and error classification.

:class:`RequestExecutor` turns a :class:`~cachedfetch.models.RequestSpec`
into at most ``max_attempts`` transport calls:

- **Validation** -- a malformed spec fails with
  :class:`~cachedfetch.exceptions.ValidationError` before anything is sent.
- **Timeout** -- every attempt is bounded by the request's ``timeout`` or the
  configured default.
- **Classification** -- 2xx is decoded and returned, any other status
  becomes :class:`~cachedfetch.exceptions.RemoteError`, connectivity
  failures become :class:`~cachedfetch.exceptions.TransportError`.
- **Retry with backoff** -- between attempt ``i`` and ``i + 1`` the call
  waits ``2 ** i * base_delay`` seconds (1 s, 2 s, 4 s, ... by default).
  Nothing waits after the final attempt, whose error is the one returned.
- **Cancellation** -- a :class:`~cachedfetch.cancellation.CancellationToken`
  aborts the attempt in flight or the pending backoff.

The executor keeps no state between calls, so one instance can serve any
number of concurrent requests.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

import httpx

from cachedfetch.cancellation import CancellationToken, run_until_cancelled
from cachedfetch.client.response import decode_body, error_message
from cachedfetch.client.result import ExecutionResult
from cachedfetch.client.transport import Transport, TransportResponse
from cachedfetch.exceptions import (
    CancelledError,
    FetchError,
    RemoteError,
    TransportError,
    ValidationError,
)
from cachedfetch.models import RequestConfig, RequestSpec
from cachedfetch.output import get_output

SleepFunc = Callable[[float], Awaitable[Any]]

ALLOWED_METHODS = frozenset({"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"})

# Client errors that are still worth retrying when retry_client_errors is off.
RETRYABLE_CLIENT_STATUSES = frozenset({408, 429})

_CONNECTIVITY_ERRORS = (httpx.TransportError, OSError, asyncio.TimeoutError)


class RequestExecutor:
    """Executes one logical request with bounded retries and bounded latency.

    Args:
        transport: The collaborator that performs a single send.
        config: Timeout, attempt budget, backoff base and client-error
            policy.  Defaults to :class:`~cachedfetch.models.RequestConfig`.
        sleep: Awaitable used for backoff waits.  Defaults to
            :func:`asyncio.sleep`; tests pass a recorder.

    Example::

        executor = RequestExecutor(HttpxTransport())
        result = await executor.execute(
            RequestSpec(base_url="https://api.example.com", path="/users/1"),
        )
        if result.ok:
            print(result.value)
    """

    def __init__(
        self,
        transport: Transport,
        config: Optional[RequestConfig] = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._config = config or RequestConfig()
        self._sleep = sleep

    @property
    def config(self) -> RequestConfig:
        return self._config

    @property
    def transport(self) -> Transport:
        return self._transport

    async def execute(
        self,
        spec: RequestSpec,
        max_attempts: Optional[int] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> ExecutionResult:
        """Run *spec* until it succeeds or the attempt budget is spent.

        Args:
            spec: The request to send.
            max_attempts: Attempt budget.  Falls back to
                ``spec.max_attempts``, then to the configured default.
            cancel: Optional cancellation token.

        Returns:
            A success result on the first 2xx response, otherwise a failure
            carrying the error of the last attempt made.
        """
        budget = self._resolve_attempts(spec, max_attempts)
        timeout = spec.timeout if spec.timeout is not None else self._config.timeout

        invalid = _validate(spec, budget, timeout)
        if invalid is not None:
            return ExecutionResult.failure(invalid, attempts=0)

        try:
            body = spec.encoded_body()
        except (TypeError, ValueError) as exc:
            return ExecutionResult.failure(
                ValidationError(f"Request body is not JSON-serialisable: {exc}"), attempts=0
            )

        output = get_output()
        last_error: Optional[FetchError] = None

        for attempt in range(budget):
            if cancel is not None and cancel.cancelled:
                return ExecutionResult.failure(CancelledError(cancel.reason), attempts=attempt)
            try:
                response = await run_until_cancelled(self._send(spec, body, timeout), cancel)
            except CancelledError as exc:
                return ExecutionResult.failure(exc, attempts=attempt + 1)
            except _CONNECTIVITY_ERRORS as exc:
                last_error = TransportError(_describe(exc, timeout), cause=exc)
            else:
                if response.is_success:
                    return ExecutionResult.success(
                        decode_body(response.content),
                        attempts=attempt + 1,
                        status_code=response.status_code,
                    )
                last_error = RemoteError(
                    response.status_code,
                    error_message(response.status_code, response.content),
                )

            if attempt == budget - 1 or not self._should_retry(last_error):
                return ExecutionResult.failure(last_error, attempts=attempt + 1)

            delay = 2 ** attempt * self._config.base_delay
            output.debug(
                f"{spec.method} {spec.url} failed: {last_error}, retrying in {delay}s "
                f"(attempt {attempt + 1}/{budget})"
            )
            try:
                await run_until_cancelled(self._sleep(delay), cancel)
            except CancelledError as exc:
                return ExecutionResult.failure(exc, attempts=attempt + 1)

        assert last_error is not None  # pragma: no cover
        return ExecutionResult.failure(last_error, attempts=budget)  # pragma: no cover

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _resolve_attempts(self, spec: RequestSpec, max_attempts: Optional[int]) -> int:
        if max_attempts is not None:
            return max_attempts
        if spec.max_attempts is not None:
            return spec.max_attempts
        return self._config.max_attempts

    async def _send(
        self,
        spec: RequestSpec,
        body: Optional[bytes],
        timeout: float,
    ) -> TransportResponse:
        return await asyncio.wait_for(
            self._transport.send(
                spec.method,
                spec.url,
                dict(spec.headers),
                body,
                timeout,
                params=dict(spec.params),
            ),
            timeout=timeout,
        )

    def _should_retry(self, error: FetchError) -> bool:
        if (
            isinstance(error, RemoteError)
            and error.is_client_error
            and not self._config.retry_client_errors
        ):
            return error.status in RETRYABLE_CLIENT_STATUSES
        return error.retryable


def _validate(spec: RequestSpec, max_attempts: int, timeout: float) -> Optional[ValidationError]:
    """Return a :class:`ValidationError` if *spec* cannot be sent, else ``None``."""
    if not spec.base_url:
        return ValidationError("Request has no base URL")
    try:
        url = httpx.URL(spec.url)
    except httpx.InvalidURL as exc:
        return ValidationError(f"Invalid request URL {spec.url!r}: {exc}")
    if url.scheme not in ("http", "https") or not url.host:
        return ValidationError(f"Request URL must be absolute http(s): {spec.url!r}")
    if spec.method not in ALLOWED_METHODS:
        return ValidationError(f"Unsupported HTTP method: {spec.method}")
    if max_attempts < 1:
        return ValidationError(f"max_attempts must be at least 1, got {max_attempts}")
    if timeout <= 0:
        return ValidationError(f"timeout must be positive, got {timeout}")
    return None


def _describe(exc: BaseException, timeout: float) -> str:
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return f"Request timed out after {timeout}s"
    return f"Connection failed: {str(exc) or type(exc).__name__}"

