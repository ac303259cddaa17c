"""Exception hierarchy for cachedfetch.

All request failures inherit from :class:`FetchError`, which carries an
``exit_code`` attribute mapped to a constant from
:mod:`cachedfetch.exit_codes`.  The executor never raises these for a
failed request; it returns them inside an
:class:`~cachedfetch.client.result.ExecutionResult`.  Callers that prefer
exceptions use :meth:`~cachedfetch.client.result.ExecutionResult.unwrap`.

Subclass hierarchy::

    FetchError (exit 1)
    +-- ValidationError  (exit 2, never retried)
    +-- TransportError   (exit 6, retried)
    +-- RemoteError      (exit 3 / 4 / 5 depending on status, retried)
    +-- CancelledError   (exit 130, never retried)
    ConfigError (exit 1)
"""

from __future__ import annotations

from cachedfetch.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CANCELLED,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_REMOTE_ERROR,
)


class FetchError(Exception):
    """Base exception for every classified request failure.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE
    retryable: bool = False

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.message = message
        if exit_code is not None:
            self.exit_code = exit_code


class ValidationError(FetchError):
    """Raised for a structurally invalid request. Checked before any attempt."""

    exit_code = EXIT_INVALID_USAGE


class TransportError(FetchError):
    """Raised on connectivity failures (timeout, DNS, connection refused).

    Args:
        message: Description of the failure.
        cause: The underlying exception raised by the transport.
    """

    exit_code = EXIT_CONNECTION_ERROR
    retryable = True

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class RemoteError(FetchError):
    """Raised when the remote answers with a non-success status code.

    The exit code follows the status: 401/403 map to
    :data:`~cachedfetch.exit_codes.EXIT_AUTH_FAILURE`, 404 to
    :data:`~cachedfetch.exit_codes.EXIT_NOT_FOUND`, anything else to
    :data:`~cachedfetch.exit_codes.EXIT_REMOTE_ERROR`.

    Args:
        status: The HTTP status code.
        message: Explanatory message, usually ``"HTTP <status>: <detail>"``.
    """

    exit_code = EXIT_REMOTE_ERROR
    retryable = True

    def __init__(self, status: int, message: str):
        if status in (401, 403):
            exit_code = EXIT_AUTH_FAILURE
        elif status == 404:
            exit_code = EXIT_NOT_FOUND
        else:
            exit_code = EXIT_REMOTE_ERROR
        super().__init__(message, exit_code=exit_code)
        self.status = status

    @property
    def is_client_error(self) -> bool:
        """Whether the status is in the 4xx range."""
        return 400 <= self.status < 500


class CancelledError(FetchError):
    """Raised when the caller cancels a request or its deadline passes.

    Distinct from :class:`asyncio.CancelledError`: this one is a classified
    result, not a task-cancellation signal.
    """

    exit_code = EXIT_CANCELLED


class ConfigError(Exception):
    """Raised for configuration problems (invalid JSON, bad values, bad env vars)."""

    exit_code: int = EXIT_GENERIC_FAILURE
