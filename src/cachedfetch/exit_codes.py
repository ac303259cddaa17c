"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~cachedfetch.exceptions.FetchError` subclass.
Shell wrappers can inspect the exit code of ``cachedfetch fetch`` to tell a
rejected request from a network failure without parsing stderr.

Example::

    $ cachedfetch fetch https://api.example.com/users/1
    $ echo $?
    6   # EXIT_CONNECTION_ERROR -- every attempt failed to connect
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The request was malformed (missing address, unknown method, bad limits)."""

EXIT_AUTH_FAILURE = 3
"""The remote rejected the credentials (HTTP 401 / 403)."""

EXIT_NOT_FOUND = 4
"""The requested resource was not found (HTTP 404)."""

EXIT_REMOTE_ERROR = 5
"""The remote answered with any other non-success status."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_CANCELLED = 130
"""The request was cancelled by the caller or interrupted (SIGINT)."""
